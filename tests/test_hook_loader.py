"""Tests for loading project-declared hook modules."""

import importlib
import sys
import textwrap

import pytest

from lathe.hooks import HookLoadError, HookRegistry, activate_hooks, load_hook_namespace


@pytest.fixture
def hook_project(project, clean_sys_path):
    """Project whose src/ holds hook modules written by the test."""
    src = project.root / "src"
    sys.path.insert(0, str(src))

    def _write(name: str, source: str):
        (src / f"{name}.py").write_text(textwrap.dedent(source))
        importlib.invalidate_caches()
        return project

    return _write


ACTIVATE_MODULE = """
    CALLS = []

    def wrapper(next_call, *args, **kwargs):
        return ("wrapped", next_call(*args, **kwargs))

    def activate(registry):
        CALLS.append(registry)
        registry.add_hook("acme.target", wrapper)
"""

TABLE_MODULE = """
    def first(next_call, *args):
        return next_call(*args) + 1

    def second(next_call, *args):
        return next_call(*args) * 10

    HOOKS = {
        "acme.one": first,
        "acme.two": [first, second],
    }
"""


class TestActivateHooks:
    def test_activate_function_called_once(self, hook_project):
        project = hook_project("acme_hooks", ACTIVATE_MODULE).assoc(hooks=["acme_hooks"])
        registry = HookRegistry()

        assert activate_hooks(project, registry) == ["acme_hooks"]
        assert activate_hooks(project, registry) == []

        module = importlib.import_module("acme_hooks")
        assert module.CALLS == [registry]
        assert len(registry.hooks_for("acme.target")) == 1

    def test_each_registry_activates_separately(self, hook_project):
        project = hook_project("acme_hooks", ACTIVATE_MODULE).assoc(hooks=["acme_hooks"])
        first, second = HookRegistry(), HookRegistry()
        activate_hooks(project, first)
        activate_hooks(project, second)
        assert importlib.import_module("acme_hooks").CALLS == [first, second]

    def test_hooks_table_registered(self, hook_project):
        project = hook_project("table_hooks", TABLE_MODULE).assoc(hooks=["table_hooks"])
        registry = HookRegistry()
        activate_hooks(project, registry)

        composed = registry.compose("acme.two", original=lambda: 1)
        # first is outermost: (1 * 10) + 1
        assert composed() == 11
        assert len(registry.hooks_for("acme.one")) == 1

    def test_no_hooks_declared(self, project):
        assert activate_hooks(project, HookRegistry()) == []

    def test_explicit_namespaces(self, hook_project):
        project = hook_project("table_hooks", TABLE_MODULE)
        registry = HookRegistry()
        assert activate_hooks(project, registry, ["table_hooks"]) == ["table_hooks"]

    def test_module_without_hooks_is_fine(self, hook_project):
        project = hook_project("quiet_hooks", "X = 1\n").assoc(hooks=["quiet_hooks"])
        assert activate_hooks(project, HookRegistry()) == ["quiet_hooks"]


class TestHookLoadErrors:
    def test_missing_module(self, project, clean_sys_path):
        project = project.assoc(hooks=["no_such_hooks_module"])
        with pytest.raises(HookLoadError) as exc_info:
            activate_hooks(project, HookRegistry())
        assert exc_info.value.namespace == "no_such_hooks_module"
        assert "no_such_hooks_module" in str(exc_info.value)

    def test_import_error_inside_module(self, hook_project):
        hook_project("bad_hooks", "raise RuntimeError('boom')\n")
        with pytest.raises(HookLoadError, match="RuntimeError: boom"):
            load_hook_namespace("bad_hooks", HookRegistry())

    def test_activate_raises(self, hook_project):
        hook_project(
            "failing_hooks",
            """
            def activate(registry):
                raise ValueError("cannot activate")
            """,
        )
        registry = HookRegistry()
        with pytest.raises(HookLoadError, match="activation failed"):
            load_hook_namespace("failing_hooks", registry)
        assert registry.is_activated("failing_hooks") is False

    def test_failed_activation_leaves_no_hooks(self, hook_project):
        project = hook_project(
            "half_hooks",
            """
            def hijack(next_call, *args):
                return "HIJACKED"

            def activate(registry):
                registry.add_hook("acme.target", hijack)
                raise RuntimeError("second step failed")
            """,
        ).assoc(hooks=["half_hooks"])
        registry = HookRegistry()

        assert activate_hooks(project, registry, strict=False) == []

        assert registry.hooks_for("acme.target") == []
        assert registry.compose("acme.target", original=lambda x: x)(1) == 1

    def test_failed_activation_keeps_earlier_modules(self, hook_project):
        hook_project("table_hooks", TABLE_MODULE)
        project = hook_project(
            "half_table",
            """
            def ok(next_call, *args):
                return next_call(*args)

            HOOKS = {"acme.one": ok, "acme.two": [ok, "not callable"]}
            """,
        ).assoc(hooks=["table_hooks", "half_table"])
        registry = HookRegistry()

        assert activate_hooks(project, registry, strict=False) == ["table_hooks"]

        assert [w.__name__ for w in registry.hooks_for("acme.one")] == ["first"]
        assert [w.__name__ for w in registry.hooks_for("acme.two")] == ["first", "second"]

    def test_hooks_table_must_be_dict(self, hook_project):
        hook_project("list_hooks", "HOOKS = [1, 2]\n")
        with pytest.raises(HookLoadError, match="must be a dict"):
            load_hook_namespace("list_hooks", HookRegistry())

    def test_non_strict_continues_past_failure(self, hook_project, caplog):
        project = hook_project("table_hooks", TABLE_MODULE).assoc(
            hooks=["missing_hooks_module", "table_hooks"]
        )
        registry = HookRegistry()
        assert activate_hooks(project, registry, strict=False) == ["table_hooks"]
        assert "missing_hooks_module" in caplog.text

    def test_strict_stops_at_first_failure(self, hook_project):
        project = hook_project("table_hooks", TABLE_MODULE).assoc(
            hooks=["missing_hooks_module", "table_hooks"]
        )
        registry = HookRegistry()
        with pytest.raises(HookLoadError):
            activate_hooks(project, registry)
        assert registry.hooks_for("acme.one") == []
