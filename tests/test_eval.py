"""Tests for the isolated evaluation process boundary."""

import json
import signal
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from lathe.config import LatheConfig
from lathe.eval import (
    INSTALL_MARKER,
    IsolatedEnvironment,
    ProcessBoundarySetupError,
    build_command,
    eval_in_project,
    install_dependencies,
    normalize_exit_code,
    parse_requirements,
    prepare_environment,
    requirements_digest,
)
from lathe.hooks import HookRegistry, using_hooks
from lathe.project import Project


@pytest.fixture
def config():
    return LatheConfig()


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


# --- Requirements ---


class TestRequirements:
    def test_valid_requirements_normalized(self):
        assert parse_requirements(["requests >= 2.0", "attrs"]) == ["requests>=2.0", "attrs"]

    def test_invalid_requirement_raises(self):
        with pytest.raises(ProcessBoundarySetupError, match="not a requirement!!"):
            parse_requirements(["not a requirement!!"])

    def test_digest_ignores_order(self):
        assert requirements_digest(["a", "b"]) == requirements_digest(["b", "a"])
        assert requirements_digest(["a"]) != requirements_digest(["a", "b"])


class TestInstallDependencies:
    def test_installs_into_digest_dir(self, tmp_path):
        with patch("lathe.eval.subprocess.run", return_value=_completed()) as mock_run:
            target = install_dependencies(["attrs"], tmp_path, "python3", 60)

        assert target == tmp_path / requirements_digest(["attrs"])
        assert (target / INSTALL_MARKER).is_file()
        cmd = mock_run.call_args[0][0]
        assert cmd[:4] == ["python3", "-m", "pip", "install"]
        assert cmd[cmd.index("--target") + 1] == str(target)
        assert cmd[-1] == "attrs"

    def test_completed_install_reused(self, tmp_path):
        with patch("lathe.eval.subprocess.run", return_value=_completed()) as mock_run:
            first = install_dependencies(["attrs"], tmp_path, "python3", 60)
            second = install_dependencies(["attrs"], tmp_path, "python3", 60)
        assert first == second
        assert mock_run.call_count == 1

    def test_incomplete_install_redone(self, tmp_path):
        stale = tmp_path / requirements_digest(["attrs"])
        stale.mkdir()
        (stale / "leftover.txt").write_text("partial")
        with patch("lathe.eval.subprocess.run", return_value=_completed()):
            target = install_dependencies(["attrs"], tmp_path, "python3", 60)
        assert not (target / "leftover.txt").exists()

    def test_pip_failure(self, tmp_path):
        with patch("lathe.eval.subprocess.run", return_value=_completed(1, stderr="No matching distribution")):
            with pytest.raises(ProcessBoundarySetupError, match="No matching distribution"):
                install_dependencies(["nope-pkg"], tmp_path, "python3", 60)
        assert not (tmp_path / requirements_digest(["nope-pkg"]) / INSTALL_MARKER).exists()

    def test_pip_timeout(self, tmp_path):
        with patch("lathe.eval.subprocess.run", side_effect=subprocess.TimeoutExpired("pip", 5)):
            with pytest.raises(ProcessBoundarySetupError, match="timed out"):
                install_dependencies(["attrs"], tmp_path, "python3", 5)

    def test_interpreter_missing(self, tmp_path):
        with patch("lathe.eval.subprocess.run", side_effect=FileNotFoundError("python9")):
            with pytest.raises(ProcessBoundarySetupError, match="Could not run pip"):
                install_dependencies(["attrs"], tmp_path, "python9", 5)


# --- Environment and command ---


class TestPrepareEnvironment:
    def test_paths_without_dependencies(self, project, config):
        env = prepare_environment(project, config)
        assert env.paths == [str(project.root / "src"), str(project.root / "classes")]
        assert env.python == sys.executable
        assert env.container is False
        assert env.cwd == project.root

    def test_dependency_dir_first(self, project, config):
        project = project.with_dependencies("attrs")
        with patch("lathe.eval.install_dependencies", return_value=Path("/deps/abc")) as mock_install:
            env = prepare_environment(project, config)
        assert env.paths[0] == "/deps/abc"
        assert env.requirements == ["attrs"]
        assert mock_install.call_args[0][1] == project.lathe_home / "deps"

    def test_configured_python(self, project, config):
        config.defaults.python = "/opt/python/bin/python3"
        assert prepare_environment(project, config).python == "/opt/python/bin/python3"

    def test_container_paths_translated(self, project, config):
        (project.root / ".devcontainer").mkdir()
        (project.root / ".devcontainer" / "devcontainer.json").write_text(
            json.dumps({"workspaceFolder": "/work"})
        )
        with patch("lathe.eval.ensure_container_running") as mock_ensure:
            env = prepare_environment(project, config)
        mock_ensure.assert_called_once()
        assert env.container is True
        assert env.python == "python3"
        assert env.paths == ["/work/src", "/work/classes"]

    def test_container_enabled_without_devcontainer(self, project, config):
        config.defaults.container_mode = "enabled"
        with pytest.raises(ProcessBoundarySetupError, match="devcontainer"):
            prepare_environment(project, config)


def test_build_command_isolates_interpreter():
    env = IsolatedEnvironment(python="python3", paths=["/a", "/b"])
    cmd = build_command(env, "print(1)", "import os")
    assert cmd[:5] == ["python3", "-I", "-S", "-c", cmd[4]]
    assert json.loads(cmd[5]) == {"paths": ["/a", "/b"], "init": "import os", "main": "print(1)"}


@pytest.mark.parametrize(
    "returncode, expected",
    [(0, 0), (1, 1), (3, 3), (-9, 137), (-15, 143)],
)
def test_normalize_exit_code(returncode, expected):
    assert normalize_exit_code(returncode) == expected


# --- eval_in_project with a mocked child ---


class TestEvalInProjectMocked:
    def test_returns_child_status(self, project, config):
        with patch("lathe.eval.subprocess.run", return_value=_completed(7)) as mock_run:
            assert eval_in_project(project, "pass", config=config) == 7
        kwargs = mock_run.call_args[1]
        assert kwargs["cwd"] == project.root
        assert kwargs["env"]["LATHE_PROJECT_ROOT"] == str(project.root)
        assert kwargs["env"]["LATHE_COMPILE_PATH"] == project.compile_path

    def test_signal_death(self, project, config):
        with patch("lathe.eval.subprocess.run", return_value=_completed(-signal.SIGKILL)):
            assert eval_in_project(project, "pass", config=config) == 128 + signal.SIGKILL

    def test_run_timeout(self, project, config):
        config.timeouts.eval_run = 1
        with patch("lathe.eval.subprocess.run", side_effect=subprocess.TimeoutExpired("py", 1)):
            assert eval_in_project(project, "pass", config=config) == 124

    def test_invalid_dependency_never_starts_child(self, project, config):
        project = project.with_dependencies("this is ! not valid")
        with patch("lathe.eval.subprocess.run") as mock_run:
            with pytest.raises(ProcessBoundarySetupError):
                eval_in_project(project, "pass", config=config)
        mock_run.assert_not_called()

    def test_container_exec_wraps_command(self, project, config):
        (project.root / ".devcontainer").mkdir()
        (project.root / ".devcontainer" / "devcontainer.json").write_text("{}")
        with patch("lathe.eval.ensure_container_running"), \
             patch("lathe.eval.subprocess.run", return_value=_completed(0)) as mock_run:
            assert eval_in_project(project, "pass", config=config) == 0
        argv = mock_run.call_args[0][0]
        assert argv[:4] == ["devcontainer", "exec", "--workspace-folder", str(project.root)]
        assert argv[4:7] == ["python3", "-I", "-S"]

    def test_config_loaded_for_project(self, project):
        config_dir = project.lathe_home
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"defaults": {"python": "py-from-config"}}))
        with patch("lathe.eval.subprocess.run", return_value=_completed(0)) as mock_run:
            eval_in_project(project, "pass")
        assert mock_run.call_args[0][0][0] == "py-from-config"

    def test_hookable(self, project, config):
        seen = []

        def add_init(next_call, project, main_form, init_form=None, **kwargs):
            seen.append(main_form)
            return next_call(project, main_form, "import os", **kwargs)

        registry = HookRegistry()
        registry.add_hook(eval_in_project, add_init)
        with patch("lathe.eval.subprocess.run", return_value=_completed(0)) as mock_run:
            with using_hooks(registry):
                eval_in_project(project, "pass", config=config)
        assert seen == ["pass"]
        assert json.loads(mock_run.call_args[0][0][-1])["init"] == "import os"


# --- eval_in_project with a real child interpreter ---


@pytest.mark.integration
class TestEvalInProjectReal:
    def test_success(self, project, config):
        assert eval_in_project(project, "x = 1", config=config) == 0

    def test_exit_status_propagated(self, project, config):
        assert eval_in_project(project, "import sys; sys.exit(3)", config=config) == 3

    def test_uncaught_exception(self, project, config, capfd):
        assert eval_in_project(project, "raise ValueError('bad')", config=config) == 1
        assert "ValueError: bad" in capfd.readouterr().err

    def test_init_form_runs_first_in_shared_namespace(self, project, config):
        code = eval_in_project(
            project,
            "import sys; sys.exit(value)",
            init_form="value = 5",
            config=config,
        )
        assert code == 5

    def test_source_paths_importable(self, project, config):
        (project.root / "src" / "widget_mod.py").write_text("CODE = 9\n")
        main = "import sys, widget_mod; sys.exit(widget_mod.CODE)"
        assert eval_in_project(project, main, config=config) == 9

    def test_host_packages_not_visible(self, project, config):
        # yaml and lathe are installed for the tool, not for the project.
        main = (
            "import sys\n"
            "try:\n"
            "    import yaml\n"
            "except ImportError:\n"
            "    sys.exit(0)\n"
            "sys.exit(4)\n"
        )
        assert eval_in_project(project, main, config=config) == 0

    def test_runs_in_project_root(self, project, config, capfd):
        main = "import os, sys; sys.stdout.write(os.getcwd() + '|' + os.environ['LATHE_PROJECT_ROOT'])"
        assert eval_in_project(project, main, config=config) == 0
        cwd, root = capfd.readouterr().out.split("|")
        assert Path(cwd).resolve() == project.root.resolve()
        assert root == str(project.root)

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_killed_by_signal(self, project, config):
        main = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"
        assert eval_in_project(project, main, config=config) == 128 + signal.SIGTERM

    def test_missing_interpreter(self, project, config):
        config.defaults.python = str(project.root / "no-such-python")
        with pytest.raises(ProcessBoundarySetupError, match="Could not start"):
            eval_in_project(project, "pass", config=config)

    def test_synthetic_project(self, tmp_path, config):
        assert eval_in_project(Project.synthetic(root=tmp_path), "pass", config=config) == 0

    def test_run_timeout(self, project, config):
        config.timeouts.eval_run = 1
        assert eval_in_project(project, "import time; time.sleep(30)", config=config) == 124
