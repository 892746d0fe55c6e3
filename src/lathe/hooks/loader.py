# Copyright 2026 Pennyworth Technologies, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Loading of project-declared hook modules.

A hook module is named in the descriptor's ``hooks`` list and is activated
in one of two ways:

- it defines ``activate(registry)``, which is called once;
- otherwise its module-level ``HOOKS`` mapping of ``target -> wrapper`` (or a
  list of wrappers) is registered.

Example::

    # widget_hooks.py
    from lathe.tasks.test import test

    def announce(task, project, *args):
        print("testing", project.name)
        return task(project, *args)

    HOOKS = {test: announce}
"""

from __future__ import annotations

import importlib
import logging
import sys
from collections.abc import Iterable
from types import ModuleType
from typing import TYPE_CHECKING, Any

from lathe.hooks.base import HookRegistry

if TYPE_CHECKING:
    from lathe.project import Project

logger = logging.getLogger(__name__)

ACTIVATE_ATTR = "activate"
HOOKS_ATTR = "HOOKS"


class HookLoadError(Exception):
    """Raised when a hook module cannot be imported or activated."""

    def __init__(self, namespace: str, reason: str):
        self.namespace = namespace
        self.reason = reason
        super().__init__(f"Failed to load hook module '{namespace}': {reason}")


def _register_table(module: ModuleType, registry: HookRegistry) -> int:
    table = getattr(module, HOOKS_ATTR, None)
    if table is None:
        logger.debug("Hook module %s has no activate() or HOOKS", module.__name__)
        return 0
    if not isinstance(table, dict):
        raise TypeError(f"{HOOKS_ATTR} must be a dict, got {type(table).__name__}")
    count = 0
    for target, wrappers in table.items():
        if callable(wrappers):
            wrappers = [wrappers]
        for wrapper in wrappers:
            if registry.add_hook(target, wrapper):
                count += 1
    return count


def load_hook_namespace(namespace: str, registry: HookRegistry) -> bool:
    """Import one hook module and register its hooks.

    Returns:
        False if the module was already activated for this registry.

    Raises:
        HookLoadError: If the import or activation fails.
    """
    if registry.is_activated(namespace):
        return False

    try:
        module = importlib.import_module(namespace)
    except Exception as e:
        raise HookLoadError(namespace, f"{type(e).__name__}: {e}") from e

    activate: Any = getattr(module, ACTIVATE_ATTR, None)
    # A module that fails part way leaves none of its hooks behind.
    before = registry.snapshot()
    try:
        if callable(activate):
            activate(registry)
            logger.info("Activated hook module %s", namespace)
        else:
            count = _register_table(module, registry)
            logger.info("Registered %d hook(s) from %s", count, namespace)
    except Exception as e:
        registry.restore(before)
        raise HookLoadError(namespace, f"activation failed: {type(e).__name__}: {e}") from e

    registry.mark_activated(namespace)
    return True


def _add_source_paths(project: "Project") -> None:
    for path in reversed(project.source_paths):
        entry = str(path)
        if path.is_dir() and entry not in sys.path:
            sys.path.insert(0, entry)


def activate_hooks(
    project: "Project",
    registry: HookRegistry,
    namespaces: Iterable[str] | None = None,
    *,
    strict: bool = True,
) -> list[str]:
    """Load every hook module the project declares.

    The project's source paths are put on sys.path first so hook modules
    shipped with the project can be imported.

    Args:
        strict: Raise on the first failing module. When False, failures are
            logged and the remaining modules still load.

    Returns:
        Names of the modules activated by this call.

    Raises:
        HookLoadError: On the first module that fails to load, if strict.
    """
    names = list(namespaces) if namespaces is not None else list(project.hooks)
    if not names:
        return []
    _add_source_paths(project)
    activated = []
    for name in names:
        try:
            if load_hook_namespace(name, registry):
                activated.append(name)
        except HookLoadError as e:
            if strict:
                raise
            logger.warning("%s; continuing without it", e)
    return activated
