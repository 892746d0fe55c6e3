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

"""Task registration and command resolution.

Tasks are plain functions ``task(project, *args)`` marked with @deftask in a
task module. Built-in tasks live in ``lathe.tasks.<command>`` and are
imported the first time their command is resolved. Other packages contribute
task modules through the ``lathe.tasks`` entry point group::

    [project.entry-points."lathe.tasks"]
    deploy = "acme_lathe.deploy"
"""

from __future__ import annotations

import contextlib
import importlib
import logging
import pkgutil
from collections.abc import Callable, Iterator, Mapping
from contextvars import ContextVar
from dataclasses import dataclass
from importlib.metadata import entry_points
from types import ModuleType
from typing import Any

from lathe.constants import (
    ALIASES,
    BOOTSTRAP_COMMAND,
    TASK_ENTRY_POINT_GROUP,
    TASK_NAMESPACE_PREFIX,
)
from lathe.hooks.base import hookable

logger = logging.getLogger(__name__)

TASK_ATTR = "__lathe_task__"


class TaskNotFoundError(Exception):
    """Raised when a command has no resolvable task."""

    def __init__(self, command: str, reason: str = "no such task"):
        self.command = command
        self.reason = reason
        super().__init__(f"'{command}' is not a task: {reason}")


class AmbiguousTaskError(TaskNotFoundError):
    """Raised when more than one namespace provides the same command."""

    def __init__(self, command: str, namespaces: list[str]):
        self.namespaces = namespaces
        super().__init__(
            command, f"provided by several namespaces: {', '.join(namespaces)}"
        )


class TaskConflictError(TaskNotFoundError):
    """Raised when one namespace provides the same command more than once."""

    def __init__(self, command: str, namespace: str):
        self.namespace = namespace
        super().__init__(command, f"namespace {namespace} defines it twice")


@dataclass(frozen=True)
class TaskMeta:
    """Metadata attached to a function by @deftask."""

    name: str
    requires_project: bool = True
    help: str | None = None
    arglists: tuple[str, ...] = ()


@dataclass(frozen=True)
class TaskEntry:
    """A resolved unit of work."""

    name: str
    func: Callable[..., Any]
    namespace: str
    requires_project: bool = True
    help: str | None = None
    arglists: tuple[str, ...] = ()

    @property
    def summary(self) -> str:
        if self.help:
            return self.help
        doc = (self.func.__doc__ or "").strip()
        return doc.splitlines()[0] if doc else ""


def task_name_for(func: Callable[..., Any]) -> str:
    """Command name for a function: 'help_' -> 'help', 'run_tests' -> 'run-tests'."""
    return func.__name__.rstrip("_").replace("_", "-")


def deftask(
    name: str | None = None,
    *,
    requires_project: bool = True,
    help: str | None = None,
    arglists: tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a function as a task and make it hookable.

    Args:
        name: Command name. Defaults to the function name.
        requires_project: False for tasks that run without a project.yaml.
        help: One-line summary for the help listing.
        arglists: Argument synopses shown by ``lathe help <task>``.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        wrapped = hookable(func)
        setattr(
            wrapped,
            TASK_ATTR,
            TaskMeta(
                name=name or task_name_for(func),
                requires_project=requires_project,
                help=help,
                arglists=tuple(arglists),
            ),
        )
        return wrapped

    return decorator


class TaskRegistry:
    """Maps command names to task entries contributed by task modules."""

    def __init__(
        self,
        aliases: Mapping[str, str] | None = None,
        prefix: str = TASK_NAMESPACE_PREFIX,
        entry_point_group: str | None = TASK_ENTRY_POINT_GROUP,
    ):
        self.aliases = dict(ALIASES if aliases is None else aliases)
        self.prefix = prefix
        self.entry_point_group = entry_point_group
        self._entries: dict[str, dict[str, TaskEntry]] = {}
        self._loaded: set[str] = set()
        self._plugins_loaded = entry_point_group is None
        self._conflicts: dict[str, TaskConflictError] = {}

    def register(self, entry: TaskEntry) -> None:
        """Add an entry. A namespace may provide a command only once."""
        providers = self._entries.setdefault(entry.name, {})
        existing = providers.get(entry.namespace)
        if existing is not None and existing.func is not entry.func:
            raise TaskConflictError(entry.name, entry.namespace)
        providers[entry.namespace] = entry

    def register_module(self, module: ModuleType) -> list[TaskEntry]:
        """Register every @deftask function defined in module.

        Nothing is registered if the module provides a command twice.

        Raises:
            TaskConflictError: If two functions claim the same command.
        """
        entries = []
        for obj in vars(module).values():
            meta = getattr(obj, TASK_ATTR, None)
            if not isinstance(meta, TaskMeta):
                continue
            # Skip tasks merely imported into this module.
            if getattr(obj, "__module__", None) != module.__name__:
                continue
            entry = TaskEntry(
                name=meta.name,
                func=obj,
                namespace=module.__name__,
                requires_project=meta.requires_project,
                help=meta.help,
                arglists=meta.arglists,
            )
            entries.append(entry)
        seen: dict[str, TaskEntry] = {}
        for entry in entries:
            if seen.setdefault(entry.name, entry) is not entry:
                raise TaskConflictError(entry.name, module.__name__)
        for entry in entries:
            self.register(entry)
        self._loaded.add(module.__name__)
        logger.debug("Registered %d task(s) from %s", len(entries), module.__name__)
        return entries

    def load_namespace(self, module_name: str) -> list[TaskEntry]:
        """Import a task module (once) and register its tasks."""
        if module_name in self._loaded:
            return []
        module = importlib.import_module(module_name)
        return self.register_module(module)

    def load_plugins(self) -> None:
        """Load task modules declared in the entry point group, once.

        A plugin that fails to import is logged and skipped. So is one that
        defines a command twice; resolving that command then reports the
        conflict.
        """
        if self._plugins_loaded:
            return
        self._plugins_loaded = True
        for ep in entry_points(group=self.entry_point_group):
            try:
                module = ep.load()
            except Exception as e:
                logger.error("Could not load task plugin %s (%s): %s", ep.name, ep.value, e)
                continue
            if isinstance(module, ModuleType):
                if module.__name__ in self._loaded:
                    continue
                try:
                    self.register_module(module)
                except TaskConflictError as e:
                    logger.error("Skipping task plugin %s (%s): %s", ep.name, ep.value, e)
                    self._conflicts[e.command] = e
            else:
                logger.error(
                    "Task plugin %s must name a module, got %r", ep.name, ep.value
                )

    def load_all(self) -> list[TaskEntry]:
        """Load every built-in task module and every plugin."""
        self.load_plugins()
        package = importlib.import_module(self.prefix)
        for info in pkgutil.iter_modules(package.__path__):
            if info.name.startswith("_"):
                continue
            try:
                self.load_namespace(f"{self.prefix}.{info.name}")
            except Exception as e:
                logger.error("Could not load task module %s: %s", info.name, e)
        return self.entries()

    def entries(self) -> list[TaskEntry]:
        return sorted(
            (e for providers in self._entries.values() for e in providers.values()),
            key=lambda e: (e.name, e.namespace),
        )

    def canonical(self, command: str) -> str:
        """Apply alias substitution once."""
        return self.aliases.get(command, command)

    def _load_conventional(self, name: str) -> None:
        module_name = f"{self.prefix}.{name}"
        try:
            self.load_namespace(module_name)
        except ModuleNotFoundError as e:
            # Only a missing task module means "no such namespace"; a missing
            # import inside the task module is a broken task.
            if e.name is not None and (
                e.name == module_name or module_name.startswith(e.name + ".")
            ):
                return
            raise TaskNotFoundError(name, f"cannot load {module_name}: {e}") from e
        except Exception as e:
            raise TaskNotFoundError(name, f"cannot load {module_name}: {e}") from e

    def resolve(self, command: str) -> TaskEntry:
        """Resolve a command (after alias substitution) to its task entry.

        Raises:
            TaskNotFoundError: If nothing provides the command.
            AmbiguousTaskError: If several namespaces provide it.
            TaskConflictError: If the only provider was skipped for defining it twice.
        """
        name = self.canonical(command)
        if not name or "." in name or "/" in name:
            raise TaskNotFoundError(command)
        self.load_plugins()
        self._load_conventional(name)

        providers = self._entries.get(name, {})
        if not providers:
            conflict = self._conflicts.get(name)
            if conflict is not None:
                raise TaskConflictError(command, conflict.namespace)
            raise TaskNotFoundError(command)
        if len(providers) > 1:
            raise AmbiguousTaskError(command, sorted(providers))
        entry = next(iter(providers.values()))
        logger.debug("Resolved '%s' to %s.%s", command, entry.namespace, entry.func.__name__)
        return entry

    def requires_project(self, entry: TaskEntry) -> bool:
        if entry.name == BOOTSTRAP_COMMAND:
            return False
        return entry.requires_project

    def validate_aliases(self) -> None:
        """Check every alias is single-hop and points at a real task.

        Raises:
            ValueError: On an alias chain.
            TaskNotFoundError: On an alias whose target does not resolve.
        """
        for alias, target in self.aliases.items():
            if target in self.aliases:
                raise ValueError(f"Alias '{alias}' points at another alias '{target}'")
            self.resolve(target)


_dispatching_registry: ContextVar[TaskRegistry | None] = ContextVar(
    "lathe_task_registry", default=None
)


@contextlib.contextmanager
def using_registry(registry: TaskRegistry) -> Iterator[TaskRegistry]:
    """Make registry the one tasks see through dispatching_registry()."""
    token = _dispatching_registry.set(registry)
    try:
        yield registry
    finally:
        _dispatching_registry.reset(token)


def dispatching_registry() -> TaskRegistry | None:
    """The registry the running task was resolved from, if any."""
    return _dispatching_registry.get()
