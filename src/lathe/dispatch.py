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

"""Top-level dispatch: command string in, process exit code out."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from lathe.background import shutdown_background_work
from lathe.config import (
    DEFAULT_SHUTDOWN_TIMEOUT,
    ConfigLoadError,
    ConfigValidationError,
    LatheConfig,
    get_config,
)
from lathe.constants import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS
from lathe.eval import ProcessBoundarySetupError
from lathe.hooks import HookLoadError, HookRegistry, activate_hooks, using_hooks
from lathe.project import DescriptorError, Project, read_project
from lathe.registry import TaskEntry, TaskNotFoundError, TaskRegistry, using_registry

logger = logging.getLogger(__name__)

err_console = Console(stderr=True, soft_wrap=True)

_compile_path: ContextVar[str | None] = ContextVar("lathe_compile_path", default=None)


class TaskExecutionFailure(Exception):
    """An uncaught exception raised while a task ran."""

    def __init__(self, command: str, args: tuple[str, ...], cause: BaseException):
        self.command = command
        self.args_ = args
        self.cause = cause
        rendered = " ".join((command, *args))
        super().__init__(f"Task '{rendered}' failed: {type(cause).__name__}: {cause}")


def current_compile_path() -> str | None:
    """The compile path bound for the running task, or None outside a task."""
    return _compile_path.get()


@contextlib.contextmanager
def scoped_compile_path(value: str | None) -> Iterator[str | None]:
    """Bind the compile path for the duration of the block."""
    token = _compile_path.set(value)
    try:
        yield value
    finally:
        _compile_path.reset(token)


def exit_code_for(result: Any) -> int:
    """Integers are exit codes; anything else (including None) is success."""
    if isinstance(result, int) and not isinstance(result, bool):
        return result
    return EXIT_SUCCESS


def _exit_code_for_system_exit(e: SystemExit) -> int:
    if e.code is None:
        return EXIT_SUCCESS
    if isinstance(e.code, int):
        return e.code
    err_console.print(escape(str(e.code)))
    return EXIT_FAILURE


def report_error(message: str, detail: str | None = None) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    if detail:
        err_console.print(f"[dim]{escape(detail)}[/dim]")


def _load_config(lathe_home: Path | None) -> LatheConfig | None:
    try:
        return get_config(lathe_home)
    except (ConfigLoadError, ConfigValidationError) as e:
        report_error(f"Invalid lathe configuration: {e}")
        return None


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("lathe").setLevel(level.upper())


def run_task(
    entry: TaskEntry,
    project: Project | None,
    args: tuple[str, ...],
    hooks: HookRegistry,
) -> int:
    """Invoke the hook-composed task and map its outcome to an exit code.

    The compile path binding and active hook registry are restored on every
    exit path.
    """
    compile_path = project.compile_path if project is not None else None
    try:
        with scoped_compile_path(compile_path), using_hooks(hooks):
            result = hooks.compose(entry)(project, *args)
        return exit_code_for(result)
    except SystemExit as e:
        return _exit_code_for_system_exit(e)
    except KeyboardInterrupt:
        report_error(f"Task '{entry.name}' interrupted")
        return EXIT_INTERRUPTED
    except ProcessBoundarySetupError as e:
        report_error(f"Could not set up isolated environment for '{entry.name}': {e}")
        return EXIT_FAILURE
    except Exception as e:
        failure = TaskExecutionFailure(entry.name, args, e)
        logger.debug("Task failure traceback", exc_info=e)
        report_error(str(failure), "Set LATHE_LOG_LEVEL=DEBUG for a traceback.")
        return EXIT_FAILURE


def main(
    command: str,
    *args: str,
    registry: TaskRegistry | None = None,
    hooks: HookRegistry | None = None,
    descriptor: Path | str | None = None,
) -> int:
    """Resolve command, build the project context, run the task.

    Background work is shut down before returning, whichever way the
    dispatch ends.

    Args:
        command: Command name or alias.
        *args: Arguments forwarded to the task unchanged.
        registry: Task registry (a fresh one by default).
        hooks: Hook registry (a fresh one by default).
        descriptor: Project descriptor path (project.yaml in cwd by default).

    Returns:
        The process exit code.
    """
    registry = registry or TaskRegistry()
    hooks = hooks if hooks is not None else HookRegistry()
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT

    try:
        try:
            entry = registry.resolve(command)
        except TaskNotFoundError as e:
            report_error(str(e), "Run 'lathe help' for a list of tasks.")
            return EXIT_FAILURE

        project: Project | None = None
        if registry.requires_project(entry):
            try:
                project = read_project(descriptor)
            except DescriptorError as e:
                report_error(f"Cannot load project: {e}")
                return EXIT_FAILURE

        config = _load_config(project.lathe_home if project is not None else None)
        if config is None:
            return EXIT_FAILURE
        shutdown_timeout = config.timeouts.shutdown
        configure_logging(config.defaults.log_level)

        if project is not None:
            strict = config.defaults.hook_load_policy == "fail"
            try:
                activate_hooks(project, hooks, strict=strict)
            except HookLoadError as e:
                report_error(str(e))
                return EXIT_FAILURE

        logger.debug("Running %s.%s with %d arg(s)", entry.namespace, entry.name, len(args))
        with using_registry(registry):
            return run_task(entry, project, tuple(args), hooks)
    finally:
        shutdown_background_work(shutdown_timeout)
