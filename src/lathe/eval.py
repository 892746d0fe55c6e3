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

"""Evaluate code in a process isolated to the project's own dependencies.

The child interpreter runs with ``-I -S``: no PYTHON* variables, no user
site, no site-packages. Its sys.path is exactly

1. the project's dependency directory (``pip install --target``),
2. the project's source paths,
3. the compile path,

followed by the interpreter's standard library. Nothing installed for lathe
itself is importable, so the tool and the project may pin conflicting
versions of the same library.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import subprocess
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path

from packaging.requirements import InvalidRequirement, Requirement

from lathe.config import LatheConfig, get_config
from lathe.constants import EXIT_TIMEOUT, SIGNAL_EXIT_BASE
from lathe.devcontainer import (
    DevcontainerError,
    devcontainer_exec,
    devcontainer_exec_args,
    ensure_container_running,
    should_use_container,
    to_container_path,
)
from lathe.hooks.base import hookable
from lathe.project import Project

logger = logging.getLogger(__name__)

INSTALL_MARKER = ".lathe-complete"

ENV_PROJECT_ROOT = "LATHE_PROJECT_ROOT"
ENV_COMPILE_PATH = "LATHE_COMPILE_PATH"

# Runs inside the isolated child. argv[1] is the JSON payload.
BOOTSTRAP = textwrap.dedent(
    """\
    import json, sys
    payload = json.loads(sys.argv[1])
    sys.argv = ["-c"]
    sys.path[0:0] = payload["paths"]
    namespace = {"__name__": "__main__"}
    del json
    if payload["init"] is not None:
        exec(compile(payload["init"], "<init>", "exec"), namespace)
    exec(compile(payload["main"], "<main>", "exec"), namespace)
    """
)


class ProcessBoundarySetupError(Exception):
    """Raised when the isolated environment cannot be constructed.

    Distinct from a nonzero exit status, which means the environment was
    built and the evaluated code reported failure.
    """


@dataclass
class IsolatedEnvironment:
    """Everything needed to launch the isolated child."""

    python: str
    paths: list[str] = field(default_factory=list)
    cwd: Path | None = None
    container: bool = False
    requirements: list[str] = field(default_factory=list)


def parse_requirements(specs: tuple[str, ...] | list[str]) -> list[str]:
    """Validate and normalize requirement strings.

    Raises:
        ProcessBoundarySetupError: On the first invalid requirement.
    """
    normalized = []
    for spec in specs:
        try:
            normalized.append(str(Requirement(spec)))
        except InvalidRequirement as e:
            raise ProcessBoundarySetupError(f"Invalid dependency '{spec}': {e}") from e
    return normalized


def requirements_digest(requirements: list[str]) -> str:
    return hashlib.sha256("\n".join(sorted(requirements)).encode()).hexdigest()[:16]


def install_dependencies(
    requirements: list[str],
    cache_root: Path,
    python: str,
    timeout: int,
    workspace: Path | None = None,
) -> Path:
    """Install requirements into a digest-named directory under cache_root.

    A completed install is reused. When workspace is given, pip runs inside
    that workspace's devcontainer.

    Returns:
        The host path of the install directory.

    Raises:
        ProcessBoundarySetupError: If pip cannot be run or fails.
    """
    target = cache_root / requirements_digest(requirements)
    marker = target / INSTALL_MARKER
    if marker.is_file():
        logger.debug("Reusing dependency install at %s", target)
        return target

    if target.exists():
        shutil.rmtree(target)
    target.mkdir(parents=True)

    target_arg = to_container_path(target, workspace) if workspace else str(target)
    cmd = [
        python, "-m", "pip", "install",
        "--quiet", "--disable-pip-version-check", "--no-input",
        "--target", target_arg,
        *requirements,
    ]
    logger.info("Installing %d dependencies into %s", len(requirements), target)
    try:
        if workspace is not None:
            result = devcontainer_exec(cmd, workspace, timeout=timeout)
        else:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise ProcessBoundarySetupError(
            f"Dependency install timed out after {timeout}s"
        ) from e
    except OSError as e:
        raise ProcessBoundarySetupError(f"Could not run pip with {python}: {e}") from e

    if result.returncode != 0:
        logger.error("pip install failed (exit %d): %s", result.returncode, result.stderr)
        raise ProcessBoundarySetupError(
            f"Dependency install failed (exit {result.returncode}): "
            f"{(result.stderr or '').strip()[-2000:]}"
        )

    marker.write_text(json.dumps(requirements))
    return target


def prepare_environment(project: Project, config: LatheConfig) -> IsolatedEnvironment:
    """Build the isolated environment for project.

    Raises:
        ProcessBoundarySetupError: On invalid dependencies, a failed install
            or an unusable devcontainer.
    """
    requirements = parse_requirements(project.dependencies)

    try:
        container = should_use_container(config.defaults.container_mode, project.root)
        if container:
            ensure_container_running(
                project.root,
                python=config.defaults.container_python,
                timeout_up=config.timeouts.eval_setup,
            )
    except DevcontainerError as e:
        raise ProcessBoundarySetupError(str(e)) from e

    python = config.defaults.container_python if container else (
        config.defaults.python or sys.executable
    )

    host_paths: list[Path] = []
    if requirements:
        host_paths.append(
            install_dependencies(
                requirements,
                project.lathe_home / config.paths.deps,
                python,
                config.timeouts.eval_setup,
                workspace=project.root if container else None,
            )
        )
    host_paths.extend(project.source_paths)
    host_paths.append(Path(project.compile_path))

    try:
        if container:
            paths = [to_container_path(p, project.root) for p in host_paths]
        else:
            paths = [str(p) for p in host_paths]
    except DevcontainerError as e:
        raise ProcessBoundarySetupError(str(e)) from e

    return IsolatedEnvironment(
        python=python,
        paths=paths,
        cwd=project.root,
        container=container,
        requirements=requirements,
    )


def build_command(
    env: IsolatedEnvironment, main_form: str, init_form: str | None = None
) -> list[str]:
    """Return the child argv that evaluates init_form then main_form."""
    payload = json.dumps({"paths": env.paths, "init": init_form, "main": main_form})
    return [env.python, "-I", "-S", "-c", BOOTSTRAP, payload]


def normalize_exit_code(returncode: int) -> int:
    """Map a child return code to a shell-style exit status.

    A child killed by signal N (negative return code) becomes 128 + N.
    """
    if returncode < 0:
        return SIGNAL_EXIT_BASE + (-returncode)
    return returncode


def _child_env(project: Project) -> dict[str, str]:
    env = dict(os.environ)
    env[ENV_PROJECT_ROOT] = str(project.root)
    env[ENV_COMPILE_PATH] = project.compile_path
    return env


@hookable
def eval_in_project(
    project: Project,
    main_form: str,
    init_form: str | None = None,
    *,
    config: LatheConfig | None = None,
) -> int:
    """Evaluate main_form in an interpreter isolated to project's dependencies.

    init_form, if given, runs first in the same process and namespace, so
    it can pre-import modules main_form relies on.

    Args:
        project: Context whose dependencies and paths define the environment.
            Pass ``project.with_dependencies(...)`` or ``Project.synthetic(...)``
            to add dependencies for a single evaluation.
        main_form: Python source to execute.
        init_form: Optional Python source to execute first.
        config: lathe config; loaded for the project when omitted.

    Returns:
        The child's exit status: 0 on success, nonzero on reported failure,
        128 + N when killed by signal N, 124 on run timeout.

    Raises:
        ProcessBoundarySetupError: If the environment cannot be constructed.
    """
    if config is None:
        config = get_config(project.lathe_home)

    env = prepare_environment(project, config)
    argv = build_command(env, main_form, init_form)
    if env.container:
        argv = devcontainer_exec_args(argv, project.root)

    logger.info(
        "Evaluating in isolated %s for %s (%d path entries)",
        "devcontainer" if env.container else "process",
        project.name,
        len(env.paths),
    )
    try:
        result = subprocess.run(
            argv,
            cwd=env.cwd,
            env=_child_env(project),
            timeout=config.timeouts.eval_run,
        )
    except subprocess.TimeoutExpired:
        logger.error(
            "Isolated evaluation timed out after %ss for %s",
            config.timeouts.eval_run, project.name,
        )
        return EXIT_TIMEOUT
    except OSError as e:
        raise ProcessBoundarySetupError(f"Could not start {env.python}: {e}") from e

    code = normalize_exit_code(result.returncode)
    if code != 0:
        logger.info("Isolated evaluation exited with %d", code)
    return code
