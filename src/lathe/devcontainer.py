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

"""Devcontainer detection, mode resolution, and CLI wrapper.

lathe does NOT provide a devcontainer; it uses the target project's.
"""

import json
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class DevcontainerError(Exception):
    """Base error for container operations."""


class DevcontainerNotFoundError(DevcontainerError):
    """Raised when container mode is 'enabled' but no .devcontainer/ exists."""


def has_devcontainer(cwd: Path) -> bool:
    """Check if a devcontainer.json exists in the workspace."""
    return (cwd / ".devcontainer" / "devcontainer.json").is_file()


def should_use_container(mode: str, cwd: Path) -> bool:
    """Resolve container mode against workspace detection.

    Args:
        mode: One of "auto", "enabled", "disabled".
        cwd: Workspace root to check for .devcontainer/.

    Returns:
        True if container execution should be used.

    Raises:
        DevcontainerNotFoundError: If mode is "enabled" but no devcontainer found.
    """
    if mode == "disabled":
        return False
    if mode == "enabled":
        if not has_devcontainer(cwd):
            raise DevcontainerNotFoundError(
                f"Container mode is 'enabled' but no .devcontainer/devcontainer.json "
                f"found in {cwd}"
            )
        return True
    # auto
    return has_devcontainer(cwd)


def get_workspace_folder(workspace: Path) -> str:
    """Return where the workspace is mounted inside the container.

    Reads workspaceFolder from devcontainer.json; the devcontainer CLI
    otherwise mounts at /workspaces/<folder-name>.
    """
    devcontainer_json = workspace / ".devcontainer" / "devcontainer.json"
    if devcontainer_json.exists():
        try:
            configured = json.loads(devcontainer_json.read_text()).get("workspaceFolder")
            if configured:
                return configured
        except (json.JSONDecodeError, OSError, AttributeError):
            logger.warning("Could not read workspaceFolder from %s", devcontainer_json)
    return f"/workspaces/{workspace.name or 'workspace'}"


def to_container_path(path: Path, workspace: Path) -> str:
    """Translate a host path under workspace to its in-container location.

    Raises:
        DevcontainerError: If path is outside the workspace (not mounted).
    """
    try:
        relative = path.resolve().relative_to(workspace.resolve())
    except ValueError:
        raise DevcontainerError(f"{path} is outside the container workspace {workspace}")
    folder = get_workspace_folder(workspace).rstrip("/")
    return f"{folder}/{relative.as_posix()}" if relative.parts else folder


# --- CLI wrapper ---


def devcontainer_up(workspace_folder: Path, timeout: int = 300) -> None:
    """Start container for workspace. Idempotent, safe to call if already running.

    Args:
        workspace_folder: Path to the workspace (must contain .devcontainer/).
        timeout: Timeout in seconds (default 300s / 5 min).
    """
    logger.info("Starting devcontainer for %s (timeout=%ds)", workspace_folder, timeout)
    try:
        result = subprocess.run(
            ["devcontainer", "up", "--workspace-folder", str(workspace_folder)],
            capture_output=True, text=True, timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.error(
            "devcontainer up timed out after %ds for %s", timeout, workspace_folder
        )
        raise DevcontainerError(
            f"devcontainer up timed out after {timeout}s for {workspace_folder}"
        )
    except FileNotFoundError:
        raise DevcontainerError(
            "devcontainer CLI not found. Install: npm install -g @devcontainers/cli"
        )
    if result.returncode != 0:
        logger.error(
            "devcontainer up failed (exit %d) for %s: %s",
            result.returncode, workspace_folder, result.stderr,
        )
        raise DevcontainerError(
            f"devcontainer up failed (exit {result.returncode}) "
            f"for {workspace_folder}\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )


def devcontainer_exec_args(cmd: list[str] | str, workspace_folder: Path) -> list[str]:
    """Build the argv that runs cmd inside the container.

    A str is wrapped in ["sh", "-c", cmd] to support shell syntax.
    """
    if isinstance(cmd, str):
        cmd = ["sh", "-c", cmd]
    return ["devcontainer", "exec", "--workspace-folder", str(workspace_folder)] + cmd


def devcontainer_exec(
    cmd: list[str] | str,
    workspace_folder: Path,
    timeout: int | None = None,
) -> subprocess.CompletedProcess:
    """Run command inside the container, capturing output.

    Args:
        cmd: Command as list or shell string.
        workspace_folder: Path to the workspace (must contain .devcontainer/).
        timeout: Optional timeout in seconds.
    """
    args = devcontainer_exec_args(cmd, workspace_folder)
    kwargs: dict = {"capture_output": True, "text": True, "stdin": subprocess.DEVNULL}
    if timeout is not None:
        kwargs["timeout"] = timeout
    return subprocess.run(args, **kwargs)


def is_container_running(workspace_folder: Path, timeout: int = 30) -> bool:
    """Check if a devcontainer is running for this workspace.

    Returns:
        True if container is running, False if not running or check timed out.
    """
    try:
        result = subprocess.run(
            ["devcontainer", "up", "--workspace-folder", str(workspace_folder),
             "--expect-existing-container"],
            capture_output=True, text=True, timeout=timeout,
        )
        return result.returncode == 0
    except subprocess.TimeoutExpired:
        logger.warning(
            "Container status check timed out after %ds for %s",
            timeout, workspace_folder,
        )
        return False
    except FileNotFoundError:
        return False


def ensure_container_running(
    workspace_folder: Path,
    python: str = "python3",
    timeout_up: int = 300,
    timeout_check: int = 30,
) -> None:
    """Lazy up: start container if not already running. Health check on first start.

    On first successful start, verifies the Python interpreter used for
    isolated evaluation exists inside the container.

    Raises:
        DevcontainerError: If the container cannot start or has no interpreter.
    """
    logger.debug("Checking container status for %s", workspace_folder)
    if not is_container_running(workspace_folder, timeout=timeout_check):
        devcontainer_up(workspace_folder, timeout=timeout_up)
        logger.debug("Running %s health check in container for %s", python, workspace_folder)
        result = devcontainer_exec([python, "--version"], workspace_folder, timeout=15)
        if result.returncode != 0:
            logger.error(
                "%s not available inside devcontainer for %s: %s",
                python, workspace_folder, result.stderr,
            )
            raise DevcontainerError(
                f"{python} is not available inside the devcontainer. "
                f"Add it to your Dockerfile or set container_python."
            )
