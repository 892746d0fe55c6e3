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

"""Remove build output and the dependency cache."""

import logging
import shutil
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from lathe.config import get_config
from lathe.dispatch import current_compile_path
from lathe.registry import deftask

logger = logging.getLogger(__name__)

console = Console()


def _remove(path: Path, root: Path) -> bool:
    try:
        relative = path.resolve().relative_to(root.resolve())
    except ValueError:
        relative = None
    if not relative or not relative.parts:
        logger.warning("Not removing %s: it is not inside the project root %s", path, root)
        return False
    if not path.exists():
        return False
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink()
    logger.info("Removed %s", path)
    return True


@deftask()
def clean(project, *_args):
    """Remove the compile path and cached dependency installs."""
    compile_path = current_compile_path() or project.compile_path
    targets = [
        Path(compile_path),
        project.lathe_home / get_config(project.lathe_home).paths.deps,
    ]
    removed = [t for t in targets if _remove(t, project.root)]
    if removed:
        for path in removed:
            console.print(f"Removed {escape(str(path))}")
    else:
        console.print("[dim]Nothing to clean.[/dim]")
