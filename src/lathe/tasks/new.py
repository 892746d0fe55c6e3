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

"""Generate the skeleton of a new project."""

import logging
import re
from pathlib import Path

import yaml
from rich.console import Console
from rich.markup import escape

from lathe.constants import DESCRIPTOR_FILENAME, EXIT_FAILURE, LATHE_DIR_NAME
from lathe.registry import deftask

logger = logging.getLogger(__name__)

console = Console()

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")

GITIGNORE = f"""\
/{LATHE_DIR_NAME}/
/classes/
__pycache__/
*.pyc
"""


def package_name(name: str) -> str:
    """Importable package name for a project name: 'my-app' -> 'my_app'."""
    return re.sub(r"[^0-9a-zA-Z_]", "_", name).lower()


def _split(declared: str) -> tuple[str, str] | None:
    parts = declared.split("/")
    if len(parts) == 1:
        group = name = parts[0]
    elif len(parts) == 2:
        group, name = parts
    else:
        return None
    if not (_NAME_RE.match(group) and _NAME_RE.match(name)):
        return None
    return group, name


def write_skeleton(target: Path, declared: str, name: str) -> list[Path]:
    """Write the skeleton files under target and return their paths."""
    pkg = package_name(name)
    descriptor = {
        "project": declared,
        "version": "0.1.0-SNAPSHOT",
        "description": f"The {name} project",
        "dependencies": [],
        "dev-dependencies": ["pytest"],
        "main": f"{pkg}",
    }
    files = {
        DESCRIPTOR_FILENAME: yaml.safe_dump(descriptor, sort_keys=False),
        f"src/{pkg}/__init__.py": (
            f'"""{name}."""\n\n\n'
            "def main():\n"
            '    print("Hello, World!")\n\n\n'
            'if __name__ == "__main__":\n'
            "    main()\n"
        ),
        f"src/{pkg}/__main__.py": f"from {pkg} import main\n\nmain()\n",
        f"tests/test_{pkg}.py": (
            f"from {pkg} import main\n\n\n"
            "def test_main(capsys):\n"
            "    main()\n"
            '    assert capsys.readouterr().out == "Hello, World!\\n"\n'
        ),
        ".gitignore": GITIGNORE,
    }
    written = []
    for relative, content in files.items():
        path = target / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        written.append(path)
    return written


@deftask(requires_project=False, arglists=("<[group/]name>", "<[group/]name> <dir>"))
def new(project, declared=None, directory=None, *_rest):
    """Generate a new project skeleton.

    The project is created in a directory named after the project unless a
    directory is given. The directory must not already exist.
    """
    if not declared:
        console.print(
            "[red]Error:[/red] missing project name. "
            + escape("Usage: lathe new <[group/]name> [dir]")
        )
        return EXIT_FAILURE

    split = _split(declared)
    if split is None:
        console.print(f"[red]Error:[/red] invalid project name '{escape(declared)}'")
        return EXIT_FAILURE
    _, name = split

    target = Path(directory or name).resolve()
    if target.exists():
        console.print(f"[red]Error:[/red] {escape(str(target))} already exists")
        return EXIT_FAILURE

    written = write_skeleton(target, declared, name)
    logger.debug("Wrote %d file(s) under %s", len(written), target)
    console.print(f"[green]Generated project[/green] {escape(declared)} in {escape(str(target))}")
    return 0
