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

"""Run a project module in the isolated environment."""

from rich.console import Console

from lathe.constants import EXIT_FAILURE
from lathe.eval import eval_in_project
from lathe.registry import deftask

console = Console(stderr=True)


def run_form(module: str, args: tuple[str, ...] | list[str]) -> str:
    """Source that runs module as __main__ with args as its argv."""
    argv = [module, *args]
    return (
        "import runpy, sys\n"
        f"sys.argv = {argv!r}\n"
        f"runpy.run_module({module!r}, run_name='__main__', alter_sys=True)\n"
    )


@deftask(arglists=("[args...]", "-m <module> [args...]"))
def run(project, *args):
    """Run the project's main module, or another one with -m.

    The module runs as __main__ with only the project's dependencies and
    source paths importable. The remaining arguments become its sys.argv.
    The module's exit status is returned.
    """
    args = list(args)
    if args and args[0] == "-m":
        if len(args) < 2:
            console.print("[red]Error:[/red] -m requires a module name")
            return EXIT_FAILURE
        module, args = args[1], args[2:]
    else:
        module = project.get("main")
        if not module:
            console.print(
                "[red]Error:[/red] no 'main' module in project.yaml; "
                "use lathe run -m <module>"
            )
            return EXIT_FAILURE
    return eval_in_project(project, run_form(module, args))
