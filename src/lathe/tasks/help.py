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

"""List tasks, or describe one."""

import inspect

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from lathe.constants import EXIT_FAILURE
from lathe.registry import (
    TaskEntry,
    TaskNotFoundError,
    TaskRegistry,
    deftask,
    dispatching_registry,
)

console = Console()


def _describe(entry: TaskEntry) -> None:
    console.print(f"[bold]lathe {escape(entry.name)}[/bold]  [dim]({escape(entry.namespace)})[/dim]")
    console.print()
    doc = inspect.getdoc(entry.func)
    console.print(escape(doc) if doc else "[dim]No documentation.[/dim]")
    if entry.arglists:
        console.print()
        console.print("[bold]Arguments:[/bold]")
        for arglist in entry.arglists:
            console.print(f"  lathe {escape(entry.name)} {escape(arglist)}")


@deftask(requires_project=False, arglists=("", "<task>"))
def help_(project, task=None, *_rest):
    """Display a list of tasks or help for a given task.

    With no argument, every built-in and plugin task is listed with its
    summary. With a task name, that task's full documentation is shown.
    """
    registry = dispatching_registry() or TaskRegistry()

    if task is not None:
        try:
            entry = registry.resolve(task)
        except TaskNotFoundError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            return EXIT_FAILURE
        _describe(entry)
        return 0

    table = Table(title="lathe tasks", show_header=True)
    table.add_column("Task", style="cyan")
    table.add_column("Description")
    table.add_column("Provided by", style="dim")
    for entry in registry.load_all():
        table.add_row(entry.name, escape(entry.summary), entry.namespace)
    console.print(table)

    aliases = ", ".join(f"{a} -> {t}" for a, t in sorted(registry.aliases.items()))
    if aliases:
        console.print(f"[dim]Aliases: {escape(aliases)}[/dim]")
    console.print("Run [bold]lathe help <task>[/bold] for details on a task.")
    return 0
