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

"""lathe CLI - project automation entry point.

Everything after the command name is handed to the task untouched, so task
flags (including ``--help``) never reach click.
"""

import click

from lathe.constants import DEFAULT_COMMAND
from lathe.dispatch import main


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": [],
    }
)
@click.argument("command", required=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def cli(ctx: click.Context, command: str | None, args: tuple[str, ...]) -> None:
    """Run a lathe task: lathe <command> [args...]"""
    ctx.exit(main(command or DEFAULT_COMMAND, *args))


if __name__ == "__main__":
    cli()
