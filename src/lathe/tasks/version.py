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

"""Report the lathe and Python versions."""

import platform

from rich.console import Console

from lathe import __version__
from lathe.registry import deftask

console = Console()


@deftask(requires_project=False)
def version(project, *_args):
    """Print version for lathe and the current Python."""
    console.print(
        f"lathe {__version__} on Python {platform.python_version()} "
        f"({platform.python_implementation()})"
    )
