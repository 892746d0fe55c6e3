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

"""Names, paths, and fixed tables shared across lathe.

Directory layout inside a project root:
- project.yaml        the project descriptor
- classes/            default compile path
- .lathe/config.json  project-level lathe config
- .lathe/deps/        isolated dependency installs, one directory per digest
"""

from typing import Final

DESCRIPTOR_FILENAME: Final = "project.yaml"
LATHE_DIR_NAME: Final = ".lathe"
DEPS_DIR_NAME: Final = "deps"
DEFAULT_COMPILE_DIR: Final = "classes"
DEFAULT_SOURCE_PATHS: Final[tuple[str, ...]] = ("src",)
DEFAULT_TEST_PATHS: Final[tuple[str, ...]] = ("tests",)

# Task modules live under this package; "lathe <cmd>" imports lathe.tasks.<cmd>.
TASK_NAMESPACE_PREFIX: Final = "lathe.tasks"
# Entry point group for third-party task namespaces.
TASK_ENTRY_POINT_GROUP: Final = "lathe.tasks"

# Creates projects, so it is never given one whatever its metadata says.
BOOTSTRAP_COMMAND: Final = "new"
DEFAULT_COMMAND: Final = "help"

ALIASES: Final[dict[str, str]] = {
    "--help": "help",
    "-h": "help",
    "-?": "help",
}

# Exit codes chosen by the dispatcher and process boundary.
EXIT_SUCCESS: Final = 0
EXIT_FAILURE: Final = 1
EXIT_TIMEOUT: Final = 124
EXIT_INTERRUPTED: Final = 130
SIGNAL_EXIT_BASE: Final = 128
