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

"""Hooks system for altering task behaviour.

Plugins wrap tasks and internal functions without editing them. A wrapper
receives the next callable in the chain plus the call's arguments and
decides whether, when and how to continue:

    def timed(task, project, *args):
        start = time.monotonic()
        try:
            return task(project, *args)
        finally:
            print(f"took {time.monotonic() - start:.1f}s")

    registry.add_hook(lathe.tasks.test.test, timed)

Hook modules named in a project's ``hooks`` list are activated by the
dispatcher before the task runs.
"""

from lathe.hooks.base import (
    HookApplication,
    HookRegistry,
    active_hooks,
    hookable,
    target_key,
    using_hooks,
)
from lathe.hooks.loader import (
    HookLoadError,
    activate_hooks,
    load_hook_namespace,
)

__all__ = [
    # Composition
    "HookApplication",
    "HookRegistry",
    "active_hooks",
    "hookable",
    "target_key",
    "using_hooks",
    # Loading
    "HookLoadError",
    "activate_hooks",
    "load_hook_namespace",
]
