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

"""Run the project's tests with pytest in the isolated environment."""

import logging

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from lathe.eval import eval_in_project, parse_requirements
from lathe.registry import deftask

logger = logging.getLogger(__name__)

TEST_RUNNER = "pytest"

INIT_FORM = "import pytest\n"


def dependencies_for(project) -> list[str]:
    """dev-dependencies, plus pytest when they do not already name it."""
    deps = list(project.dev_dependencies)
    names = {canonicalize_name(Requirement(r).name) for r in parse_requirements(deps)}
    if TEST_RUNNER not in names:
        deps.append(TEST_RUNNER)
    return deps


def runner_args(project, args: tuple[str, ...]) -> list[str]:
    """Arguments for pytest.main.

    Test paths are used unless args already name a path or node id to run.
    """
    selects = any(
        not a.startswith("-") and (project.root / a.split("::", 1)[0]).exists()
        for a in args
    )
    if selects:
        return list(args)
    paths = [str(p) for p in project.test_paths if p.exists()]
    return [*paths, *args]


def main_form(arguments: list[str]) -> str:
    return (
        "import sys\n"
        f"sys.exit(int(pytest.main({arguments!r})))\n"
    )


@deftask(arglists=("[pytest args...]",))
def test(project, *args):
    """Run the project's tests.

    Tests run under pytest with the project's dependencies and
    dev-dependencies. Arguments are passed to pytest; without a test
    selection the project's test-paths are collected.
    """
    arguments = runner_args(project, args)
    logger.debug("Running pytest with %s", arguments)
    return eval_in_project(
        project.with_dependencies(*dependencies_for(project)),
        main_form(arguments),
        init_form=INIT_FORM,
    )
