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

"""Project context and the project.yaml descriptor loader.

A descriptor looks like::

    project: acme/widget
    version: "1.0"
    dependencies:
      - requests>=2.31
    compile-path: build/classes
    hooks:
      - widget_hooks

``project`` and ``version`` are required; every other key is copied into the
context verbatim. ``name``, ``group`` and ``root`` are always computed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from lathe.constants import (
    DEFAULT_COMPILE_DIR,
    DEFAULT_SOURCE_PATHS,
    DEFAULT_TEST_PATHS,
    DESCRIPTOR_FILENAME,
    LATHE_DIR_NAME,
)

logger = logging.getLogger(__name__)

COMPUTED_KEYS = ("name", "group", "version", "root")


class DescriptorError(Exception):
    """Raised when a project descriptor is missing or cannot be evaluated."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


@dataclass(frozen=True, eq=False)
class Project(Mapping[str, Any]):
    """Read-only build configuration for one project.

    Behaves as a mapping of descriptor keys. Derived values are new
    Project instances; the underlying data is never edited in place.
    """

    data: Mapping[str, Any]

    def __post_init__(self) -> None:
        missing = [k for k in COMPUTED_KEYS if k not in self.data]
        if missing:
            raise ValueError(f"Project is missing required keys: {', '.join(missing)}")
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Project({self.group}/{self.name} {self.version} @ {self.root})"

    @property
    def name(self) -> str:
        return self.data["name"]

    @property
    def group(self) -> str:
        return self.data["group"]

    @property
    def version(self) -> str:
        return self.data["version"]

    @property
    def root(self) -> Path:
        return Path(self.data["root"])

    @property
    def lathe_home(self) -> Path:
        return self.root / LATHE_DIR_NAME

    @property
    def compile_path(self) -> str:
        """The compile-path override, or <root>/classes/.

        An absolute override is returned as written; a relative one is
        joined to the root.
        """
        override = self.data.get("compile-path")
        if override:
            return os.path.join(self.root, str(override))
        return f"{self.root}/{DEFAULT_COMPILE_DIR}/"

    @property
    def dependencies(self) -> tuple[str, ...]:
        return tuple(_as_list(self.data.get("dependencies")))

    @property
    def dev_dependencies(self) -> tuple[str, ...]:
        return tuple(_as_list(self.data.get("dev-dependencies")))

    @property
    def source_paths(self) -> list[Path]:
        paths = _as_list(self.data.get("source-paths")) or list(DEFAULT_SOURCE_PATHS)
        return [self.root / p for p in paths]

    @property
    def test_paths(self) -> list[Path]:
        paths = _as_list(self.data.get("test-paths")) or list(DEFAULT_TEST_PATHS)
        return [self.root / p for p in paths]

    @property
    def hooks(self) -> tuple[str, ...]:
        return tuple(_as_list(self.data.get("hooks")))

    def assoc(self, updates: Mapping[str, Any] | None = None, **kwargs: Any) -> Project:
        """Return a new Project with the given keys replaced or added."""
        merged = dict(self.data)
        merged.update(updates or {})
        merged.update(kwargs)
        return Project(merged)

    def with_dependencies(self, *specs: str) -> Project:
        """Return a new Project whose dependency list also contains specs."""
        deps = list(self.dependencies)
        for spec in specs:
            if spec not in deps:
                deps.append(spec)
        return self.assoc({"dependencies": deps})

    @classmethod
    def synthetic(
        cls,
        dependencies: list[str] | tuple[str, ...] = (),
        root: Path | None = None,
        name: str = "lathe-eval",
        **extra: Any,
    ) -> Project:
        """Build a context that is not backed by a descriptor.

        Used to run one-off code in an isolated environment holding only
        the given dependencies.
        """
        data: dict[str, Any] = dict(extra)
        data.update(
            name=name,
            group=name,
            version="0.0.0",
            root=str((root or Path.cwd()).resolve()),
            dependencies=list(dependencies),
        )
        return cls(data)


def _split_project_name(raw: Any, path: Path) -> tuple[str, str]:
    if not isinstance(raw, str) or not raw.strip():
        raise DescriptorError(path, "'project' must be a non-empty string")
    parts = raw.strip().split("/")
    if len(parts) == 1:
        return parts[0], parts[0]
    if len(parts) == 2 and all(parts):
        return parts[1], parts[0]
    raise DescriptorError(path, f"invalid project name '{raw}' (expected name or group/name)")


def parse_descriptor(raw: Any, path: Path) -> Project:
    """Turn an already-parsed descriptor document into a Project.

    Args:
        raw: The document produced by the YAML parser.
        path: Resolved path of the descriptor; its parent becomes ``root``.

    Raises:
        DescriptorError: If the document lacks the required declaration.
    """
    if not isinstance(raw, dict):
        raise DescriptorError(path, "descriptor must be a mapping")
    if "project" not in raw:
        raise DescriptorError(path, "missing required key 'project'")
    if "version" not in raw or raw["version"] is None:
        raise DescriptorError(path, "missing required key 'version'")

    name, group = _split_project_name(raw["project"], path)
    version = raw["version"]
    if isinstance(version, float):
        # YAML reads 1.10 as the float 1.1; the written digits are already lost.
        raise DescriptorError(
            path,
            f"'version' {version!r} was read as a number; quote it, "
            'e.g. version: "1.10"',
        )
    if isinstance(version, int) and not isinstance(version, bool):
        version = str(version)
    if not isinstance(version, str):
        raise DescriptorError(path, "'version' must be a string")

    data: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "project":
            continue
        if key in ("name", "group", "root"):
            logger.warning("Ignoring '%s' in %s; it is computed by lathe", key, path)
            continue
        data[str(key)] = value

    data.update(name=name, group=group, version=version, root=str(path.parent))
    project = Project(data)
    logger.debug("Loaded project %r from %s", project, path)
    return project


def read_project(path: Path | str | None = None) -> Project:
    """Read a project descriptor and return a fresh Project.

    Args:
        path: Descriptor file. Defaults to project.yaml in the current directory.

    Raises:
        DescriptorError: If the file is missing, unreadable or invalid.
    """
    descriptor = Path(path) if path is not None else Path(DESCRIPTOR_FILENAME)
    descriptor = descriptor.resolve()

    if not descriptor.is_file():
        raise DescriptorError(descriptor, "project descriptor not found")

    try:
        content = descriptor.read_text()
    except OSError as e:
        raise DescriptorError(descriptor, f"cannot read descriptor: {e}") from e

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise DescriptorError(descriptor, f"invalid YAML: {e}") from e

    return parse_descriptor(raw, descriptor)
