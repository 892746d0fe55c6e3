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

"""Configuration system for lathe.

Provides hierarchical configuration with precedence:
1. Environment variables (highest)
2. Project config (<root>/.lathe/config.json)
3. Global config (~/.lathe_config.json)
4. Hardcoded defaults (lowest)

This configures lathe itself. Project settings (name, dependencies, hooks)
live in the project descriptor, see lathe.project.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from lathe.constants import DEPS_DIR_NAME

logger = logging.getLogger(__name__)

# Valid values for enums
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_HOOK_LOAD_POLICIES = ("fail", "warn")
VALID_CONTAINER_MODES = ("auto", "enabled", "disabled")

# Hardcoded defaults
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_HOOK_LOAD_POLICY = "fail"
DEFAULT_CONTAINER_MODE = "auto"
DEFAULT_CONTAINER_PYTHON = "python3"
DEFAULT_EVAL_SETUP_TIMEOUT = 600
DEFAULT_SHUTDOWN_TIMEOUT = 5
DEFAULT_DEPS_DIR = DEPS_DIR_NAME

# Environment variable names
ENV_LOG_LEVEL = "LATHE_LOG_LEVEL"
ENV_HOOK_LOAD_POLICY = "LATHE_HOOK_LOAD_POLICY"
ENV_CONTAINER_MODE = "LATHE_CONTAINER_MODE"
ENV_PYTHON = "LATHE_PYTHON"
ENV_TIMEOUT_EVAL_SETUP = "LATHE_TIMEOUT_EVAL_SETUP"
ENV_TIMEOUT_EVAL_RUN = "LATHE_TIMEOUT_EVAL_RUN"
ENV_TIMEOUT_SHUTDOWN = "LATHE_TIMEOUT_SHUTDOWN"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


class ConfigLoadError(Exception):
    """Raised when configuration file cannot be loaded."""

    pass


def _check_unknown(cls: type, data: dict[str, Any], section: str) -> None:
    known_fields = {f.name for f in fields(cls)}
    unknown = set(data.keys()) - known_fields
    if unknown:
        raise ConfigValidationError(
            f"Unknown fields in {section} config: {', '.join(sorted(unknown))}"
        )


@dataclass
class DefaultsConfig:
    """Default configuration values."""

    log_level: str = DEFAULT_LOG_LEVEL
    hook_load_policy: str = DEFAULT_HOOK_LOAD_POLICY
    container_mode: str = DEFAULT_CONTAINER_MODE
    python: str | None = None
    container_python: str = DEFAULT_CONTAINER_PYTHON

    def validate(self) -> None:
        """Validate configuration values."""
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"Invalid log_level '{self.log_level}'. "
                f"Valid values: {', '.join(VALID_LOG_LEVELS)}"
            )
        if self.hook_load_policy not in VALID_HOOK_LOAD_POLICIES:
            raise ConfigValidationError(
                f"Invalid hook_load_policy '{self.hook_load_policy}'. "
                f"Valid values: {', '.join(VALID_HOOK_LOAD_POLICIES)}"
            )
        if self.container_mode not in VALID_CONTAINER_MODES:
            raise ConfigValidationError(
                f"Invalid container_mode '{self.container_mode}'. "
                f"Valid values: {', '.join(VALID_CONTAINER_MODES)}"
            )

    def to_dict(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "log_level": self.log_level,
            "hook_load_policy": self.hook_load_policy,
            "container_mode": self.container_mode,
            "python": self.python,
            "container_python": self.container_python,
        }
        if exclude_none:
            return {k: v for k, v in result.items() if v is not None}
        return result

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], strict: bool = False
    ) -> "DefaultsConfig":
        """Create from dictionary."""
        if strict:
            _check_unknown(cls, data, "defaults")

        return cls(
            log_level=data.get("log_level", DEFAULT_LOG_LEVEL),
            hook_load_policy=data.get("hook_load_policy", DEFAULT_HOOK_LOAD_POLICY),
            container_mode=data.get("container_mode", DEFAULT_CONTAINER_MODE),
            python=data.get("python"),
            container_python=data.get("container_python", DEFAULT_CONTAINER_PYTHON),
        )


@dataclass
class TimeoutConfig:
    """Timeout configuration values, in seconds."""

    eval_setup: int = DEFAULT_EVAL_SETUP_TIMEOUT
    eval_run: int | None = None
    shutdown: int = DEFAULT_SHUTDOWN_TIMEOUT

    def validate(self) -> None:
        """Validate timeout values."""
        for name in ("eval_setup", "eval_run", "shutdown"):
            value = getattr(self, name)
            if value is None and name == "eval_run":
                continue
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigValidationError(
                    f"{name} timeout must be an integer, got {value!r}"
                )
        if self.eval_setup <= 0:
            raise ConfigValidationError(
                f"eval_setup timeout must be positive, got {self.eval_setup}"
            )
        if self.eval_run is not None and self.eval_run <= 0:
            raise ConfigValidationError(
                f"eval_run timeout must be positive, got {self.eval_run}"
            )
        if self.shutdown < 0:
            raise ConfigValidationError(
                f"shutdown timeout must not be negative, got {self.shutdown}"
            )

    def to_dict(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "eval_setup": self.eval_setup,
            "eval_run": self.eval_run,
            "shutdown": self.shutdown,
        }
        if exclude_none:
            return {k: v for k, v in result.items() if v is not None}
        return result

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], strict: bool = False
    ) -> "TimeoutConfig":
        """Create from dictionary."""
        if strict:
            _check_unknown(cls, data, "timeouts")

        return cls(
            eval_setup=data.get("eval_setup", DEFAULT_EVAL_SETUP_TIMEOUT),
            eval_run=data.get("eval_run"),
            shutdown=data.get("shutdown", DEFAULT_SHUTDOWN_TIMEOUT),
        )


@dataclass
class PathsConfig:
    """Path configuration, relative to <root>/.lathe."""

    deps: str = DEFAULT_DEPS_DIR

    def to_dict(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"deps": self.deps}

    @classmethod
    def from_dict(cls, data: dict[str, Any], strict: bool = False) -> "PathsConfig":
        """Create from dictionary."""
        if strict:
            _check_unknown(cls, data, "paths")

        return cls(deps=data.get("deps", DEFAULT_DEPS_DIR))


@dataclass
class LatheConfig:
    """Main configuration container."""

    version: str = "1"
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def validate(self) -> None:
        """Validate entire configuration."""
        self.defaults.validate()
        self.timeouts.validate()

    def to_dict(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "version": self.version,
            "defaults": self.defaults.to_dict(exclude_none),
            "timeouts": self.timeouts.to_dict(exclude_none),
            "paths": self.paths.to_dict(exclude_none),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], strict: bool = False) -> "LatheConfig":
        """Create from dictionary."""
        if strict:
            known_fields = {"version", "defaults", "timeouts", "paths"}
            unknown = set(data.keys()) - known_fields
            if unknown:
                raise ConfigValidationError(
                    f"Unknown fields in config: {', '.join(sorted(unknown))}"
                )

        return cls(
            version=data.get("version", "1"),
            defaults=DefaultsConfig.from_dict(data.get("defaults", {}), strict),
            timeouts=TimeoutConfig.from_dict(data.get("timeouts", {}), strict),
            paths=PathsConfig.from_dict(data.get("paths", {}), strict),
        )


def get_global_config_path() -> Path:
    """Get path to global config file."""
    return Path.home() / ".lathe_config.json"


def get_project_config_path(lathe_home: Path) -> Path:
    """Get path to project config file."""
    return lathe_home / "config.json"


def load_config_file(path: Path, strict: bool = False) -> LatheConfig:
    """Load configuration from a JSON file.

    Args:
        path: Path to the config file
        strict: If True, fail on unknown fields

    Returns:
        LatheConfig instance (defaults if the file does not exist)

    Raises:
        ConfigLoadError: If file cannot be read or parsed
        ConfigValidationError: If strict=True and unknown fields found
    """
    if not path.exists():
        return LatheConfig()

    try:
        content = path.read_text()
    except PermissionError as e:
        raise ConfigLoadError(f"Permission denied reading {path}: {e}")
    except OSError as e:
        raise ConfigLoadError(f"Error reading {path}: {e}")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigLoadError(f"Invalid JSON in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config in {path} must be a JSON object")

    return LatheConfig.from_dict(data, strict=strict)


def merge_configs(*configs: LatheConfig) -> LatheConfig:
    """Merge multiple configs with later configs taking precedence.

    Values equal to the hardcoded default in a later config do NOT override
    earlier values, so partial configs layer properly.

    Args:
        *configs: Configs to merge (first is base, last has highest priority)

    Returns:
        Merged LatheConfig
    """
    if not configs:
        return LatheConfig()

    result = copy.deepcopy(configs[0])

    for config in configs[1:]:
        if config.defaults.log_level != DEFAULT_LOG_LEVEL:
            result.defaults.log_level = config.defaults.log_level
        if config.defaults.hook_load_policy != DEFAULT_HOOK_LOAD_POLICY:
            result.defaults.hook_load_policy = config.defaults.hook_load_policy
        if config.defaults.container_mode != DEFAULT_CONTAINER_MODE:
            result.defaults.container_mode = config.defaults.container_mode
        if config.defaults.python is not None:
            result.defaults.python = config.defaults.python
        if config.defaults.container_python != DEFAULT_CONTAINER_PYTHON:
            result.defaults.container_python = config.defaults.container_python

        if config.timeouts.eval_setup != DEFAULT_EVAL_SETUP_TIMEOUT:
            result.timeouts.eval_setup = config.timeouts.eval_setup
        if config.timeouts.eval_run is not None:
            result.timeouts.eval_run = config.timeouts.eval_run
        if config.timeouts.shutdown != DEFAULT_SHUTDOWN_TIMEOUT:
            result.timeouts.shutdown = config.timeouts.shutdown

        if config.paths.deps != DEFAULT_DEPS_DIR:
            result.paths.deps = config.paths.deps

    return result


def _int_from_env(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got '{value}'")


def apply_env_overrides(config: LatheConfig) -> LatheConfig:
    """Apply environment variable overrides to config.

    Args:
        config: Base configuration

    Returns:
        New config with env var overrides applied

    Raises:
        ConfigValidationError: If env var value is invalid
    """
    result = copy.deepcopy(config)

    if log_level := os.environ.get(ENV_LOG_LEVEL):
        result.defaults.log_level = log_level.upper()

    if policy := os.environ.get(ENV_HOOK_LOAD_POLICY):
        result.defaults.hook_load_policy = policy.lower()

    if container_mode := os.environ.get(ENV_CONTAINER_MODE):
        result.defaults.container_mode = container_mode.lower()

    if python := os.environ.get(ENV_PYTHON):
        result.defaults.python = python

    if setup_str := os.environ.get(ENV_TIMEOUT_EVAL_SETUP):
        result.timeouts.eval_setup = _int_from_env(ENV_TIMEOUT_EVAL_SETUP, setup_str)

    if run_str := os.environ.get(ENV_TIMEOUT_EVAL_RUN):
        result.timeouts.eval_run = _int_from_env(ENV_TIMEOUT_EVAL_RUN, run_str)

    if shutdown_str := os.environ.get(ENV_TIMEOUT_SHUTDOWN):
        result.timeouts.shutdown = _int_from_env(ENV_TIMEOUT_SHUTDOWN, shutdown_str)

    return result


def get_config(lathe_home: Path | None = None) -> LatheConfig:
    """Load and merge configuration from all sources.

    Loads in order (later sources override earlier):
    1. Hardcoded defaults
    2. Global config (~/.lathe_config.json)
    3. Project config (<root>/.lathe/config.json)
    4. Environment variables

    Args:
        lathe_home: Path to the project's .lathe directory, if any

    Returns:
        Merged and validated configuration

    Raises:
        ConfigLoadError: If a config file cannot be read or parsed
        ConfigValidationError: If the merged configuration is invalid
    """
    base_config = LatheConfig()
    global_config = load_config_file(get_global_config_path())

    project_config = LatheConfig()
    if lathe_home is not None:
        project_config = load_config_file(get_project_config_path(lathe_home))

    merged = apply_env_overrides(merge_configs(base_config, global_config, project_config))
    merged.validate()
    logger.debug("Resolved config: %s", merged.to_dict(exclude_none=True))
    return merged
