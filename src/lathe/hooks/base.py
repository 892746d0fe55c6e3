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

"""Hook registry and call-time composition.

A hook is a wrapper ``wrapper(next_call, *args, **kwargs)`` registered
against a target. Composing n wrappers nests them by registration order:
the first registered wrapper is outermost, so with W1 then W2 a call runs

    W1 pre -> W2 pre -> original -> W2 post -> W1 post

A wrapper that never calls ``next_call`` short-circuits every layer inside it.
"""

from __future__ import annotations

import contextlib
import functools
import logging
from collections.abc import Callable, Iterator
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Wrapper = Callable[..., Any]

ORIGINAL_ATTR = "__lathe_original__"

_active_registry: ContextVar["HookRegistry | None"] = ContextVar(
    "lathe_active_hooks", default=None
)


def target_key(target: Any) -> str:
    """Return the registry key for a hook target.

    Strings are used as-is, callables map to ``module.qualname`` and task
    entries map to the key of their function.
    """
    if isinstance(target, str):
        return target
    func = getattr(target, "func", None)
    if func is not None and callable(func) and not callable(target):
        target = func
    if not callable(target):
        raise TypeError(f"Cannot use {target!r} as a hook target")
    original = getattr(target, ORIGINAL_ATTR, target)
    module = getattr(original, "__module__", None)
    qualname = getattr(original, "__qualname__", None)
    if module is None or qualname is None:
        raise TypeError(f"Cannot use {target!r} as a hook target")
    return f"{module}.{qualname}"


def _original_callable(target: Any) -> Callable[..., Any]:
    func = getattr(target, "func", None)
    if func is not None and callable(func) and not callable(target):
        target = func
    if not callable(target):
        raise TypeError(f"No original callable available for hook target {target!r}")
    return getattr(target, ORIGINAL_ATTR, target)


@dataclass
class HookApplication:
    """Record of a single hook registration."""

    target: str
    wrapper: str


class HookRegistry:
    """Ordered wrapper lists keyed by target.

    Registration is expected to happen during a single-threaded loading
    phase, before any task runs.
    """

    def __init__(self) -> None:
        self._hooks: dict[str, list[Wrapper]] = {}
        self._activated: set[str] = set()

    def add_hook(self, target: Any, wrapper: Wrapper) -> bool:
        """Append wrapper to target's chain.

        Returns:
            False if this exact wrapper was already registered for target.
        """
        if not callable(wrapper):
            raise TypeError(f"Hook wrapper must be callable, got {wrapper!r}")
        key = target_key(target)
        chain = self._hooks.setdefault(key, [])
        # == so that bound methods of the same object and function match.
        if any(existing == wrapper for existing in chain):
            logger.debug("Hook %r already registered for %s", wrapper, key)
            return False
        chain.append(wrapper)
        logger.debug("Registered hook %r for %s (%d total)", wrapper, key, len(chain))
        return True

    def remove_hook(self, target: Any, wrapper: Wrapper) -> bool:
        """Remove wrapper from target's chain. Returns False if absent."""
        key = target_key(target)
        chain = self._hooks.get(key, [])
        for i, existing in enumerate(chain):
            if existing == wrapper:
                del chain[i]
                if not chain:
                    del self._hooks[key]
                return True
        return False

    def clear_hooks(self, target: Any = None) -> None:
        """Drop every wrapper for target, or for all targets when None."""
        if target is None:
            self._hooks.clear()
        else:
            self._hooks.pop(target_key(target), None)

    def hooks_for(self, target: Any) -> list[Wrapper]:
        return list(self._hooks.get(target_key(target), ()))

    def applications(self) -> list[HookApplication]:
        return [
            HookApplication(target=key, wrapper=getattr(w, "__qualname__", repr(w)))
            for key, chain in sorted(self._hooks.items())
            for w in chain
        ]

    def snapshot(self) -> dict[str, list[Wrapper]]:
        """Copy of the current registrations, for restore()."""
        return {key: list(chain) for key, chain in self._hooks.items()}

    def restore(self, snapshot: dict[str, list[Wrapper]]) -> None:
        self._hooks = {key: list(chain) for key, chain in snapshot.items() if chain}

    def is_activated(self, namespace: str) -> bool:
        return namespace in self._activated

    def mark_activated(self, namespace: str) -> None:
        self._activated.add(namespace)

    def compose(
        self, target: Any, original: Callable[..., Any] | None = None
    ) -> Callable[..., Any]:
        """Return a callable that runs target's current hook chain.

        The chain is read when the returned callable is invoked, so hooks
        added afterwards still apply.

        Args:
            target: Hook target (callable, task entry or string key).
            original: The innermost callable. Defaults to target itself.
        """
        key = target_key(target)
        inner = original if original is not None else _original_callable(target)

        @functools.wraps(inner)
        def composed(*args: Any, **kwargs: Any) -> Any:
            call = inner
            # Build inside-out so the first registered wrapper ends up outermost.
            for wrapper in reversed(self._hooks.get(key, ())):
                call = functools.partial(wrapper, call)
            return call(*args, **kwargs)

        return composed


@contextlib.contextmanager
def using_hooks(registry: HookRegistry) -> Iterator[HookRegistry]:
    """Make registry the one consulted by @hookable functions in this context."""
    token = _active_registry.set(registry)
    try:
        yield registry
    finally:
        _active_registry.reset(token)


def active_hooks() -> HookRegistry | None:
    return _active_registry.get()


def hookable(func: Callable[..., Any]) -> Callable[..., Any]:
    """Let registered hooks wrap func whenever it is called.

    The returned function keeps func's name, module and signature, so it is
    addressed by the same hook target as func.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        registry = _active_registry.get()
        if registry is None:
            return func(*args, **kwargs)
        return registry.compose(func, original=func)(*args, **kwargs)

    setattr(wrapper, ORIGINAL_ATTR, func)
    return wrapper
