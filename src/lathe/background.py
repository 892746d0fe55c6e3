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

"""Shared background pool and best-effort shutdown after a task finishes."""

from __future__ import annotations

import logging
import multiprocessing
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_executor: ThreadPoolExecutor | None = None


def executor(max_workers: int | None = None) -> ThreadPoolExecutor:
    """Return the process-wide pool tasks may submit background work to.

    The pool is created on first use and torn down by
    shutdown_background_work() once the task returns.
    """
    global _executor
    with _lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="lathe-bg"
            )
        return _executor


def _shutdown_executor() -> None:
    global _executor
    with _lock:
        pool, _executor = _executor, None
    if pool is not None:
        logger.debug("Shutting down background executor")
        pool.shutdown(wait=False, cancel_futures=True)


def _terminate_children(timeout: float) -> None:
    for child in multiprocessing.active_children():
        logger.debug("Terminating background process %s (pid %s)", child.name, child.pid)
        child.terminate()
        child.join(timeout)
        if child.is_alive():
            logger.warning("Background process %s did not exit; killing", child.name)
            child.kill()


def _report_lingering_threads() -> None:
    main = threading.main_thread()
    lingering = [
        t.name for t in threading.enumerate()
        if t is not main and not t.daemon and t.is_alive()
        and t is not threading.current_thread()
    ]
    if lingering:
        logger.warning(
            "Non-daemon threads still running after task: %s", ", ".join(lingering)
        )


def shutdown_background_work(timeout: float = 5.0) -> None:
    """Stop background work a task left behind. Never raises.

    Cancels queued work on the shared executor, terminates live
    multiprocessing children, and reports non-daemon threads that may keep
    the process alive.
    """
    for step in (_shutdown_executor, lambda: _terminate_children(timeout), _report_lingering_threads):
        try:
            step()
        except Exception:
            logger.warning("Background shutdown step failed", exc_info=True)
