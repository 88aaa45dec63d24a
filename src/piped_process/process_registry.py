"""Process-wide table of live child handles.

Every spawned ``ProcessHandle`` is registered under an opaque integer id so
callers that only hold the id can find it again, and so children that are
still alive when the interpreter exits get released instead of orphaned.
"""

from __future__ import annotations

import atexit
import itertools
import logging
import threading
import time
import warnings
from typing import TYPE_CHECKING

from piped_process.errors import HandleError
from piped_process.process_utils import get_process_tree_info

if TYPE_CHECKING:
    from piped_process.process_handle import ProcessHandle

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """Thread-safe map of handle id to live handle.

    The table holds a strong reference to every handle until it is released,
    so an id stays valid after the caller drops the handle object.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handles: dict[int, ProcessHandle] = {}
        self._ids = itertools.count(1)

    def register(self, handle: ProcessHandle) -> int:
        """Register a handle and return its id."""
        with self._lock:
            handle_id = next(self._ids)
            self._handles[handle_id] = handle
            return handle_id

    def unregister(self, handle_id: int) -> None:
        with self._lock:
            self._handles.pop(handle_id, None)

    def lookup(self, handle_id: int) -> ProcessHandle:
        """Return the live handle for ``handle_id`` or raise HandleError."""
        with self._lock:
            handle = self._handles.get(handle_id)
        if handle is None:
            msg = f"No live process handle with id {handle_id}"
            raise HandleError(msg)
        return handle

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def list_active(self) -> list[ProcessHandle]:
        """Handles whose child has not been observed to exit."""
        with self._lock:
            handles = list(self._handles.values())
        return [h for h in handles if not h.state.is_final]

    def release_all(self) -> None:
        """Release every registered handle. Registered with atexit."""
        with self._lock:
            handles = list(self._handles.values())
        if handles:
            logger.debug("Releasing %d live process handle(s)", len(handles))
        for handle in handles:
            try:
                handle.close()
            except (OSError, RuntimeError) as e:
                warnings.warn(f"Releasing process {handle.pid} failed: {e}", UserWarning, stacklevel=2)

    def dump_active(self) -> None:
        """Warn with a description of every child still running."""
        active = self.list_active()
        if not active:
            warnings.warn("No active child processes", UserWarning, stacklevel=2)
            return

        now = time.time()
        for idx, handle in enumerate(active, 1):
            warnings.warn(
                f"  {idx}. id={handle.handle_id} pid={handle.pid} cmd={handle.command} "
                f"running={now - handle.start_time:.1f}s\n{get_process_tree_info(handle.pid)}",
                UserWarning,
                stacklevel=2,
            )


# Global singleton instance
ProcessRegistrySingleton = ProcessRegistry()
atexit.register(ProcessRegistrySingleton.release_all)
