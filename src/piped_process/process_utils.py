"""Process-tree helpers built on psutil."""

from __future__ import annotations

import contextlib
import time
import warnings

import psutil


def get_process_tree_info(pid: int) -> str:
    """Describe a process and its descendants, for diagnostics."""
    try:
        process = psutil.Process(pid)
        info = [f"Process {pid} ({process.name()})"]
        info.append(f"Status: {process.status()}")
        info.append(f"Command: {' '.join(process.cmdline())}")

        children = process.children(recursive=True)
        if children:
            info.append("Child processes:")
            for child in children:
                with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                    info.append(f"  Child {child.pid} ({child.name()}) status={child.status()}")

        return "\n".join(info)
    except (psutil.Error, OSError):
        return f"Could not get process info for PID {pid}"


def kill_descendants(pid: int, timeout: float = 3.0) -> list[int]:
    """Force-kill every descendant of ``pid`` and wait until they are gone.

    The process itself is left alone so the caller can signal it and observe its
    own exit status. Returns the pids that were signalled.
    """
    try:
        children = psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return []
    except (OSError, psutil.Error) as e:
        warnings.warn(f"Error listing children of {pid}: {e}", UserWarning, stacklevel=2)
        return []

    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()

    alive = _wait_gone(children, timeout)
    if alive:
        warnings.warn(
            f"Descendants of {pid} still alive after kill: {[p.pid for p in alive]}",
            UserWarning,
            stacklevel=2,
        )
    return [child.pid for child in children]


def _still_running(process: psutil.Process) -> bool:
    # A zombie is dead; reaping it is its parent's job.
    try:
        return process.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def _wait_gone(processes: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    """Poll until every process is gone or a zombie. Returns the ones still running.

    ``psutil.wait_procs`` would block on grandchildren that became zombies, since only their parent can reap them.
    """
    deadline = time.monotonic() + timeout
    alive = [p for p in processes if _still_running(p)]
    while alive and time.monotonic() < deadline:
        time.sleep(0.05)
        alive = [p for p in alive if _still_running(p)]
    return alive
