"""Flat call interface for callers that keep handles as opaque integer ids.

Every function accepts either a ``ProcessHandle`` or the ``handle_id`` it was
registered under. Ids that are unknown or already released raise
``HandleError``.
"""

from __future__ import annotations

from piped_process.launcher import spawn
from piped_process.pipe_transport import EndOfStream
from piped_process.process_handle import ProcessHandle
from piped_process.process_registry import ProcessRegistrySingleton
from piped_process.state import ProcessState, Stream

__all__ = [
    "close",
    "exit_status",
    "kill",
    "read",
    "send_signal",
    "spawn",
    "state",
    "terminate",
    "wait",
    "write",
]

HandleRef = ProcessHandle | int


def _resolve(handle: HandleRef) -> ProcessHandle:
    if isinstance(handle, ProcessHandle):
        return handle
    return ProcessRegistrySingleton.lookup(handle)


def read(handle: HandleRef, stream: Stream | str = Stream.STDOUT, timeout: float | None = None) -> bytes | EndOfStream:
    return _resolve(handle).read(stream, timeout)


def write(handle: HandleRef, data: bytes | str) -> int:
    return _resolve(handle).write(data)


def wait(handle: HandleRef, timeout: float | None = None) -> ProcessState:
    return _resolve(handle).wait(timeout)


def terminate(handle: HandleRef) -> None:
    _resolve(handle).terminate()


def kill(handle: HandleRef) -> None:
    _resolve(handle).kill()


def send_signal(handle: HandleRef, signal: str | int) -> None:
    _resolve(handle).send_signal(signal)


def state(handle: HandleRef) -> ProcessState:
    return _resolve(handle).state


def exit_status(handle: HandleRef) -> int | None:
    return _resolve(handle).exit_status


def close(handle: HandleRef) -> None:
    """Release the handle. Ids of released handles stop resolving."""
    _resolve(handle).close()
