"""Exception types raised by piped_process.

Timeouts, end-of-stream and "still running" are ordinary return values and
never show up here.
"""

from __future__ import annotations

from enum import Enum


class PipedProcessError(Exception):
    """Base class for every error raised by this package."""


class SpawnErrorKind(Enum):
    EXECUTABLE_NOT_FOUND = "executable_not_found"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    OS_SPAWN_FAILURE = "os_spawn_failure"


class SpawnError(PipedProcessError):
    """The child process could not be created."""

    def __init__(self, kind: SpawnErrorKind, message: str, errno: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.errno = errno


class ReadError(PipedProcessError):
    """Reading from a child's output stream failed."""


class WriteError(PipedProcessError):
    """Writing to a child's stdin failed."""


class SignalErrorKind(Enum):
    UNSUPPORTED_ON_PLATFORM = "unsupported_on_platform"
    NO_SUCH_PROCESS = "no_such_process"


class SignalError(PipedProcessError):
    """A signal could not be delivered to the child."""

    def __init__(self, kind: SignalErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class HandleError(PipedProcessError):
    """Operation on a handle that was released or never existed."""
