from __future__ import annotations

from enum import Enum


class ProcessState(Enum):
    """Lifecycle state of a spawned child."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    EXITED = "exited"
    TERMINATED = "terminated"  # killed by a signal

    @property
    def is_final(self) -> bool:
        return self in (ProcessState.EXITED, ProcessState.TERMINATED)


class Stream(Enum):
    """Readable standard streams of a child."""

    STDOUT = "stdout"
    STDERR = "stderr"


class TerminationMode(Enum):
    """What releasing a handle does to a child that is still running."""

    GROUP = "group"  # killed and reaped with its handle, or at interpreter exit
    CHILD_ONLY = "child_only"  # detached into its own session, left running
