"""Spawn child processes and talk to their stdin, stdout and stderr with timeouts."""

from __future__ import annotations

__version__ = "1.0.0"

from piped_process.config import Backend, Config, get_config, load_config
from piped_process.errors import (
    HandleError,
    PipedProcessError,
    ReadError,
    SignalError,
    SignalErrorKind,
    SpawnError,
    SpawnErrorKind,
    WriteError,
)
from piped_process.launcher import spawn
from piped_process.pipe_transport import EndOfStream
from piped_process.process_handle import ProcessHandle
from piped_process.process_registry import ProcessRegistry, ProcessRegistrySingleton
from piped_process.signals import SIGNALS, signal_value
from piped_process.state import ProcessState, Stream, TerminationMode

__all__ = [
    "SIGNALS",
    "Backend",
    "Config",
    "EndOfStream",
    "HandleError",
    "PipedProcessError",
    "ProcessHandle",
    "ProcessRegistry",
    "ProcessRegistrySingleton",
    "ProcessState",
    "ReadError",
    "SignalError",
    "SignalErrorKind",
    "SpawnError",
    "SpawnErrorKind",
    "Stream",
    "TerminationMode",
    "WriteError",
    "get_config",
    "load_config",
    "signal_value",
    "spawn",
]
