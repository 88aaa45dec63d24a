"""Runtime configuration.

Environment variables:
    PIPED_PROCESS_BACKEND: pipe reading strategy
        - nonblocking = O_NONBLOCK descriptors polled by the caller (default on POSIX)
        - threaded = blocking descriptors drained by reader threads (default on Windows)

    PIPED_PROCESS_POLL_INTERVAL: seconds slept between polls in read() and wait()
        - default 0.01

    PIPED_PROCESS_READ_SIZE: maximum bytes requested per OS read
        - default 65536

    PIPED_PROCESS_JOIN_TIMEOUT: seconds close() waits for a reader thread to finish
        - default 0.05
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

__all__ = ["Backend", "Config", "get_config", "load_config", "resolve_backend"]

logger = logging.getLogger(__name__)


class Backend(Enum):
    """How the parent-held ends of stdout/stderr are read."""

    NONBLOCKING = "nonblocking"
    THREADED = "threaded"

    @classmethod
    def from_string(cls, value: str) -> Backend:
        value = value.lower().strip()
        for backend in cls:
            if backend.value == value:
                return backend
        msg = f"unknown backend {value!r}, expected one of {[b.value for b in cls]}"
        raise ValueError(msg)


def nonblocking_pipes_supported() -> bool:
    """Whether anonymous pipes can be switched to non-blocking mode here."""
    return os.name != "nt"


def default_backend() -> Backend:
    return Backend.NONBLOCKING if nonblocking_pipes_supported() else Backend.THREADED


def resolve_backend(backend: Backend) -> Backend:
    """Return ``backend`` if usable on this platform, else the threaded fallback."""
    if backend is Backend.NONBLOCKING and not nonblocking_pipes_supported():
        logger.warning("Non-blocking pipes are not available on %s, using reader threads", os.name)
        return Backend.THREADED
    return backend


@dataclass(frozen=True)
class Config:
    """Tunables shared by the launcher, the pipes and the handle."""

    backend: Backend = default_backend()
    poll_interval: float = 0.01
    read_size: int = 65536
    join_timeout: float = 0.05


def _parse_float(name: str, value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, value)
        return default
    if parsed <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, value)
        return default
    return parsed


def _parse_int(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, value)
        return default
    if parsed <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, value)
        return default
    return parsed


def _parse_backend(value: str | None) -> Backend:
    if value is None or not value.strip():
        return default_backend()
    try:
        backend = Backend.from_string(value)
    except ValueError as e:
        logger.warning("Ignoring PIPED_PROCESS_BACKEND: %s", e)
        return default_backend()
    return resolve_backend(backend)


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from environment variables (``os.environ`` by default)."""
    env = os.environ if environ is None else environ
    defaults = Config()
    return Config(
        backend=_parse_backend(env.get("PIPED_PROCESS_BACKEND")),
        poll_interval=_parse_float(
            "PIPED_PROCESS_POLL_INTERVAL", env.get("PIPED_PROCESS_POLL_INTERVAL"), defaults.poll_interval
        ),
        read_size=_parse_int("PIPED_PROCESS_READ_SIZE", env.get("PIPED_PROCESS_READ_SIZE"), defaults.read_size),
        join_timeout=_parse_float(
            "PIPED_PROCESS_JOIN_TIMEOUT", env.get("PIPED_PROCESS_JOIN_TIMEOUT"), defaults.join_timeout
        ),
    )


_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide Config, loading it on first use."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = load_config()
    return _config
