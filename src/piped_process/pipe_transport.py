"""Parent-held ends of a child's standard streams.

Two interchangeable readable implementations share the ``PipeTransport``
interface:

- ``NonBlockingPipe``: the descriptor is put in O_NONBLOCK mode and polled in
  short sleeps until data, EOF or the deadline.
- ``ThreadedPipe`` (see ``reader_thread``): a blocking descriptor drained by a
  background thread, for platforms without non-blocking anonymous pipes.

``InputPipe`` is the write end wired to the child's stdin. It is blocking on
every platform, so writes follow normal pipe back-pressure.
"""

from __future__ import annotations

import logging
import os
import time
import warnings
from abc import ABC, abstractmethod
from typing import IO, TYPE_CHECKING

from piped_process.config import Backend, Config
from piped_process.errors import ReadError, WriteError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class EndOfStream:
    """Sentinel returned by read() once the child closed the stream and the buffer is drained."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "EndOfStream()"


def _deadline(timeout: float | None) -> float | None:
    """Convert a relative timeout into a monotonic deadline. None blocks forever."""
    if timeout is None or timeout < 0:
        return None
    return time.monotonic() + timeout


class PipeTransport(ABC):
    """Readable parent-side end of a child's stdout or stderr."""

    def __init__(self, stream: IO[Any], name: str) -> None:
        self._stream = stream
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            msg = f"{self.name} pipe is closed"
            raise ReadError(msg)

    @abstractmethod
    def read(self, timeout: float | None = None) -> bytes | EndOfStream:
        """Return the bytes available now, waiting up to ``timeout`` seconds for some.

        ``timeout=0`` polls, ``None`` (or a negative value) blocks until data or EOF.
        Returns ``b""`` on timeout and ``EndOfStream`` once the stream is exhausted.
        """

    @property
    @abstractmethod
    def at_eof(self) -> bool:
        """True once EOF was observed and nothing is left in the buffer."""

    @abstractmethod
    def close(self) -> None:
        """Release the descriptor. Safe to call more than once."""


class NonBlockingPipe(PipeTransport):
    """Reads an O_NONBLOCK descriptor, sleeping in small increments while it is empty."""

    def __init__(self, stream: IO[Any], name: str, poll_interval: float, read_size: int) -> None:
        super().__init__(stream, name)
        self._fd = stream.fileno()
        self._poll_interval = poll_interval
        self._read_size = read_size
        self._eof = False
        os.set_blocking(self._fd, False)

    @property
    def at_eof(self) -> bool:
        return self._eof

    def _read_available(self) -> bytes | None:
        """One read attempt. None means nothing is available yet."""
        try:
            chunk = os.read(self._fd, self._read_size)
        except BlockingIOError:
            return None
        except OSError as e:
            msg = f"Error reading {self.name}: {e}"
            raise ReadError(msg) from e
        if not chunk:
            self._eof = True
        return chunk

    def read(self, timeout: float | None = None) -> bytes | EndOfStream:
        self._check_open()
        if self._eof:
            return EndOfStream()

        deadline = _deadline(timeout)
        while True:
            chunk = self._read_available()
            if chunk:
                return chunk
            if self._eof:
                return EndOfStream()
            if deadline is None:
                time.sleep(self._poll_interval)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return b""
            time.sleep(min(self._poll_interval, remaining))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except OSError as err:
            warnings.warn(f"Closing {self.name} pipe failed: {err}", stacklevel=2)


class InputPipe:
    """Blocking write end connected to the child's stdin."""

    def __init__(self, stream: IO[Any], name: str = "stdin") -> None:
        self._stream = stream
        self._fd = stream.fileno()
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes | str) -> int:
        """Write every byte of ``data``, blocking while the pipe buffer is full.

        Returns the number of bytes written. ``str`` is encoded as UTF-8.
        """
        if self._closed:
            msg = f"{self.name} pipe is closed"
            raise WriteError(msg)
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)

        view = memoryview(payload)
        written = 0
        while written < len(payload):
            try:
                written += os.write(self._fd, view[written:])
            except BrokenPipeError as e:
                msg = f"Child closed {self.name} after {written} of {len(payload)} bytes"
                raise WriteError(msg) from e
            except OSError as e:
                msg = f"Error writing {self.name}: {e}"
                raise WriteError(msg) from e
        return written

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except BrokenPipeError:
            logger.debug("Child already closed %s", self.name)
        except OSError as err:
            warnings.warn(f"Closing {self.name} pipe failed: {err}", stacklevel=2)


def create_reader(stream: IO[Any], name: str, backend: Backend, config: Config) -> PipeTransport:
    """Wrap the parent-held end of stdout/stderr in the transport for ``backend``."""
    if backend is Backend.THREADED:
        from piped_process.reader_thread import ThreadedPipe  # noqa: PLC0415

        return ThreadedPipe(stream, name, read_size=config.read_size, join_timeout=config.join_timeout)
    return NonBlockingPipe(stream, name, poll_interval=config.poll_interval, read_size=config.read_size)
