"""Reader-thread bridge.

On platforms without non-blocking anonymous pipes each readable stream gets a
dedicated thread that performs blocking reads and deposits the bytes into a
buffer guarded by a condition variable. The thread shares nothing else with
the rest of the package: the buffer, the EOF flag, the captured error and the
condition are the only state crossing the thread boundary.
"""

from __future__ import annotations

import logging
import os
import threading
import warnings
from typing import IO, Any

from piped_process.errors import ReadError
from piped_process.pipe_transport import EndOfStream, PipeTransport

logger = logging.getLogger(__name__)


class _SharedBuffer:
    """Buffer, EOF flag and error slot shared between one reader thread and its consumer."""

    def __init__(self) -> None:
        self.cond = threading.Condition(threading.Lock())
        self.data = bytearray()
        self.eof = False
        self.error: OSError | None = None
        self.closed = False

    def push(self, chunk: bytes) -> None:
        with self.cond:
            if self.closed:
                return
            self.data += chunk
            self.cond.notify_all()

    def finish(self, error: OSError | None = None) -> None:
        with self.cond:
            self.eof = True
            self.error = error
            self.cond.notify_all()


class PipeReader:
    """Body of the reader thread: drain a blocking descriptor until EOF or error."""

    def __init__(self, stream: IO[Any], name: str, buffer: _SharedBuffer, read_size: int) -> None:
        self._stream = stream
        self._fd = stream.fileno()
        self._name = name
        self._buffer = buffer
        self._read_size = read_size

    def _pump(self) -> OSError | None:
        """Copy bytes into the shared buffer. Returns the error that stopped it, if any."""
        while True:
            try:
                chunk = os.read(self._fd, self._read_size)
            except BrokenPipeError:
                # Windows reports a closed writer this way instead of a zero-length read.
                return None
            except OSError as e:
                return e
            if not chunk:  # EOF reached
                return None
            self._buffer.push(chunk)

    def _cleanup_stream(self) -> None:
        """Close the descriptor from the thread that owns the blocking read."""
        try:
            self._stream.close()
        except (ValueError, OSError) as err:
            warnings.warn(f"Reader for {self._name} failed to close its pipe: {err}", stacklevel=2)

    def run(self) -> None:
        """Continuously read until EOF or error, then publish the outcome exactly once."""
        error: OSError | None = None
        try:
            error = self._pump()
        finally:
            self._buffer.finish(error)
            self._cleanup_stream()


class ThreadedPipe(PipeTransport):
    """Readable transport backed by a background ``PipeReader`` thread."""

    def __init__(self, stream: IO[Any], name: str, read_size: int, join_timeout: float) -> None:
        super().__init__(stream, name)
        self._join_timeout = join_timeout
        self._buffer = _SharedBuffer()
        reader = PipeReader(stream, name, self._buffer, read_size)
        self._thread = threading.Thread(target=reader.run, name=f"PipeReader-{name}", daemon=True)
        self._thread.start()

    @property
    def thread(self) -> threading.Thread:
        return self._thread

    @property
    def at_eof(self) -> bool:
        with self._buffer.cond:
            return self._buffer.eof and not self._buffer.data

    def read(self, timeout: float | None = None) -> bytes | EndOfStream:
        self._check_open()
        if timeout is not None and timeout < 0:
            timeout = None

        buf = self._buffer
        with buf.cond:
            buf.cond.wait_for(lambda: bool(buf.data) or buf.eof, timeout=timeout)
            if buf.data:
                data = bytes(buf.data)
                buf.data.clear()
                return data
            if buf.error is not None:
                error, buf.error = buf.error, None
                msg = f"Error reading {self.name}: {error}"
                raise ReadError(msg) from error
            if buf.eof:
                return EndOfStream()
            return b""

    def _detach_descriptor(self) -> None:
        """Swap the pipe for /dev/null under the reader's descriptor.

        The read in progress finishes on the pipe; the next one sees EOF, so the
        thread exits and the last reference to the pipe's read end goes away.
        A child that keeps writing then gets EPIPE.
        """
        devnull = os.open(os.devnull, os.O_RDONLY)
        try:
            os.dup2(devnull, self._stream.fileno())
        finally:
            os.close(devnull)

    def close(self) -> None:
        """Stop consuming and drop anything the thread reads from now on."""
        if self._closed:
            return
        self._closed = True
        buf = self._buffer
        with buf.cond:
            buf.closed = True
            buf.data.clear()
            # Before finish() the reader still owns an open descriptor.
            if not buf.eof and os.name != "nt":
                try:
                    self._detach_descriptor()
                except OSError as err:
                    warnings.warn(f"Detaching {self.name} pipe failed: {err}", stacklevel=2)
        self._thread.join(timeout=self._join_timeout)
        if self._thread.is_alive():
            # Still blocked in read(): a grandchild may hold the write end open.
            logger.debug("Reader thread for %s still running after close", self.name)
