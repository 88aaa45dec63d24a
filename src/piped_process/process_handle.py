"""Handle to a spawned child process and its three standard streams.

## Basic Usage

```python
from piped_process import Stream, spawn

with spawn(sys.executable, ["-u", "echo_server.py"]) as handle:
    handle.write("echo 1\\n")
    print(handle.read(Stream.STDOUT, timeout=1.0))  # b"1\\n"
    handle.terminate()
    state = handle.wait(timeout=1.0)
```

## State machine

- ``UNKNOWN``: nothing has been observed yet.
- ``RUNNING``: the last OS poll saw the child alive.
- ``EXITED``: the child exited on its own; ``exit_status`` is its exit code.
- ``TERMINATED``: a signal ended the child; ``exit_status`` is the signal number.

``EXITED`` and ``TERMINATED`` are final: once recorded, later polls never
replace them.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import subprocess
import time
from typing import TYPE_CHECKING, Any

from piped_process.errors import HandleError, SignalError, SignalErrorKind
from piped_process.pipe_transport import EndOfStream
from piped_process.process_registry import ProcessRegistrySingleton
from piped_process.process_utils import kill_descendants
from piped_process.signals import SIGNALS, signal_name, signal_value
from piped_process.state import ProcessState, Stream, TerminationMode

if TYPE_CHECKING:
    from types import TracebackType

    from piped_process.config import Config
    from piped_process.pipe_transport import InputPipe, PipeTransport

logger = logging.getLogger(__name__)


class ProcessHandle:
    """A running child process with independently readable stdout/stderr and writable stdin.

    Created by ``spawn``. The handle owns the parent-held pipe ends and the
    right to wait on and signal the child. Release it with ``close()`` (or use
    it as a context manager); releasing closes every pipe, stops reader
    threads and, in ``TerminationMode.GROUP``, kills a child that is still
    running.
    """

    def __init__(
        self,
        proc: subprocess.Popen[Any],
        command: list[str],
        stdin: InputPipe,
        stdout: PipeTransport,
        stderr: PipeTransport,
        termination_mode: TerminationMode,
        config: Config,
    ) -> None:
        self._proc = proc
        self.pid: int = proc.pid
        self.command = command
        self.termination_mode = termination_mode
        self._poll_interval = config.poll_interval
        self._stdin = stdin
        self._pipes: dict[Stream, PipeTransport] = {Stream.STDOUT: stdout, Stream.STDERR: stderr}
        self._state = ProcessState.UNKNOWN
        self._exit_status: int | None = None
        self._start_time = time.time()
        self._end_time: float | None = None
        self._released = False
        self.handle_id = ProcessRegistrySingleton.register(self)

    # Context manager protocol
    def __enter__(self) -> ProcessHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        self.close()
        return False

    def __del__(self) -> None:
        # The registry keeps open handles alive, so this only runs at interpreter teardown.
        if not getattr(self, "_released", True):
            self.close()

    def _check_open(self) -> None:
        if self._released:
            msg = f"Process handle {self.handle_id} (pid {self.pid}) has been released"
            raise HandleError(msg)

    def _record_returncode(self, rc: int) -> None:
        """Record the first observed exit. Final states are never overwritten."""
        if self._state.is_final:
            return
        if rc < 0:
            self._state = ProcessState.TERMINATED
            self._exit_status = -rc
            logger.debug("Process %s terminated by %s", self.pid, signal_name(-rc) or -rc)
        else:
            self._state = ProcessState.EXITED
            self._exit_status = rc
            logger.debug("Process %s exited with code %s", self.pid, rc)
        self._end_time = time.time()

    def _poll(self) -> ProcessState:
        """Ask the OS for the child's status without blocking."""
        if self._state.is_final:
            return self._state
        rc = self._proc.poll()
        if rc is None:
            self._state = ProcessState.RUNNING
        else:
            self._record_returncode(rc)
        return self._state

    @property
    def state(self) -> ProcessState:
        """Current state. Polls the OS unless the handle was released."""
        if self._released:
            return self._state
        return self._poll()

    @property
    def exit_status(self) -> int | None:
        """Exit code when EXITED, terminating signal number when TERMINATED, else None."""
        if not self._released:
            self._poll()
        return self._exit_status

    @property
    def returncode(self) -> int | None:
        """Return code in ``subprocess`` convention (negative signal number)."""
        return self._proc.returncode

    @property
    def closed(self) -> bool:
        return self._released

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def end_time(self) -> float | None:
        return self._end_time

    @property
    def duration(self) -> float | None:
        """Seconds from spawn to observed exit, or None while not observed."""
        if self._end_time is None:
            return None
        return self._end_time - self._start_time

    def wait(self, timeout: float | None = None) -> ProcessState:
        """Poll until the child exits or ``timeout`` seconds pass.

        Args:
            timeout: Seconds to wait. 0 polls once, None (or negative) waits until exit.

        Returns:
            The state after waiting. A child that is still alive yields RUNNING.
        """
        self._check_open()
        deadline = None if timeout is None or timeout < 0 else time.monotonic() + timeout
        while True:
            state = self._poll()
            if state.is_final:
                return state
            if deadline is None:
                time.sleep(self._poll_interval)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return state
            time.sleep(min(self._poll_interval, remaining))

    def terminate(self) -> None:
        """Ask the child to shut down (SIGTERM; same as kill() on Windows).

        No-op if the child already exited.
        """
        self._check_open()
        if self._poll().is_final:
            logger.debug("terminate(): process %s already finished", self.pid)
            return
        logger.debug("Terminating process %s", self.pid)
        with contextlib.suppress(ProcessLookupError):
            self._proc.terminate()

    def kill(self, tree: bool = False) -> None:
        """Force the child to stop (SIGKILL / TerminateProcess).

        Args:
            tree: Also kill every descendant of the child first.

        No-op if the child already exited.
        """
        self._check_open()
        if self._poll().is_final:
            logger.debug("kill(): process %s already finished", self.pid)
            return
        if tree:
            killed = kill_descendants(self.pid)
            if killed:
                logger.debug("Killed descendants of %s: %s", self.pid, killed)
        logger.debug("Killing process %s", self.pid)
        with contextlib.suppress(ProcessLookupError):
            self._proc.kill()

    @staticmethod
    def _resolve_signal(sig: str | int) -> int:
        if isinstance(sig, str):
            value = signal_value(sig)
            if value is None:
                msg = f"Signal {sig} is not available on this platform"
                raise SignalError(SignalErrorKind.UNSUPPORTED_ON_PLATFORM, msg)
            return value
        if sig not in signal.valid_signals() and sig not in SIGNALS.values():
            msg = f"Signal {sig} is not available on this platform"
            raise SignalError(SignalErrorKind.UNSUPPORTED_ON_PLATFORM, msg)
        return int(sig)

    def send_signal(self, sig: str | int) -> None:
        """Deliver ``sig`` (a registry name such as ``"SIGUSR1"`` or a number) to the child.

        Raises:
            SignalError: UNSUPPORTED_ON_PLATFORM if the signal is absent here,
                NO_SUCH_PROCESS if the child already exited.
        """
        self._check_open()
        value = self._resolve_signal(sig)
        if self._poll().is_final:
            msg = f"Process {self.pid} has already finished"
            raise SignalError(SignalErrorKind.NO_SUCH_PROCESS, msg)
        logger.debug("Sending %s to process %s", signal_name(value) or value, self.pid)
        try:
            self._proc.send_signal(value)
        except ProcessLookupError as e:
            msg = f"Process {self.pid} has already finished"
            raise SignalError(SignalErrorKind.NO_SUCH_PROCESS, msg) from e
        except ValueError as e:
            # Windows accepts only SIGTERM and the console control events
            msg = f"Signal {sig} is not supported on this platform: {e}"
            raise SignalError(SignalErrorKind.UNSUPPORTED_ON_PLATFORM, msg) from e

    def _pipe(self, stream: Stream | str) -> PipeTransport:
        try:
            return self._pipes[Stream(stream)]
        except ValueError:
            msg = f"Cannot read from {stream!r}: expected 'stdout' or 'stderr'"
            raise ValueError(msg) from None

    def read(self, stream: Stream | str = Stream.STDOUT, timeout: float | None = None) -> bytes | EndOfStream:
        """Read what the child has written to ``stream``.

        Args:
            stream: Stream.STDOUT or Stream.STDERR.
            timeout: Seconds to wait for data. 0 polls, None (or negative) blocks.

        Returns:
            The available bytes, ``b""`` on timeout, or ``EndOfStream`` once the
            child closed the stream and everything was read.

        Raises:
            ReadError: On an I/O failure other than EOF.
            ValueError: If ``stream`` names neither stdout nor stderr.
        """
        self._check_open()
        return self._pipe(stream).read(timeout)

    def read_both(self, timeout: float | None = None) -> tuple[bytes | EndOfStream, bytes | EndOfStream]:
        """Read stdout and stderr together.

        Returns as soon as either stream has data, both reached EOF, or the
        timeout elapsed. The result is ``(stdout, stderr)``.
        """
        self._check_open()
        stdout = self._pipes[Stream.STDOUT]
        stderr = self._pipes[Stream.STDERR]
        deadline = None if timeout is None or timeout < 0 else time.monotonic() + timeout
        while True:
            out = stdout.read(0)
            err = stderr.read(0)
            if out or err or (isinstance(out, EndOfStream) and isinstance(err, EndOfStream)):
                return out, err
            if deadline is None:
                time.sleep(self._poll_interval)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return out, err
            time.sleep(min(self._poll_interval, remaining))

    def write(self, data: bytes | str) -> int:
        """Write to the child's stdin and return the number of bytes written.

        Blocks while the pipe buffer is full, until the child drains it.

        Raises:
            WriteError: If stdin was closed or the child no longer reads it.
        """
        self._check_open()
        return self._stdin.write(data)

    def close_input(self) -> None:
        """Close the child's stdin so it reads EOF."""
        self._check_open()
        self._stdin.close()

    def _reap(self) -> None:
        """Kill a still-running child and collect its exit status."""
        if self._poll().is_final:
            return
        logger.debug("Releasing running process %s, killing it", self.pid)
        with contextlib.suppress(ProcessLookupError):
            self._proc.kill()
        self._record_returncode(self._proc.wait())

    def close(self) -> None:
        """Release the handle. Safe to call more than once.

        In GROUP mode a running child is killed and reaped first; in
        CHILD_ONLY mode it is left running with its pipes closed and ``state``
        keeps the last observed value. Pipes and reader threads are released
        even if that step fails.
        """
        if self._released:
            return
        try:
            if self.termination_mode is TerminationMode.GROUP:
                self._reap()
            else:
                self._poll()
        finally:
            self._released = True
            self._stdin.close()
            for pipe in self._pipes.values():
                pipe.close()
            ProcessRegistrySingleton.unregister(self.handle_id)
            logger.debug("Released process handle %s (pid %s)", self.handle_id, self.pid)
