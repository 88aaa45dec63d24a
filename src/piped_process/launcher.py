"""Process launcher: create a child with all three standard streams piped."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import IO, Any

from piped_process.config import Backend, Config, get_config, resolve_backend
from piped_process.errors import SpawnError, SpawnErrorKind
from piped_process.pipe_transport import InputPipe, PipeTransport, create_reader
from piped_process.process_handle import ProcessHandle
from piped_process.state import TerminationMode

logger = logging.getLogger(__name__)

_RESOURCE_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE, errno.EAGAIN, errno.ENOMEM})


def resolve_executable(executable: str | os.PathLike[str]) -> str:
    """Resolve ``executable`` to the path of an executable file.

    A path with a directory component is checked as is; a bare name is looked
    up on PATH.

    Raises:
        SpawnError: EXECUTABLE_NOT_FOUND or PERMISSION_DENIED.
    """
    raw = os.fspath(executable)
    if not raw:
        msg = "Empty executable path"
        raise SpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, msg)

    if not os.path.dirname(raw):
        found = shutil.which(raw)
        if found is None:
            msg = f"Executable not found on PATH: {raw}"
            raise SpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, msg, errno.ENOENT)
        return found

    path = Path(raw)
    if not path.exists():
        msg = f"Executable not found: {raw}"
        raise SpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, msg, errno.ENOENT)
    if path.is_dir() or not os.access(path, os.X_OK):
        msg = f"Not an executable file: {raw}"
        raise SpawnError(SpawnErrorKind.PERMISSION_DENIED, msg, errno.EACCES)
    return str(path)


def _build_environment(env: Mapping[str, str] | None) -> dict[str, str] | None:
    """Overlay ``env`` on the parent environment. None inherits it unchanged."""
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


def _session_kwargs(termination_mode: TerminationMode) -> dict[str, Any]:
    """Popen arguments that detach a CHILD_ONLY child from the parent's group."""
    if termination_mode is TerminationMode.GROUP:
        return {}
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _spawn_error(err: OSError, command: list[str]) -> SpawnError:
    """Classify the OSError raised while creating the child."""
    code = getattr(err, "winerror", None) or err.errno
    if isinstance(err, FileNotFoundError):
        kind = SpawnErrorKind.EXECUTABLE_NOT_FOUND
    elif isinstance(err, PermissionError):
        kind = SpawnErrorKind.PERMISSION_DENIED
    elif err.errno in _RESOURCE_ERRNOS:
        kind = SpawnErrorKind.RESOURCE_EXHAUSTED
    else:
        kind = SpawnErrorKind.OS_SPAWN_FAILURE
    msg = f"Failed to spawn {command[0]}: {err}"
    return SpawnError(kind, msg, code)


def _discard(proc: subprocess.Popen[Any], streams: Sequence[IO[Any]]) -> None:
    """Kill a child whose handle could not be built and close the pipes no reader owns."""
    proc.kill()
    for stream in streams:
        if stream is not None:
            try:
                stream.close()
            except OSError as close_error:
                logger.warning("Closing pipe of abandoned child %s failed: %s", proc.pid, close_error)
    proc.wait()


def spawn(
    executable: str | os.PathLike[str],
    args: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
    *,
    workdir: str | os.PathLike[str] | None = None,
    termination_mode: TerminationMode = TerminationMode.GROUP,
    backend: Backend | None = None,
    config: Config | None = None,
) -> ProcessHandle:
    """Start ``executable`` with ``args`` and pipe its stdin, stdout and stderr.

    Args:
        executable: Path to the program, or a bare name looked up on PATH.
        args: Arguments passed verbatim as argv[1:]. No shell is involved.
        env: Variables overriding the parent environment. None inherits it.
        workdir: Working directory of the child.
        termination_mode: What releasing the handle does to a running child.
        backend: How stdout/stderr are read. Defaults to the configured backend.
        config: Tunables. Defaults to ``get_config()``.

    Returns:
        A ProcessHandle owning the child and its pipes.

    Raises:
        SpawnError: If the executable cannot be resolved or the OS refuses to
            create the pipes or the process. No handle or pipe is left behind.
    """
    config = config if config is not None else get_config()
    backend = resolve_backend(backend if backend is not None else config.backend)
    if isinstance(args, (str, bytes)):
        msg = "args must be a sequence of strings, not a single string"
        raise TypeError(msg)

    command = [resolve_executable(executable), *(os.fspath(arg) for arg in args)]
    cwd = os.fspath(workdir) if workdir is not None else None

    try:
        proc = subprocess.Popen(  # noqa: S603
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,  # raw FileIO objects, no Python-side buffering
            shell=False,
            cwd=cwd,
            env=_build_environment(env),
            **_session_kwargs(termination_mode),
        )
    except OSError as e:
        raise _spawn_error(e, command) from e

    # Popen closed the child-side ends; wrap the parent-side ends.
    assert proc.stdin is not None
    assert proc.stdout is not None
    assert proc.stderr is not None
    readers: list[PipeTransport] = []
    try:
        stdin = InputPipe(proc.stdin)
        readers.append(create_reader(proc.stdout, "stdout", backend, config))
        readers.append(create_reader(proc.stderr, "stderr", backend, config))
    except (OSError, RuntimeError) as e:
        # RuntimeError: the interpreter could not start a reader thread
        for reader in readers:
            reader.close()
        _discard(proc, [proc.stdin, *(proc.stdout, proc.stderr)[len(readers) :]])
        msg = f"Failed to set up pipes for {command[0]}: {e}"
        raise SpawnError(SpawnErrorKind.RESOURCE_EXHAUSTED, msg, getattr(e, "errno", None)) from e

    handle = ProcessHandle(
        proc,
        command=command,
        stdin=stdin,
        stdout=readers[0],
        stderr=readers[1],
        termination_mode=termination_mode,
        config=config,
    )
    logger.debug(
        "Spawned %s (pid %s, handle %s, backend %s)", command, handle.pid, handle.handle_id, backend.value
    )
    return handle
