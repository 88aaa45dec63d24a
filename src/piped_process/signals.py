"""Signal registry.

Maps the symbolic signal names understood by ``ProcessHandle.send_signal`` to
their numeric value on the running platform. Names the platform does not
define map to ``None``. The table is built once at import and never mutated.
"""

from __future__ import annotations

import signal
from collections.abc import Mapping
from types import MappingProxyType

SIGNAL_NAMES: tuple[str, ...] = (
    "SIGABRT",
    "SIGALRM",
    "SIGCHLD",
    "SIGCONT",
    "SIGFPE",
    "SIGHUP",
    "SIGILL",
    "SIGINT",
    "SIGKILL",
    "SIGPIPE",
    "SIGQUIT",
    "SIGSEGV",
    "SIGSTOP",
    "SIGTERM",
    "SIGTSTP",
    "SIGTTIN",
    "SIGTTOU",
    "SIGUSR1",
    "SIGUSR2",
    # Windows console control events
    "CTRL_C_EVENT",
    "CTRL_BREAK_EVENT",
)


def _build_signal_table() -> Mapping[str, int | None]:
    table: dict[str, int | None] = {}
    for name in SIGNAL_NAMES:
        value = getattr(signal, name, None)
        table[name] = int(value) if value is not None else None
    return MappingProxyType(table)


SIGNALS: Mapping[str, int | None] = _build_signal_table()


def signal_value(name: str) -> int | None:
    """Return the numeric value of ``name`` or None if absent on this platform.

    Lookup is case-insensitive and the ``SIG`` prefix is optional, so ``"term"``,
    ``"SIGTERM"`` and ``"sigterm"`` are equivalent. Unknown names are absent.
    """
    key = name.strip().upper()
    if key not in SIGNALS and not key.startswith(("SIG", "CTRL_")):
        key = f"SIG{key}"
    return SIGNALS.get(key)


def signal_name(value: int) -> str | None:
    """Reverse lookup, used for log messages."""
    for name, number in SIGNALS.items():
        if number == value:
            return name
    return None
