#!/usr/bin/env python3
"""Echo Demo - Talks to a child over its pipes, then stops it."""

import logging
import sys

from piped_process import EndOfStream, ProcessState, Stream, get_config, spawn

ECHO_SCRIPT = """
import sys
for line in iter(sys.stdin.buffer.readline, b''):
    sys.stdout.buffer.write(b'child says: ' + line)
    sys.stdout.buffer.flush()
    sys.stderr.buffer.write(b'.')
    sys.stderr.buffer.flush()
"""


def demo_echo() -> None:
    """Send a few lines to a child and print what comes back."""
    print("Echo Demo")
    print("=" * 50)
    print(f"Platform: {sys.platform}")
    print(f"Backend: {get_config().backend.value}")
    print()

    with spawn(sys.executable, ["-u", "-c", ECHO_SCRIPT]) as handle:
        for text in ("hello", "from", "the parent"):
            written = handle.write(f"{text}\n")
            reply = handle.read(Stream.STDOUT, timeout=2.0)
            print(f"wrote {written} bytes, read {reply!r}")

        print(f"stderr so far: {handle.read(Stream.STDERR, timeout=0)!r}")

        handle.close_input()
        state = handle.wait(timeout=5.0)
        print(f"after closing stdin: {state.value}, exit status {handle.exit_status}")

        remaining = handle.read(Stream.STDOUT, timeout=1.0)
        print(f"stdout at end: {'EOF' if isinstance(remaining, EndOfStream) else remaining!r}")


def demo_kill() -> None:
    """Start a child that sleeps and force it to stop."""
    print()
    print("Kill Demo")
    print("=" * 50)
    with spawn(sys.executable, ["-c", "import time; time.sleep(60)"]) as handle:
        print(f"pid {handle.pid}: {handle.state.value}")
        handle.terminate()
        state = handle.wait(timeout=1.0)
        if state is ProcessState.RUNNING:
            handle.kill()
            state = handle.wait(timeout=5.0)
        print(f"pid {handle.pid}: {state.value}, exit status {handle.exit_status}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG if "-v" in sys.argv else logging.WARNING)
    demo_echo()
    demo_kill()
