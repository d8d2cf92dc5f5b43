"""Pytest configuration — path setup, logging, and shared fakes."""

import logging
import os
import sys
import time
from typing import Dict, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the package is importable regardless of installation
# ---------------------------------------------------------------------------
_SRC_DIR = os.path.join(os.path.dirname(__file__), os.pardir, "src")
_SRC_DIR = os.path.normpath(_SRC_DIR)
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)

# ---------------------------------------------------------------------------
# Logging: route all library log output to the console so pytest -s shows it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)

from serial_port_tools.shell import CommandOutcome, ShellRunner  # noqa: E402


# ---------------------------------------------------------------------------
# Recording shell runner — never spawns a process
# ---------------------------------------------------------------------------

class RecordingShellRunner(ShellRunner):
    """Records every command and answers from a table of canned outcomes.

    Commands without a canned outcome succeed with empty output.  A canned
    outcome registered with ``fail()`` matches any command containing the
    given fragment.
    """

    def __init__(self) -> None:
        self.commands: List[str] = []
        self._failures: Dict[str, CommandOutcome] = {}

    def fail(self, fragment: str, exit_code: int = 1, stderr: bytes = b"stty: invalid argument") -> None:
        self._failures[fragment] = CommandOutcome(exit_code=exit_code, stdout=b"", stderr=stderr)

    def clear_failures(self) -> None:
        self._failures.clear()

    @property
    def last_command(self) -> Optional[str]:
        return self.commands[-1] if self.commands else None

    def run(self, command: str) -> CommandOutcome:
        self.commands.append(command)
        for fragment, outcome in self._failures.items():
            if fragment in command:
                return outcome
        return CommandOutcome(exit_code=0, stdout=b"", stderr=b"")


@pytest.fixture()
def runner() -> RecordingShellRunner:
    return RecordingShellRunner()


# ---------------------------------------------------------------------------
# Virtual serial port pair (PTY-based)
# ---------------------------------------------------------------------------

class VirtualSerialPair:
    """A raw-mode pseudo-terminal pair acting as the two ends of a cable.

    The device under test opens ``slave_path``; the test plays the peer
    through ``master_fd``.
    """

    def __init__(self) -> None:
        import pty
        import tty

        self.master_fd, self.slave_fd = pty.openpty()
        # No echo, no CR/LF translation: bytes pass through untouched
        tty.setraw(self.slave_fd)
        self.slave_path = os.ttyname(self.slave_fd)

    def write_to_master(self, data: bytes) -> int:
        """Write bytes into the master end (appears on the slave)."""
        return os.write(self.master_fd, data)

    def read_from_master(self, size: int = 4096, timeout: float = 2.0) -> bytes:
        """Read bytes the device wrote, waiting up to *timeout* seconds."""
        import select

        ready, _, _ = select.select([self.master_fd], [], [], timeout)
        if not ready:
            return b""
        return os.read(self.master_fd, size)

    def wait_for_slave_bytes(self, count: int, timeout: float = 2.0) -> int:
        """Wait until *count* bytes are queued on the slave side."""
        import fcntl
        import struct
        import termios

        deadline = time.monotonic() + timeout
        queued = 0
        while time.monotonic() < deadline:
            raw = fcntl.ioctl(self.slave_fd, termios.FIONREAD, b"\0\0\0\0")
            queued = struct.unpack("i", raw)[0]
            if queued >= count:
                break
            time.sleep(0.01)
        return queued

    def close(self) -> None:
        for fd in (self.master_fd, self.slave_fd):
            try:
                os.close(fd)
            except OSError:
                pass


@pytest.fixture()
def serial_pair():
    """Create a virtual serial pair for one test (POSIX only)."""
    if os.name != "posix":
        pytest.skip("Virtual serial pairs require PTY support (Linux/macOS only)")
    pair = VirtualSerialPair()
    print(f"  [FIXTURE] Virtual serial pair: slave={pair.slave_path}")
    yield pair
    pair.close()
    print("  [FIXTURE] Virtual serial pair closed")
