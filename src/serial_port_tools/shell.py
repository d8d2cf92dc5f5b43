"""Local shell command execution for port configuration commands."""

from __future__ import annotations

import abc
import dataclasses
import logging
import platform
import subprocess
import time

from typeguard import typechecked

from . import SHELL_COMMAND_TIMEOUT_S
from .exceptions import ShellCommandTimeoutError

logger = logging.getLogger("serial_port_tools.shell")

_IS_WINDOWS = platform.system() == "Windows"


@dataclasses.dataclass(frozen=True)
class CommandOutcome:
    """Result of one external command: exit code plus captured streams."""
    exit_code: int
    stdout: bytes
    stderr: bytes

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class ShellRunner(abc.ABC):
    """Executes a command line and returns its ``CommandOutcome``.

    Subclass and override :meth:`run` to route commands elsewhere (tests use
    a recording runner that never spawns a process).
    """

    @abc.abstractmethod
    def run(self, command: str) -> CommandOutcome:
        raise NotImplementedError


@typechecked
class SubprocessShellRunner(ShellRunner):
    """Runs commands through the local shell with ``subprocess.run``."""

    def __init__(self, timeout: float = SHELL_COMMAND_TIMEOUT_S) -> None:
        """Initialize the runner.

        Args:
            timeout: Seconds to wait for each command before giving up
                (default: 30, or ``SERIAL_SHELL_TIMEOUT``).
        """
        self.timeout = timeout

    def run(self, command: str) -> CommandOutcome:
        """Run *command* through the shell and capture both streams.

        Raises:
            ShellCommandTimeoutError: If the command does not exit within
                ``self.timeout`` seconds.
        """
        logger.debug("[SHELL] Running %r (timeout=%.1fs)", command, self.timeout)
        kwargs: dict = {
            "shell": True,
            "stdin": subprocess.DEVNULL,
            "capture_output": True,
            "timeout": self.timeout,
        }
        # Prevent a console window flash on Windows.
        _CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)
        if _IS_WINDOWS and _CREATE_NO_WINDOW:
            kwargs["creationflags"] = _CREATE_NO_WINDOW

        start_time = time.monotonic()
        try:
            completed = subprocess.run(command, **kwargs)
        except subprocess.TimeoutExpired as exc:
            msg = f"Command {command!r} did not finish within {self.timeout:.1f}s"
            logger.error("[SHELL] TIMEOUT: %s", msg)
            raise ShellCommandTimeoutError(msg, command=command, timeout=self.timeout) from exc

        outcome = CommandOutcome(
            exit_code=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )
        logger.debug(
            "[SHELL] %r finished in %.2fs, rc=%d, stdout=%d bytes, stderr=%d bytes",
            command, time.monotonic() - start_time, outcome.exit_code,
            len(outcome.stdout), len(outcome.stderr),
        )
        return outcome
