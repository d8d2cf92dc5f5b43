"""Validation and execution of serial line configuration commands."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from typeguard import typechecked

from .exceptions import (
    ConfigurationCommandFailedError,
    InvalidFlowControlError,
    InvalidStopBitsError,
    UnsupportedBaudRateError,
    UnsupportedParityError,
)
from .shell import ShellRunner
from .strategies import OsStrategy
from .types import (
    FLOW_CONTROL_ALIASES,
    FlowControl,
    FlowControlLike,
    Parity,
    ParityLike,
    StopBits,
)

logger = logging.getLogger("serial_port_tools.configuration")

SUPPORTED_BAUD_RATES = (
    110, 150, 300, 600, 1200, 2400, 4800, 9600, 19200, 38400, 57600,
    115200, 230400, 460800, 500000, 576000, 921600, 1000000, 1152000,
    1500000, 2000000, 2500000, 3000000, 3500000, 4000000,
)

SUPPORTED_STOP_BITS = (1, 1.5, 2)

MIN_CHARACTER_LENGTH = 5
MAX_CHARACTER_LENGTH = 8


def coerce_parity(mode: ParityLike) -> Parity:
    """Return *mode* as a ``Parity``.

    Raises:
        UnsupportedParityError: If *mode* is not none, odd or even.
    """
    if isinstance(mode, Parity):
        return mode
    try:
        return Parity(mode.lower())
    except ValueError:
        valid = ", ".join(p.value for p in Parity)
        raise UnsupportedParityError(
            f"Parity mode {mode!r} is not supported. Must be one of: {valid}."
        ) from None


def coerce_flow_control(mode: FlowControlLike) -> FlowControl:
    """Return *mode* as a ``FlowControl``; accepts ``rts/cts`` and ``xon/xoff``.

    Raises:
        InvalidFlowControlError: If *mode* is not a known flow control mode.
    """
    if isinstance(mode, FlowControl):
        return mode
    key = mode.lower()
    if key in FLOW_CONTROL_ALIASES:
        return FLOW_CONTROL_ALIASES[key]
    try:
        return FlowControl(key)
    except ValueError:
        valid = ", ".join(f.value for f in FlowControl)
        raise InvalidFlowControlError(
            f"Flow control mode {mode!r} is not valid. Must be one of: {valid}."
        ) from None


def clamp_character_length(length: int) -> int:
    """Clamp *length* into the 5..8 data bit range."""
    return max(MIN_CHARACTER_LENGTH, min(MAX_CHARACTER_LENGTH, length))


@dataclasses.dataclass(frozen=True)
class LineSettings:
    """A bundle of line settings; ``None`` fields are left as they are.

    Example::

        LineSettings(baud_rate=115200, parity="none", character_length=8,
                     stop_bits=1, flow_control="none")
    """
    baud_rate: Optional[int] = None
    parity: Optional[ParityLike] = None
    character_length: Optional[int] = None
    stop_bits: Optional[StopBits] = None
    flow_control: Optional[FlowControlLike] = None


@typechecked
class ConfigurationTranslator:
    """Validates line settings and runs the matching OS command.

    The translator is stateless apart from its collaborators: the caller
    passes the configuration target (device path, or COM alias on Windows)
    to every call and is responsible for lifecycle gating.
    """

    def __init__(self, strategy: OsStrategy, runner: ShellRunner) -> None:
        self.strategy = strategy
        self.runner = runner

    def set_baud_rate(self, target: str, rate: int) -> str:
        """Set the baud rate.

        Returns:
            The command line that was executed.

        Raises:
            UnsupportedBaudRateError: If *rate* is not a supported rate.
            ConfigurationCommandFailedError: If the command exits non-zero.
        """
        if rate not in SUPPORTED_BAUD_RATES:
            msg = (
                f"Baud rate {rate} is not supported on {target}. "
                f"Common values: 9600, 19200, 38400, 57600, 115200."
            )
            logger.error("[CONF-BAUD] %s", msg)
            raise UnsupportedBaudRateError(msg)
        return self._execute(target, self.strategy.baud_rate_flags(rate), "baud rate")

    def set_parity(self, target: str, mode: ParityLike) -> str:
        """Set parity to none, odd or even.

        Raises:
            UnsupportedParityError: If *mode* is not a known parity.
            ConfigurationCommandFailedError: If the command exits non-zero.
        """
        parity = coerce_parity(mode)
        return self._execute(target, self.strategy.parity_flags(parity), "parity")

    def set_character_length(self, target: str, length: int) -> str:
        """Set the number of data bits; values outside 5..8 are clamped."""
        clamped = clamp_character_length(length)
        if clamped != length:
            logger.info(
                "[CONF-DATA] Character length %d clamped to %d on %s",
                length, clamped, target,
            )
        return self._execute(
            target, self.strategy.character_length_flags(clamped), "character length",
        )

    def set_stop_bits(self, target: str, length: StopBits) -> str:
        """Set the stop bit length to 1, 1.5 or 2.

        ``stty`` cannot express 1.5; it is accepted and configured as 2.

        Raises:
            InvalidStopBitsError: If *length* is not 1, 1.5 or 2.
            ConfigurationCommandFailedError: If the command exits non-zero.
        """
        if isinstance(length, bool) or length not in SUPPORTED_STOP_BITS:
            msg = f"Stop bit length {length!r} is invalid for {target}. Must be 1, 1.5 or 2."
            logger.error("[CONF-STOP] %s", msg)
            raise InvalidStopBitsError(msg)
        return self._execute(target, self.strategy.stop_bits_flags(length), "stop bits")

    def set_flow_control(self, target: str, mode: FlowControlLike) -> str:
        """Set flow control to none, rts_cts or xon_xoff.

        Raises:
            InvalidFlowControlError: If *mode* is not a known mode.
            ConfigurationCommandFailedError: If the command exits non-zero.
        """
        flow = coerce_flow_control(mode)
        return self._execute(target, self.strategy.flow_control_flags(flow), "flow control")

    def configure(self, target: str, settings: LineSettings) -> int:
        """Apply every non-``None`` field of *settings*.

        Returns:
            Number of commands executed.
        """
        applied = 0
        if settings.baud_rate is not None:
            self.set_baud_rate(target, settings.baud_rate)
            applied += 1
        if settings.character_length is not None:
            self.set_character_length(target, settings.character_length)
            applied += 1
        if settings.parity is not None:
            self.set_parity(target, settings.parity)
            applied += 1
        if settings.stop_bits is not None:
            self.set_stop_bits(target, settings.stop_bits)
            applied += 1
        if settings.flow_control is not None:
            self.set_flow_control(target, settings.flow_control)
            applied += 1
        return applied

    def _execute(self, target: str, flags: str, label: str) -> str:
        command = self.strategy.config_command(target, flags)
        logger.info("[CONF] Setting %s on %s: %r", label, target, command)

        outcome = self.runner.run(command)
        if not outcome.succeeded:
            stderr = outcome.stderr_text
            msg = (
                f"Unable to set {label} on {target}: {command!r} exited with "
                f"code {outcome.exit_code}. "
                f"stderr: {stderr.strip()[:200] or '(empty)'}"
            )
            logger.error("[CONF] FAILED: %s", msg)
            raise ConfigurationCommandFailedError(
                msg,
                command=command,
                return_code=outcome.exit_code,
                stdout=outcome.stdout_text,
                stderr=stderr,
            )
        return command
