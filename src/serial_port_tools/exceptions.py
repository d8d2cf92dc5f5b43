"""Custom exceptions for serial device lifecycle, configuration and I/O."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .shell import CommandOutcome


class SerialPortToolsError(Exception):
    """Common base exception for all serial_port_tools errors."""
    pass


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class UnsupportedPlatformError(SerialPortToolsError):
    """Host OS is neither Linux, macOS nor Windows."""
    pass


class ShellToolUnavailableError(SerialPortToolsError):
    """The command-line utility needed to configure the port is missing."""
    pass


class ShellCommandTimeoutError(SerialPortToolsError):
    """An external command did not finish within its timeout.

    Attributes:
        command: The command line that was abandoned.
        timeout: The timeout in seconds that expired.
    """

    def __init__(self, message: str, *, command: str, timeout: float) -> None:
        super().__init__(message)
        self.command = command
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class DeviceStateError(SerialPortToolsError):
    """Base for operations invoked in the wrong lifecycle state."""
    pass


class DeviceNotSetError(DeviceStateError):
    """``open()`` was called before a device path was set."""
    pass


class DeviceBusyError(DeviceStateError):
    """``set_device()`` was called while the current device is open."""
    pass


class AlreadyOpenError(DeviceStateError):
    """``open()`` was called on a device that is already open."""
    pass


class InvalidDeviceError(SerialPortToolsError):
    """The device path was rejected or its probe command failed.

    Attributes:
        device: The path (or COM label) that was rejected.
        outcome: The probe ``CommandOutcome``, or ``None`` if no probe ran.
    """

    def __init__(
        self,
        message: str,
        *,
        device: str,
        outcome: Optional[CommandOutcome] = None,
    ) -> None:
        super().__init__(message)
        self.device = device
        self.outcome = outcome


class DeviceOpenError(SerialPortToolsError):
    """The OS refused to open the device.

    Attributes:
        device: The device path.
        mode: The open mode that was requested.
    """

    def __init__(self, message: str, *, device: str, mode: str) -> None:
        super().__init__(message)
        self.device = device
        self.mode = mode


class InvalidOpenModeError(DeviceOpenError):
    """The open mode does not match ``[raw]+?b?``."""
    pass


class DeviceCloseError(SerialPortToolsError):
    """Closing the handle failed.  The handle has been invalidated anyway."""
    pass


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(SerialPortToolsError):
    """Base for line configuration errors."""
    pass


class DeviceNotConfigurableError(ConfigurationError, DeviceStateError):
    """Configuration requires the device to be set and not open."""
    pass


class UnsupportedBaudRateError(ConfigurationError):
    """Baud rate is not in the supported list."""
    pass


class UnsupportedParityError(ConfigurationError):
    """Parity is not one of none, odd, even."""
    pass


class InvalidStopBitsError(ConfigurationError):
    """Stop bit length is not one of 1, 1.5, 2."""
    pass


class InvalidFlowControlError(ConfigurationError):
    """Flow control is not one of none, rts_cts, xon_xoff."""
    pass


class ConfigurationCommandFailedError(ConfigurationError):
    """The configuration command exited with a non-zero code.

    Attributes:
        command: The command line that failed.
        return_code: The non-zero exit code.
        stdout: Standard output from the command.
        stderr: Standard error from the command.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str,
        return_code: int,
        stdout: str,
        stderr: str,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.return_code = return_code
        self.stdout = stdout
        self.stderr = stderr


# ---------------------------------------------------------------------------
# I/O
# ---------------------------------------------------------------------------


class FlushError(SerialPortToolsError):
    """Writing the output buffer to the device failed.

    Attributes:
        pending_bytes: Bytes still held in the write buffer after the
            failure (``0`` when the buffer was discarded).
    """

    def __init__(self, message: str, *, pending_bytes: int = 0) -> None:
        super().__init__(message)
        self.pending_bytes = pending_bytes


class ReadError(SerialPortToolsError):
    """Reading from or polling the device failed."""
    pass


class ReadTimeoutError(ReadError):
    """A bounded read gave up before a complete line arrived.

    Attributes:
        partial: Bytes accumulated before the timeout.
    """

    def __init__(self, message: str, *, partial: bytes = b"") -> None:
        super().__init__(message)
        self.partial = partial


class DeviceNotOpenError(FlushError, ReadError):
    """An I/O operation was attempted on a device that is not open."""
    pass
