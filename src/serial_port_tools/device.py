"""Serial device lifecycle: set, configure, open, I/O, close.

``SerialDevice`` is the single owner of a port's path, OS handle and write
buffer.  Every operation is gated by the lifecycle state:

* ``UNSET``  — only ``set_device`` is allowed.
* ``SET``    — configuration calls, ``set_device`` and ``open``.
* ``OPENED`` — I/O calls and ``close``; ``close`` returns to ``SET``.

Use the device as a context manager (or ``open_serial_device``) so the
handle is released on every exit path.
"""

from __future__ import annotations

import contextlib
import logging
import re
from typing import Iterator, List, Optional, Union

import serial.tools.list_ports
from typeguard import typechecked

from . import DEFAULT_ENCODING, DEFAULT_OPEN_MODE, DEFAULT_SEND_WAIT_S
from .configuration import ConfigurationTranslator, LineSettings
from .exceptions import (
    AlreadyOpenError,
    DeviceBusyError,
    DeviceCloseError,
    DeviceNotConfigurableError,
    DeviceNotOpenError,
    DeviceNotSetError,
    DeviceOpenError,
    InvalidDeviceError,
    InvalidOpenModeError,
    ShellToolUnavailableError,
)
from .handle import DeviceHandle
from .port_io import PortIO
from .shell import ShellRunner, SubprocessShellRunner
from .strategies import OsStrategy, detect_os_variant, strategy_for
from .types import DeviceState, FlowControlLike, OsVariant, ParityLike, StopBits

logger = logging.getLogger("serial_port_tools.device")

_OPEN_MODE_RE = re.compile(r"^[raw]\+?b?$")


def list_available_ports() -> List[str]:
    """Return ``"<device> - <description>"`` for every port the OS reports."""
    descriptions = []
    for p in serial.tools.list_ports.comports():
        descriptions.append(f"{p.device} - {p.description}")
        logger.debug("[SERIAL-LIST] Found port: %s (%s)", p.device, p.description)
    return descriptions


def _ports_hint() -> str:
    ports = [p.device for p in serial.tools.list_ports.comports()]
    return "Available ports: " + (", ".join(ports) if ports else "(none found)") + "."


@typechecked
class SerialDevice:
    """A serial port driven through OS configuration commands.

    Example::

        device = SerialDevice()
        device.set_device("/dev/ttyUSB0")
        device.set_baud_rate(115200)
        device.set_parity("none")
        with device:
            device.open()
            device.send("AT\\r\\n")
            print(device.read_line(timeout=2.0))
    """

    def __init__(
        self,
        os_variant: Optional[OsVariant] = None,
        shell_runner: Optional[ShellRunner] = None,
        strategy: Optional[OsStrategy] = None,
        auto_flush: bool = True,
        clear_buffer_on_flush_error: bool = False,
        verify_tools: bool = True,
    ) -> None:
        """Initialize a device in the ``UNSET`` state.

        Args:
            os_variant: OS command vocabulary to use.  Detected from the host
                when omitted (or taken from *strategy*).
            shell_runner: Runner for ``stty``/``mode`` commands.  Defaults to
                a ``SubprocessShellRunner``.
            strategy: Explicit strategy; overrides *os_variant*.
            auto_flush: Flush on every ``send`` (default: ``True``).
            clear_buffer_on_flush_error: Drop buffered data when a flush
                fails instead of keeping it (default: ``False``).
            verify_tools: Run the strategy's tool check once (Linux:
                ``stty --version``).

        Raises:
            UnsupportedPlatformError: If the host OS cannot be mapped.
            ShellToolUnavailableError: If the tool check fails.
        """
        if strategy is None:
            strategy = strategy_for(os_variant if os_variant is not None else detect_os_variant())
        self._strategy = strategy
        self._runner = shell_runner if shell_runner is not None else SubprocessShellRunner()
        self._translator = ConfigurationTranslator(self._strategy, self._runner)
        self._io = PortIO(auto_flush=auto_flush, clear_buffer_on_error=clear_buffer_on_flush_error)

        self._state = DeviceState.UNSET
        self._device_path: Optional[str] = None
        self._windows_alias: Optional[str] = None
        self._handle: Optional[DeviceHandle] = None

        if verify_tools:
            self._verify_tools()

        logger.debug("[SERIAL-INIT] Created device using %r", self._strategy)

    def _verify_tools(self) -> None:
        command = self._strategy.tool_check_command()
        if command is None:
            return
        outcome = self._runner.run(command)
        if not outcome.succeeded:
            msg = (
                f"{command!r} exited with code {outcome.exit_code}; no stty available, "
                f"unable to configure serial ports. "
                f"stderr: {outcome.stderr_text.strip()[:200] or '(empty)'}"
            )
            logger.error("[SERIAL-INIT] %s", msg)
            raise ShellToolUnavailableError(msg)

    # ---- Read-only state ----

    @property
    def os_variant(self) -> OsVariant:
        return self._strategy.variant

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def device_path(self) -> Optional[str]:
        return self._device_path

    @property
    def windows_alias(self) -> Optional[str]:
        return self._windows_alias

    @property
    def is_open(self) -> bool:
        return self._state is DeviceState.OPENED

    @property
    def pending_bytes(self) -> int:
        return self._io.pending_bytes

    @property
    def auto_flush(self) -> bool:
        return self._io.auto_flush

    @auto_flush.setter
    def auto_flush(self, value: bool) -> None:
        self._io.auto_flush = value

    # ---- Lifecycle ----

    def set_device(self, device: str) -> None:
        """Select and validate the port.

        On Linux a Windows-style ``COM<N>`` name is mapped to
        ``/dev/ttyS<N-1>``.  The port is probed with ``stty`` (Linux, macOS)
        or ``mode`` (Windows) before it is accepted.

        Args:
            device: ``/dev/ttyUSB0``, ``/dev/tty.usbserial``, ``COM3``, ...

        Raises:
            DeviceBusyError: If the current device is open.
            InvalidDeviceError: If the name is malformed or the probe fails.
        """
        if self._state is DeviceState.OPENED:
            msg = (
                f"Cannot set device {device!r}: {self._device_path} is open. "
                f"Close it before setting another device."
            )
            logger.error("[SET-DEVICE] %s", msg)
            raise DeviceBusyError(msg)

        probe_target, device_path, windows_alias = self._strategy.resolve_device(device)
        command = self._strategy.probe_command(probe_target)
        logger.info("[SET-DEVICE] Probing %s: %r", device, command)

        outcome = self._runner.run(command)
        if not outcome.succeeded:
            msg = (
                f"Specified serial port {device!r} is not valid: {command!r} exited "
                f"with code {outcome.exit_code} "
                f"(stderr: {outcome.stderr_text.strip()[:200] or '(empty)'}). "
                f"{_ports_hint()}"
            )
            logger.error("[SET-DEVICE] FAILED: %s", msg)
            raise InvalidDeviceError(msg, device=device, outcome=outcome)

        self._device_path = device_path
        self._windows_alias = windows_alias
        self._state = DeviceState.SET
        logger.info("[SET-DEVICE] Device set to %s", device_path)

    def open(self, mode: str = DEFAULT_OPEN_MODE) -> None:
        """Open the device and switch the handle to non-blocking mode.

        Args:
            mode: ``fopen``-style mode: ``r``, ``w`` or ``a``, optionally
                followed by ``+`` and ``b``.  The handle is always binary.

        Raises:
            AlreadyOpenError: If the device is already open.
            DeviceNotSetError: If no device has been set.
            InvalidOpenModeError: If *mode* is malformed.
            DeviceOpenError: If the OS refuses to open the device.
        """
        if self._state is DeviceState.OPENED:
            msg = f"The device {self._device_path} is already opened"
            logger.error("[OPEN] %s", msg)
            raise AlreadyOpenError(msg)
        if self._state is DeviceState.UNSET or self._device_path is None:
            msg = "The device must be set before it can be opened"
            logger.error("[OPEN] %s", msg)
            raise DeviceNotSetError(msg)

        path = self._device_path
        if not _OPEN_MODE_RE.match(mode):
            raise InvalidOpenModeError(
                f"Invalid opening mode {mode!r} for {path}. Use r, w or a, "
                f"optionally followed by '+' and 'b'.",
                device=path, mode=mode,
            )

        logger.info("[OPEN] Opening %s in mode %s ...", path, mode)
        try:
            handle = DeviceHandle(path, mode)
        except OSError as exc:
            msg = f"Unable to open device {path} in mode {mode}: {exc}"
            logger.error("[OPEN] FAILED: %s", msg)
            raise DeviceOpenError(msg, device=path, mode=mode) from exc

        try:
            handle.set_blocking(False)
        except OSError as exc:
            handle.invalidate()
            msg = f"Unable to make {path} non-blocking: {exc}"
            logger.error("[OPEN] FAILED: %s", msg)
            raise DeviceOpenError(msg, device=path, mode=mode) from exc

        self._handle = handle
        self._io.attach(handle, path)
        self._state = DeviceState.OPENED
        logger.info("[OPEN] Successfully opened %s", path)

    def set_blocking(self, blocking: bool) -> None:
        """Switch the open handle between blocking and non-blocking reads."""
        if self._handle is None:
            raise DeviceNotOpenError(
                f"Cannot change blocking mode of {self._device_path or '(unset)'}: device is not open."
            )
        self._handle.set_blocking(blocking)

    def close(self) -> None:
        """Close the device if open; the device returns to ``SET``.

        Raises:
            DeviceCloseError: If the OS reports an error while closing.  The
                handle is released on a best-effort basis first.
        """
        if self._state is not DeviceState.OPENED or self._handle is None:
            logger.debug("[CLOSE] close() called on %s which is not open", self._device_path)
            return

        handle = self._handle
        self._io.detach()
        self._handle = None
        self._state = DeviceState.SET

        try:
            handle.close()
        except OSError as exc:
            handle.invalidate()
            msg = f"Unable to close the device {self._device_path}: {exc}"
            logger.error("[CLOSE] FAILED: %s", msg)
            raise DeviceCloseError(msg) from exc

        logger.info("[CLOSE] Closed %s", self._device_path)

    # ---- Configuration ----

    def _config_target(self, setting: str) -> str:
        if self._state is not DeviceState.SET or self._device_path is None:
            msg = (
                f"Unable to set {setting}: the device is either not set or opened "
                f"(state={self._state.value})"
            )
            logger.error("[CONF] %s", msg)
            raise DeviceNotConfigurableError(msg)
        return self._windows_alias if self._windows_alias is not None else self._device_path

    def set_baud_rate(self, rate: int) -> None:
        self._translator.set_baud_rate(self._config_target("the baud rate"), rate)

    def set_parity(self, mode: ParityLike) -> None:
        self._translator.set_parity(self._config_target("parity"), mode)

    def set_character_length(self, length: int) -> None:
        self._translator.set_character_length(self._config_target("the character length"), length)

    def set_stop_bits(self, length: StopBits) -> None:
        self._translator.set_stop_bits(self._config_target("the stop bit length"), length)

    def set_flow_control(self, mode: FlowControlLike) -> None:
        self._translator.set_flow_control(self._config_target("flow control"), mode)

    def configure(self, settings: LineSettings) -> None:
        """Apply several line settings at once; see ``LineSettings``."""
        self._translator.configure(self._config_target("line settings"), settings)

    # ---- I/O ----

    def send(
        self,
        data: Union[bytes, bytearray, str],
        wait_seconds: float = DEFAULT_SEND_WAIT_S,
        encoding: str = DEFAULT_ENCODING,
    ) -> None:
        self._io.send(data, wait_seconds, encoding)

    def flush(self) -> int:
        return self._io.flush()

    def read_line(self, timeout: Optional[float] = None, encoding: str = DEFAULT_ENCODING) -> str:
        return self._io.read_line(timeout, encoding)

    def read_flush(self) -> int:
        return self._io.read_flush()

    def data_available(self) -> int:
        return self._io.data_available()

    def read_port(self, count: int = 0) -> bytes:
        return self._io.read_port(count)

    # ---- Context manager ----

    def __enter__(self) -> SerialDevice:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Context manager exit — ensures the device is closed."""
        self.close()

    def __del__(self) -> None:
        """Destructor — last-resort close."""
        try:
            self.close()
        except Exception:
            pass


@contextlib.contextmanager
def open_serial_device(
    device: str,
    mode: str = DEFAULT_OPEN_MODE,
    settings: Optional[LineSettings] = None,
    **kwargs,
) -> Iterator[SerialDevice]:
    """Set, configure and open *device*; close it when the block exits.

    Extra keyword arguments are passed to ``SerialDevice``.

    Example::

        with open_serial_device("/dev/ttyUSB0", settings=LineSettings(baud_rate=9600)) as dev:
            dev.send(b"PING\\r")
            print(dev.read_line(timeout=1.0))
    """
    serial_device = SerialDevice(**kwargs)
    serial_device.set_device(device)
    if settings is not None:
        serial_device.configure(settings)
    serial_device.open(mode)
    try:
        yield serial_device
    finally:
        serial_device.close()
