"""Per-OS command vocabularies for probing and configuring serial ports.

Each strategy turns already-validated line settings into the flag string of
its platform tool and wraps it into a full command line:

* Linux   — ``stty -F <path> <flags>``
* macOS   — ``stty -f <path> <flags>``
* Windows — ``mode <COMn> <flags>``

The strategy is chosen once per device, so no other module branches on the
operating system.
"""

from __future__ import annotations

import abc
import logging
import platform
import re
import shlex
from typing import Dict, Optional

from . import WINDOWS_PROBE_BAUD
from .exceptions import InvalidDeviceError, UnsupportedPlatformError
from .types import FlowControl, OsVariant, Parity, ResolvedDevice, StopBits

logger = logging.getLogger("serial_port_tools.strategies")

# "COM3" or "com3:"
_COM_PORT_RE = re.compile(r"^COM(\d+):?$", re.IGNORECASE)

# Windows ``mode`` takes two-digit codes for the legacy rates
_WINDOWS_BAUD_CODES: Dict[int, int] = {
    110: 11,
    150: 15,
    300: 30,
    600: 60,
    1200: 12,
    2400: 24,
    4800: 48,
    9600: 96,
    19200: 19,
}

_STTY_PARITY_FLAGS: Dict[Parity, str] = {
    Parity.NONE: "-parenb",
    Parity.ODD: "parenb parodd",
    Parity.EVEN: "parenb -parodd",
}

_STTY_FLOW_FLAGS: Dict[FlowControl, str] = {
    FlowControl.NONE: "clocal -crtscts -ixon -ixoff",
    FlowControl.RTS_CTS: "-clocal crtscts -ixon -ixoff",
    FlowControl.XON_XOFF: "-clocal -crtscts ixon ixoff",
}

_MODE_FLOW_FLAGS: Dict[FlowControl, str] = {
    FlowControl.NONE: "xon=off octs=off rts=on",
    FlowControl.RTS_CTS: "xon=off octs=on rts=hs",
    FlowControl.XON_XOFF: "xon=on octs=off rts=on",
}


class OsStrategy(abc.ABC):
    """Command vocabulary for one operating system family.

    Concrete strategies must override every abstract method; a missing
    override fails when the strategy is instantiated.
    """

    variant: OsVariant

    def tool_check_command(self) -> Optional[str]:
        """Command proving the configuration tool exists, or ``None`` to skip."""
        return None

    @abc.abstractmethod
    def resolve_device(self, device: str) -> ResolvedDevice:
        """Normalize a user-supplied device name.

        Returns ``(probe_target, device_path, windows_alias)``.

        Raises:
            InvalidDeviceError: If the name cannot denote a port on this OS.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def probe_command(self, probe_target: str) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def config_command(self, target: str, flags: str) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def baud_rate_flags(self, rate: int) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def parity_flags(self, parity: Parity) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def character_length_flags(self, length: int) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def stop_bits_flags(self, length: StopBits) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def flow_control_flags(self, mode: FlowControl) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SttyStrategy(OsStrategy):
    """Shared ``stty`` vocabulary; subclasses pick the device option letter."""

    device_option = ""

    def resolve_device(self, device: str) -> ResolvedDevice:
        return device, device, None

    def probe_command(self, probe_target: str) -> str:
        return f"stty {self.device_option} {shlex.quote(probe_target)}"

    def config_command(self, target: str, flags: str) -> str:
        return f"stty {self.device_option} {shlex.quote(target)} {flags}"

    def baud_rate_flags(self, rate: int) -> str:
        return str(rate)

    def parity_flags(self, parity: Parity) -> str:
        return _STTY_PARITY_FLAGS[parity]

    def character_length_flags(self, length: int) -> str:
        return f"cs{length}"

    def stop_bits_flags(self, length: StopBits) -> str:
        # termios has a single CSTOPB bit: 1.5 and 2 both set it
        return "-cstopb" if length == 1 else "cstopb"

    def flow_control_flags(self, mode: FlowControl) -> str:
        return _STTY_FLOW_FLAGS[mode]


class LinuxStrategy(SttyStrategy):
    variant = OsVariant.LINUX
    device_option = "-F"

    def tool_check_command(self) -> Optional[str]:
        return "stty --version"

    def resolve_device(self, device: str) -> ResolvedDevice:
        match = _COM_PORT_RE.match(device)
        if match is None:
            return device, device, None

        number = int(match.group(1))
        if number < 1:
            raise InvalidDeviceError(
                f"Serial port {device!r} is not valid: COM port numbers start at 1.",
                device=device,
            )
        path = f"/dev/ttyS{number - 1}"
        logger.debug("[RESOLVE] Mapped %s to %s", device, path)
        return path, path, None


class MacStrategy(SttyStrategy):
    # stty exits 1 without a controlling terminal on Darwin, so the tool
    # check is skipped.
    variant = OsVariant.MAC
    device_option = "-f"


class WindowsStrategy(OsStrategy):
    variant = OsVariant.WINDOWS

    def resolve_device(self, device: str) -> ResolvedDevice:
        match = _COM_PORT_RE.match(device)
        if match is None:
            raise InvalidDeviceError(
                f"Serial port {device!r} is not valid on Windows. "
                f"Use a COM port name such as COM1.",
                device=device,
            )
        number = match.group(1)
        return device, f"\\\\.\\COM{number}", f"COM{number}"

    def probe_command(self, probe_target: str) -> str:
        return f"mode {probe_target} xon=on BAUD={WINDOWS_PROBE_BAUD}"

    def config_command(self, target: str, flags: str) -> str:
        return f"mode {target} {flags}"

    def baud_rate_flags(self, rate: int) -> str:
        return f"BAUD={_WINDOWS_BAUD_CODES.get(rate, rate)}"

    def parity_flags(self, parity: Parity) -> str:
        return f"PARITY={parity.value[0]}"

    def character_length_flags(self, length: int) -> str:
        return f"DATA={length}"

    def stop_bits_flags(self, length: StopBits) -> str:
        return f"STOP={length:g}"

    def flow_control_flags(self, mode: FlowControl) -> str:
        return _MODE_FLOW_FLAGS[mode]


_STRATEGIES = {
    OsVariant.LINUX: LinuxStrategy,
    OsVariant.MAC: MacStrategy,
    OsVariant.WINDOWS: WindowsStrategy,
}


def strategy_for(variant: OsVariant) -> OsStrategy:
    """Return a fresh strategy for *variant*."""
    return _STRATEGIES[variant]()


def detect_os_variant(system: Optional[str] = None) -> OsVariant:
    """Map ``platform.system()`` (or *system*) to an ``OsVariant``.

    Raises:
        UnsupportedPlatformError: For anything but Linux, Darwin and Windows.
    """
    name = system if system is not None else platform.system()
    if name.startswith("Linux"):
        return OsVariant.LINUX
    if name.startswith("Darwin"):
        return OsVariant.MAC
    if name.startswith("Windows"):
        return OsVariant.WINDOWS
    raise UnsupportedPlatformError(
        f"Host OS {name!r} is neither macOS, Linux nor Windows; "
        f"no serial configuration tool is known for it."
    )
