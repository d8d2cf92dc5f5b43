"""Type definitions for Serial Port Tools."""

from enum import Enum
from typing import Optional, Tuple, Union


class OsVariant(Enum):
    """Operating system family; selects the command vocabulary."""

    LINUX = "linux"
    MAC = "mac"
    WINDOWS = "windows"


class DeviceState(Enum):
    """Lifecycle state of a serial device.  Closing returns to ``SET``."""

    UNSET = "unset"
    SET = "set"
    OPENED = "opened"


class Parity(Enum):
    NONE = "none"
    ODD = "odd"
    EVEN = "even"


class FlowControl(Enum):
    NONE = "none"
    RTS_CTS = "rts_cts"
    XON_XOFF = "xon_xoff"


# Spellings accepted in addition to the enum values
FLOW_CONTROL_ALIASES = {
    "rts/cts": FlowControl.RTS_CTS,
    "xon/xoff": FlowControl.XON_XOFF,
}

# Configuration value types
StopBits = Union[int, float]  # 1, 1.5 or 2
ParityLike = Union[Parity, str]
FlowControlLike = Union[FlowControl, str]

# Device resolution
ResolvedDevice = Tuple[str, str, Optional[str]]  # (probe_target, device_path, windows_alias)
