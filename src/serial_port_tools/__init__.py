"""
Serial Port Tools - portable serial line configuration and I/O

This package drives an RS-232-class serial port the same way on Linux, macOS
and Windows. It includes:

- **Device lifecycle** with explicit set / open / close states
- **Line configuration** translated into ``stty`` (Linux, macOS) or ``mode``
  (Windows) command lines
- **Buffered writes** with optional auto-flush
- **Polling reads**: chunked reads, line reads and buffer draining over a
  non-blocking handle

Configuration commands are executed through a pluggable shell runner so the
whole stack can be exercised without touching real hardware.
"""

import logging
import os

logging.getLogger("serial_port_tools").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Default device used by the CLI when no path is given.
# Override via the SERIAL_PORT_DEVICE environment variable.
DEFAULT_SERIAL_DEVICE = os.environ.get("SERIAL_PORT_DEVICE", "/dev/ttyS0")

# Mode string passed to open() when the caller does not give one
DEFAULT_OPEN_MODE = "r+b"

# Timeout settings
SHELL_COMMAND_TIMEOUT_S = float(os.environ.get("SERIAL_SHELL_TIMEOUT", "30"))
WRITE_TIMEOUT_S = 10.0  # seconds a full kernel buffer may block a flush

# I/O settings
READ_CHUNK_SIZE = 128
DEFAULT_SEND_WAIT_S = float(os.environ.get("SERIAL_SEND_WAIT", "0.1"))
DEFAULT_ENCODING = "utf-8"

# Windows probe: "mode COMx xon=on BAUD=9600" both validates and resets the port
WINDOWS_PROBE_BAUD = 9600
