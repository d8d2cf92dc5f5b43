"""Thin wrapper over the OS file handle of an open serial device."""

from __future__ import annotations

import ctypes
import logging
import os
import select
import time
from typing import Any, Optional

from . import WRITE_TIMEOUT_S

logger = logging.getLogger("serial_port_tools.handle")

# select() only works on sockets on Windows; COM ports are driven through
# the comm API instead.
_IS_WINDOWS = os.name == "nt"

if _IS_WINDOWS:
    import msvcrt

    from serial import win32

_COMM_POLL_INTERVAL_S = 0.01


class CommPort:
    """Comm-API controls for a Windows COM handle.

    ``api`` is a module shaped like ``serial.win32``: it provides
    ``COMMTIMEOUTS``, ``COMSTAT``, ``DWORD``, ``MAXDWORD``,
    ``SetCommTimeouts`` and ``ClearCommError``.
    """

    def __init__(self, os_handle: int, api: Any) -> None:
        self.os_handle = os_handle
        self._api = api

    def set_blocking(self, blocking: bool) -> None:
        """Switch read timeouts between wait-for-data and return-at-once.

        All-zero timeouts make ``ReadFile`` wait for the requested bytes.
        ``ReadIntervalTimeout=MAXDWORD`` with zero totals makes it return
        immediately with whatever is queued, possibly nothing.
        """
        timeouts = self._api.COMMTIMEOUTS()
        if not blocking:
            timeouts.ReadIntervalTimeout = self._api.MAXDWORD
            timeouts.ReadTotalTimeoutMultiplier = 0
            timeouts.ReadTotalTimeoutConstant = 0
        if not self._api.SetCommTimeouts(self.os_handle, ctypes.byref(timeouts)):
            raise OSError(f"SetCommTimeouts failed on handle {self.os_handle}")

    def in_waiting(self) -> int:
        """Number of bytes in the driver's receive queue."""
        flags = self._api.DWORD()
        comstat = self._api.COMSTAT()
        if not self._api.ClearCommError(self.os_handle, ctypes.byref(flags), ctypes.byref(comstat)):
            raise OSError(f"ClearCommError failed on handle {self.os_handle}")
        return comstat.cbInQue


def _open_comm_port(fileno: int) -> CommPort:
    return CommPort(msvcrt.get_osfhandle(fileno), win32)


class DeviceHandle:
    """Unbuffered binary file handle with blocking control and polling.

    The handle is always opened in binary mode with ``buffering=0`` so every
    ``read``/``write`` maps to one system call.  A non-blocking read with no
    data returns ``b""``.

    On POSIX, blocking mode is the ``O_NONBLOCK`` flag and polling uses
    ``select``.  On Windows both go through the comm API: read timeouts set
    the blocking mode and the receive-queue count answers the poll.
    """

    def __init__(self, path: str, mode: str) -> None:
        self.path = path
        self.mode = mode
        binary_mode = mode if "b" in mode else mode + "b"
        self._file = open(path, binary_mode, buffering=0)
        self._blocking = True
        self._comm: Optional[CommPort] = None
        if _IS_WINDOWS:
            try:
                self._comm = _open_comm_port(self._file.fileno())
            except OSError:
                self._file.close()
                raise

    @property
    def closed(self) -> bool:
        return self._file.closed

    @property
    def blocking(self) -> bool:
        return self._blocking

    def fileno(self) -> int:
        return self._file.fileno()

    def set_blocking(self, blocking: bool) -> None:
        if self._comm is not None:
            self._comm.set_blocking(blocking)
        else:
            os.set_blocking(self.fileno(), blocking)
        self._blocking = blocking

    def read(self, size: int) -> bytes:
        data = self._file.read(size)
        return data if data is not None else b""

    def wait_readable(self, timeout: Optional[float]) -> bool:
        """Wait until data is ready; ``timeout=0`` polls, ``None`` waits forever."""
        if self._comm is None:
            ready, _, _ = select.select([self._file], [], [], timeout)
            return bool(ready)

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._comm.in_waiting() > 0:
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(_COMM_POLL_INTERVAL_S)

    def write_all(self, data: bytes) -> int:
        """Write every byte of *data*, waiting on a full kernel buffer.

        Raises:
            OSError: If the device rejects the write or stays unwritable for
                longer than ``WRITE_TIMEOUT_S``.
        """
        view = memoryview(data)
        written = 0
        while written < len(data):
            n = self._file.write(view[written:])
            if n is None:
                self._wait_writable()
                continue
            written += n
        return written

    def _wait_writable(self) -> None:
        if self._comm is not None:
            time.sleep(_COMM_POLL_INTERVAL_S)
            return
        _, ready, _ = select.select([], [self._file], [], WRITE_TIMEOUT_S)
        if not ready:
            raise OSError(f"{self.path} not writable after {WRITE_TIMEOUT_S:.1f}s")

    def close(self) -> None:
        self._file.close()

    def invalidate(self) -> None:
        """Best-effort release of the file descriptor after a failed close."""
        if self._file.closed:
            return
        try:
            self._file.close()
        except OSError as exc:
            logger.warning("[HANDLE] Could not release %s: %s", self.path, exc)
