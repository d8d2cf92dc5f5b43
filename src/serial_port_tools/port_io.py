"""Buffered writes and polling reads over an open serial device handle.

``PortIO`` keeps the write buffer for its device across open/close cycles
and is attached to the live ``DeviceHandle`` only while the device is open.
Reads never hang unless the caller explicitly asks for a blocking line read
without a timeout.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Union

from typeguard import typechecked

from . import DEFAULT_ENCODING, DEFAULT_SEND_WAIT_S, READ_CHUNK_SIZE
from .exceptions import DeviceNotOpenError, FlushError, ReadError, ReadTimeoutError
from .handle import DeviceHandle

logger = logging.getLogger("serial_port_tools.port_io")

_LINE_TERMINATORS = (b"\r", b"\n")


@typechecked
class PortIO:
    """Write buffer plus read primitives for one serial device.

    Example::

        io = PortIO(auto_flush=True)
        io.attach(handle, "/dev/ttyUSB0")
        io.send("AT\\r\\n", wait_seconds=0.2)
        reply = io.read_line(timeout=2.0)
    """

    def __init__(self, auto_flush: bool = True, clear_buffer_on_error: bool = False) -> None:
        """Initialize port I/O.

        Args:
            auto_flush: Flush the buffer on every ``send`` (default: ``True``).
            clear_buffer_on_error: Discard the buffer when a flush fails
                instead of keeping it for a retry (default: ``False``).
        """
        self.auto_flush = auto_flush
        self.clear_buffer_on_error = clear_buffer_on_error
        self.port_name = ""
        self._buffer = bytearray()
        self._handle: Optional[DeviceHandle] = None

    # ---- Handle binding ----

    def attach(self, handle: DeviceHandle, port_name: str) -> None:
        self._handle = handle
        self.port_name = port_name

    def detach(self) -> None:
        self._handle = None

    @property
    def pending_bytes(self) -> int:
        """Number of bytes waiting in the write buffer."""
        return len(self._buffer)

    def _require_handle(self, operation: str) -> DeviceHandle:
        if self._handle is None:
            msg = (
                f"Cannot {operation} serial device {self.port_name or '(unset)'}: "
                f"device is not open. Call open() or use a context manager first."
            )
            logger.error("[SERIAL-IO] %s", msg)
            raise DeviceNotOpenError(msg, pending_bytes=len(self._buffer))
        return self._handle

    # ---- Writing ----

    def send(
        self,
        data: Union[bytes, bytearray, str],
        wait_seconds: float = DEFAULT_SEND_WAIT_S,
        encoding: str = DEFAULT_ENCODING,
    ) -> None:
        """Queue *data* for transmission, then give the peer time to reply.

        Args:
            data: Bytes to send; ``str`` is encoded with *encoding*.
            wait_seconds: Pause after queueing (and flushing), in seconds.
                This is a courtesy delay, not a timeout.
            encoding: Encoding applied to ``str`` data.

        Raises:
            FlushError: If ``auto_flush`` is on and the write fails.
        """
        payload = data.encode(encoding) if isinstance(data, str) else bytes(data)
        self._buffer += payload
        logger.debug(
            "[SERIAL-SEND] Queued %d bytes for %s (%d pending)",
            len(payload), self.port_name, len(self._buffer),
        )

        if self.auto_flush:
            self.flush()

        if wait_seconds > 0:
            time.sleep(wait_seconds)

    def flush(self) -> int:
        """Write the whole buffer to the device in one operation.

        The buffer is emptied when the write succeeds.  On failure it is kept
        (so the caller may retry) unless ``clear_buffer_on_error`` is set.

        Returns:
            Number of bytes written.

        Raises:
            DeviceNotOpenError: If the device is not open.
            FlushError: If the write fails.
        """
        handle = self._require_handle("flush")
        if not self._buffer:
            return 0

        data = bytes(self._buffer)
        try:
            written = handle.write_all(data)
        except (OSError, ValueError) as exc:
            if self.clear_buffer_on_error:
                self._buffer.clear()
            msg = (
                f"Error while sending {len(data)} bytes to {self.port_name}: {exc}. "
                f"The device may have been disconnected."
            )
            logger.error("[SERIAL-FLUSH] FAILED: %s (%d bytes still buffered)", msg, len(self._buffer))
            raise FlushError(msg, pending_bytes=len(self._buffer)) from exc

        self._buffer.clear()
        logger.debug("[SERIAL-FLUSH] Wrote %d bytes to %s", written, self.port_name)
        return written

    # ---- Reading ----

    def data_available(self) -> int:
        """Poll the device without waiting.

        Returns:
            ``1`` if data is ready to read, ``0`` otherwise.

        Raises:
            ReadError: If the poll itself fails.
        """
        handle = self._require_handle("poll")
        try:
            return 1 if handle.wait_readable(0) else 0
        except (OSError, ValueError) as exc:
            msg = f"Error polling {self.port_name}: {exc}"
            logger.error("[SERIAL-POLL] %s", msg)
            raise ReadError(msg) from exc

    def read_port(self, count: int = 0) -> bytes:
        """Read what the device has ready.

        With ``count == 0`` the port is read in 128-byte chunks until a read
        comes back short.  With ``count > 0`` at most *count* bytes are read,
        stopping early on a short read.

        Raises:
            DeviceNotOpenError: If the device is not open.
            ReadError: If *count* is negative or the read fails.
        """
        handle = self._require_handle("read from")
        if count < 0:
            raise ReadError(f"Cannot read {count} bytes from {self.port_name}: count must be >= 0")

        content = bytearray()
        try:
            if count == 0:
                while True:
                    chunk = handle.read(READ_CHUNK_SIZE)
                    content += chunk
                    if len(chunk) < READ_CHUNK_SIZE:
                        break
            else:
                while len(content) < count:
                    wanted = min(count - len(content), READ_CHUNK_SIZE)
                    chunk = handle.read(wanted)
                    content += chunk
                    if len(chunk) < wanted:
                        break
        except (OSError, ValueError) as exc:
            msg = f"Error reading from {self.port_name} after {len(content)} bytes: {exc}"
            logger.error("[SERIAL-READ] %s", msg)
            raise ReadError(msg) from exc

        return bytes(content)

    def read_line(self, timeout: Optional[float] = None, encoding: str = DEFAULT_ENCODING) -> str:
        """Read one line terminated by CR or LF.

        Leading terminators are skipped, so the returned line is never empty
        and never contains CR or LF.  The handle is switched to blocking mode
        for the duration of the call and back to non-blocking afterwards.

        Args:
            timeout: Overall limit in seconds.  ``None`` waits indefinitely.
            encoding: Encoding used to decode the line.

        Raises:
            ReadTimeoutError: If *timeout* expires before a full line arrives.
            ReadError: If the device reports end of stream or a read fails.
        """
        handle = self._require_handle("read a line from")
        deadline = None if timeout is None else time.monotonic() + timeout
        line = bytearray()

        handle.set_blocking(True)
        try:
            while True:
                if deadline is not None:
                    remaining = max(0.0, deadline - time.monotonic())
                    try:
                        ready = handle.wait_readable(remaining)
                    except OSError as exc:
                        msg = f"Error polling {self.port_name}: {exc}"
                        logger.error("[SERIAL-READLINE] %s", msg)
                        raise ReadError(msg) from exc
                    if not ready:
                        msg = (
                            f"No complete line from {self.port_name} within "
                            f"{timeout:.2f}s ({len(line)} bytes pending)"
                        )
                        logger.warning("[SERIAL-READLINE] %s", msg)
                        raise ReadTimeoutError(msg, partial=bytes(line))

                byte = self.read_port(1)
                if not byte:
                    raise ReadError(f"End of stream on {self.port_name} while reading a line")
                if byte in _LINE_TERMINATORS:
                    if line:
                        break
                    continue
                line += byte
        finally:
            handle.set_blocking(False)

        logger.debug("[SERIAL-READLINE] %d bytes from %s", len(line), self.port_name)
        return line.decode(encoding, errors="replace")

    def read_flush(self) -> int:
        """Discard everything the device has ready.

        Returns:
            Number of bytes discarded.
        """
        discarded = 0
        while self.data_available():
            if not self.read_port(1):
                break
            discarded += 1
        if discarded:
            logger.info("[SERIAL-FLUSH] Discarded %d stale bytes from %s", discarded, self.port_name)
        return discarded
