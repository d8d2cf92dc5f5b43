"""
Port I/O test suite — buffered writes, chunked reads, line reads.

Uses a raw-mode PTY pair: the device under test opens the slave end and the
test plays the peer on the master end.

Run with full visibility:
    pytest tests/test_port_io.py -v -s
"""

from __future__ import annotations

import os
import sys
import time
from typing import List

import pytest

# ---------------------------------------------------------------------------
# Dependency gate
# ---------------------------------------------------------------------------
_MISSING: List[str] = []

try:
    from typeguard import typechecked  # noqa: F401
except ImportError:
    _MISSING.append("typeguard")

if _MISSING:
    print(
        f"\n  MISSING REQUIRED LIBRARIES: {', '.join(_MISSING)}\n"
        f"  Install them with:  pip install {' '.join(_MISSING)}\n",
        file=sys.stderr,
    )
    pytest.skip(f"Required libraries missing: {', '.join(_MISSING)}", allow_module_level=True)

from serial_port_tools.device import SerialDevice
from serial_port_tools.exceptions import (
    DeviceNotOpenError,
    FlushError,
    ReadError,
    ReadTimeoutError,
)
from serial_port_tools.handle import DeviceHandle
from serial_port_tools.port_io import PortIO
from serial_port_tools.types import OsVariant


def _report(label: str, detail: str = "") -> None:
    print(f"  [{label}] {detail}" if detail else f"  [{label}]")


@pytest.fixture()
def device(runner, serial_pair):
    """An opened device on the slave end of a virtual pair."""
    dev = SerialDevice(os_variant=OsVariant.LINUX, shell_runner=runner)
    dev.set_device(serial_pair.slave_path)
    dev.open("r+b")
    yield dev
    dev.close()


def _broken_write(self, data: bytes) -> int:
    raise OSError("EIO: device unplugged")


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — send / flush
# ═══════════════════════════════════════════════════════════════════════════

class TestSend:

    def test_send_auto_flush(self, device, serial_pair) -> None:
        _report("TEST", "send('AT\\r\\n', 0.0) with auto_flush")
        start = time.monotonic()
        device.send("AT\r\n", 0.0)
        elapsed = time.monotonic() - start
        assert device.pending_bytes == 0
        received = serial_pair.read_from_master()
        _report("ASSERT", f"peer received {received!r} in {elapsed:.3f}s")
        assert received == b"AT\r\n"
        assert elapsed < 0.5

    def test_send_bytes(self, device, serial_pair) -> None:
        device.send(b"\x00\x01\xfe\xff", 0)
        assert serial_pair.read_from_master() == b"\x00\x01\xfe\xff"

    def test_send_waits(self, device, serial_pair) -> None:
        start = time.monotonic()
        device.send(b"x", 0.2)
        assert time.monotonic() - start >= 0.2

    def test_manual_flush(self, device, serial_pair) -> None:
        device.auto_flush = False
        device.send("ABC", 0)
        device.send(b"DEF", 0)
        _report("ASSERT", f"pending_bytes == 6 → {device.pending_bytes}")
        assert device.pending_bytes == 6
        assert serial_pair.read_from_master(timeout=0.1) == b""

        written = device.flush()
        assert written == 6
        assert device.pending_bytes == 0
        assert serial_pair.read_from_master() == b"ABCDEF"

    def test_flush_empty_buffer(self, device) -> None:
        assert device.flush() == 0

    def test_buffer_survives_reopen(self, device, serial_pair) -> None:
        device.auto_flush = False
        device.send(b"later", 0)
        device.close()
        assert device.pending_bytes == 5
        device.open()
        device.flush()
        assert serial_pair.read_from_master() == b"later"

    def test_flush_requires_open(self, runner) -> None:
        dev = SerialDevice(os_variant=OsVariant.LINUX, shell_runner=runner, auto_flush=False)
        dev.set_device("/dev/ttyS0")
        dev.send(b"abc", 0)
        with pytest.raises(DeviceNotOpenError) as exc_info:
            dev.flush()
        assert exc_info.value.pending_bytes == 3
        assert isinstance(exc_info.value, FlushError)

    def test_failed_flush_keeps_buffer(self, device, monkeypatch) -> None:
        device.auto_flush = False
        device.send(b"precious", 0)
        monkeypatch.setattr(DeviceHandle, "write_all", _broken_write)
        with pytest.raises(FlushError) as exc_info:
            device.flush()
        _report("CAUGHT", str(exc_info.value))
        assert exc_info.value.pending_bytes == 8
        assert device.pending_bytes == 8

    def test_failed_flush_can_discard(self, runner, serial_pair, monkeypatch) -> None:
        dev = SerialDevice(
            os_variant=OsVariant.LINUX, shell_runner=runner,
            clear_buffer_on_flush_error=True,
        )
        dev.set_device(serial_pair.slave_path)
        with dev:
            dev.open()
            monkeypatch.setattr(DeviceHandle, "write_all", _broken_write)
            with pytest.raises(FlushError) as exc_info:
                dev.send(b"lost", 0)
            assert exc_info.value.pending_bytes == 0
            assert dev.pending_bytes == 0


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — polling and chunked reads
# ═══════════════════════════════════════════════════════════════════════════

class TestReadPort:

    def test_idle_device_has_no_data(self, device) -> None:
        assert device.data_available() == 0
        assert device.read_port() == b""

    def test_data_available_after_peer_write(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"ping")
        serial_pair.wait_for_slave_bytes(4)
        assert device.data_available() == 1

    def test_read_all(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"hello world")
        serial_pair.wait_for_slave_bytes(11)
        assert device.read_port() == b"hello world"

    def test_count_bounds_bytes_read(self, device, serial_pair) -> None:
        payload = bytes(range(256)) + bytes(44)
        serial_pair.write_to_master(payload)
        queued = serial_pair.wait_for_slave_bytes(300)
        _report("STEP", f"{queued} bytes queued on slave")

        first = device.read_port(200)
        _report("ASSERT", f"read_port(200) returned {len(first)} bytes")
        assert first == payload[:200]

        rest = device.read_port(0)
        assert rest == payload[200:]

    def test_count_exact_chunk_multiple(self, device, serial_pair) -> None:
        payload = b"A" * 256 + b"B" * 10
        serial_pair.write_to_master(payload)
        serial_pair.wait_for_slave_bytes(len(payload))
        assert device.read_port(256) == b"A" * 256
        assert device.read_port(100) == b"B" * 10

    def test_short_read_stops(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"abc")
        serial_pair.wait_for_slave_bytes(3)
        start = time.monotonic()
        data = device.read_port(5)
        assert data == b"abc"
        assert time.monotonic() - start < 0.5

    def test_negative_count(self, device) -> None:
        with pytest.raises(ReadError):
            device.read_port(-1)

    def test_read_requires_open(self, runner) -> None:
        dev = SerialDevice(os_variant=OsVariant.LINUX, shell_runner=runner)
        with pytest.raises(DeviceNotOpenError):
            dev.read_port(1)
        with pytest.raises(DeviceNotOpenError):
            dev.data_available()

    def test_read_flush_discards(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"stale boot noise")
        serial_pair.wait_for_slave_bytes(16)
        discarded = device.read_flush()
        _report("ASSERT", f"discarded {discarded} bytes")
        assert discarded == 16
        assert device.data_available() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — line reads
# ═══════════════════════════════════════════════════════════════════════════

class TestReadLine:

    def test_simple_line(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"OK\r\n")
        assert device.read_line(timeout=2.0) == "OK"

    def test_leading_terminators_skipped(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"\r\n\r\nfirst\nsecond\r")
        first = device.read_line(timeout=2.0)
        second = device.read_line(timeout=2.0)
        _report("ASSERT", f"lines → {first!r}, {second!r}")
        assert first == "first"
        assert second == "second"
        for line in (first, second):
            assert "\r" not in line and "\n" not in line

    def test_restores_non_blocking(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"line\n")
        device.read_line(timeout=2.0)
        handle = device._handle
        assert handle is not None
        assert os.get_blocking(handle.fileno()) is False

    def test_waits_for_late_terminator(self, device, serial_pair) -> None:
        import threading

        def peer() -> None:
            serial_pair.write_to_master(b"par")
            time.sleep(0.2)
            serial_pair.write_to_master(b"tial\n")

        t = threading.Thread(target=peer, daemon=True)
        t.start()
        assert device.read_line(timeout=3.0) == "partial"
        t.join()

    def test_timeout(self, device, serial_pair) -> None:
        serial_pair.write_to_master(b"no newline")
        start = time.monotonic()
        with pytest.raises(ReadTimeoutError) as exc_info:
            device.read_line(timeout=0.3)
        elapsed = time.monotonic() - start
        _report("CAUGHT", f"{exc_info.value} after {elapsed:.2f}s")
        assert exc_info.value.partial == b"no newline"
        assert elapsed < 2.0
        handle = device._handle
        assert handle is not None
        assert os.get_blocking(handle.fileno()) is False

    def test_blocks_without_timeout(self, device, serial_pair) -> None:
        import threading

        def peer() -> None:
            time.sleep(0.2)
            serial_pair.write_to_master(b"\nabc\r")

        t = threading.Thread(target=peer, daemon=True)
        t.start()
        start = time.monotonic()
        line = device.read_line()
        elapsed = time.monotonic() - start
        t.join()
        _report("ASSERT", f"read_line() -> {line!r} after {elapsed:.2f}s")
        assert line == "abc"
        assert elapsed >= 0.15
        handle = device._handle
        assert handle is not None
        assert os.get_blocking(handle.fileno()) is False

    def test_end_of_stream(self, device, serial_pair) -> None:
        os.close(serial_pair.master_fd)
        # already closed; the fixture's second close must not hit a reused fd
        serial_pair.master_fd = -1
        with pytest.raises(ReadError) as exc_info:
            device.read_line()
        _report("CAUGHT", str(exc_info.value))
        handle = device._handle
        assert handle is not None
        assert os.get_blocking(handle.fileno()) is False

    def test_decoding(self, device, serial_pair) -> None:
        serial_pair.write_to_master("température\n".encode("utf-8"))
        assert device.read_line(timeout=2.0) == "température"


class TestPortIOStandalone:
    """PortIO without a device keeps its buffer but refuses I/O."""

    def test_detached_send_with_auto_flush_fails(self) -> None:
        io = PortIO(auto_flush=True)
        with pytest.raises(DeviceNotOpenError):
            io.send(b"data", 0)
        assert io.pending_bytes == 4
