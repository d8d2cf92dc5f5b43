"""Command-line interface for serial port tools."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from . import DEFAULT_SERIAL_DEVICE, DEFAULT_SEND_WAIT_S
from .configuration import LineSettings
from .device import list_available_ports, open_serial_device, SerialDevice
from .exceptions import ConfigurationCommandFailedError, ReadTimeoutError


def _settings_from_args(args) -> LineSettings:
    return LineSettings(
        baud_rate=args.baud_rate,
        parity=args.parity,
        character_length=args.data_bits,
        stop_bits=args.stop_bits,
        flow_control=args.flow_control,
    )


def command_list(args) -> int:
    """List available serial ports."""
    ports = list_available_ports()
    if not ports:
        print("No serial ports found.")
    else:
        print("Available serial ports:")
        for p in ports:
            print(f"  {p}")
    return 0


def command_configure(args) -> int:
    """Apply line settings to a port without opening it."""
    try:
        device = SerialDevice()
        device.set_device(args.serial_device)
        device.configure(_settings_from_args(args))
        print(f"Configured {device.device_path}")
        return 0

    except ConfigurationCommandFailedError as e:
        print(f"Command failed (exit {e.return_code}): {e}", file=sys.stderr)
        if e.stderr:
            print(f"STDERR:\n{e.stderr}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


def command_send(args) -> int:
    """Send text to a port, optionally waiting for one reply line."""
    text = args.text + ("\r\n" if args.crlf else "")

    try:
        with open_serial_device(
            args.serial_device, settings=_settings_from_args(args),
        ) as device:
            device.read_flush()
            device.send(text, args.wait)
            if args.reply:
                print(device.read_line(timeout=args.timeout))
            return 0

    except ReadTimeoutError as e:
        if e.partial:
            print(e.partial.decode("utf-8", errors="replace"))
        print(f"\n[timed out after {args.timeout:.1f}s without a complete reply line]", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


def command_read_line(args) -> int:
    """Read lines from a port and print them."""
    try:
        with open_serial_device(
            args.serial_device, mode="rb", settings=_settings_from_args(args),
        ) as device:
            for _ in range(args.count):
                print(device.read_line(timeout=args.timeout), flush=True)
            return 0

    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


def _add_line_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "serial_device", nargs="?", default=DEFAULT_SERIAL_DEVICE,
        help=f"Serial device (e.g. /dev/ttyUSB0 or COM3; default: {DEFAULT_SERIAL_DEVICE}). "
             f"Overridable via SERIAL_PORT_DEVICE.",
    )
    parser.add_argument("--baud-rate", type=int, default=None, help="Baud rate")
    parser.add_argument(
        "--parity", choices=["none", "odd", "even"], default=None, help="Parity",
    )
    parser.add_argument("--data-bits", type=int, default=None, help="Data bits (5-8)")
    parser.add_argument(
        "--stop-bits", type=float, choices=[1, 1.5, 2], default=None, help="Stop bits",
    )
    parser.add_argument(
        "--flow-control", choices=["none", "rts_cts", "xon_xoff"], default=None,
        help="Flow control",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Serial Port Tools - configure and talk to serial ports"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # List ports
    list_parser = subparsers.add_parser("list", help="List available serial ports")
    list_parser.set_defaults(func=command_list)

    # Configure
    conf_parser = subparsers.add_parser("configure", help="Apply line settings")
    _add_line_arguments(conf_parser)
    conf_parser.set_defaults(func=command_configure)

    # Send
    send_parser = subparsers.add_parser("send", help="Send text to the device")
    _add_line_arguments(send_parser)
    send_parser.add_argument("text", help="Text to send")
    send_parser.add_argument(
        "--crlf", action="store_true", default=False, help="Append CR LF to the text",
    )
    send_parser.add_argument(
        "--wait", type=float, default=DEFAULT_SEND_WAIT_S,
        help=f"Seconds to wait after sending (default: {DEFAULT_SEND_WAIT_S})",
    )
    send_parser.add_argument(
        "--reply", action="store_true", default=False,
        help="Read and print one reply line",
    )
    send_parser.add_argument(
        "--timeout", type=float, default=5.0,
        help="Reply timeout in seconds (default: 5)",
    )
    send_parser.set_defaults(func=command_send)

    # Read lines
    read_parser = subparsers.add_parser("read-line", help="Read lines from the device")
    _add_line_arguments(read_parser)
    read_parser.add_argument(
        "--count", type=int, default=1, help="Number of lines to read (default: 1)",
    )
    read_parser.add_argument(
        "--timeout", type=float, default=None,
        help="Per-line timeout in seconds (default: wait forever)",
    )
    read_parser.set_defaults(func=command_read_line)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
