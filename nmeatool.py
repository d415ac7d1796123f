#!/usr/bin/env python3
"""NMEA receiver monitor and ST Teseo configuration tool."""

from __future__ import annotations

import argparse
import logging
import sys

import serial

from commands import CommandError, LibraryId, NotchFilterMode
from connection import NmeaConnection
from receiver import (
    configure_anti_jamming,
    configure_odometer,
    force_standby,
    probe_receiver,
    query_standby_status,
    query_unique_code,
    query_versions,
    set_standby_enable,
)


class LevelFormatter(logging.Formatter):
    """Prefix warnings and errors with their level; leave info bare."""

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"error: {msg}"
        if record.levelno >= logging.WARNING:
            return f"warning: {msg}"
        if record.levelno <= logging.DEBUG:
            return f"debug: {msg}"
        return msg


LIBRARY_NAMES: dict[str, LibraryId] = {
    "gnss": LibraryId.GNSS_LIBRARY,
    "os20": LibraryId.OS20,
    "app": LibraryId.SDK_APP,
    "image": LibraryId.BINARY_IMAGE,
    "hw": LibraryId.STA8088_HW,
    "config-id": LibraryId.SW_CONFIG_ID,
    "product": LibraryId.PRODUCT_ID,
    "config": LibraryId.CONFIG_DATA,
    "all": LibraryId.ALL_VERSIONS,
}


def parse_library_id(value: str) -> LibraryId:
    """Parse --sw-version argument: a library name or its numeric id."""
    key = value.strip().lower()
    if key in LIBRARY_NAMES:
        return LIBRARY_NAMES[key]
    try:
        return LibraryId(int(key))
    except ValueError:
        raise ValueError(
            f"Unknown library: {value} (use {', '.join(LIBRARY_NAMES)} or a numeric id)"
        ) from None


def parse_on_off(value: str) -> bool:
    key = value.strip().lower()
    if key in ("on", "1", "yes", "enable"):
        return True
    if key in ("off", "0", "no", "disable"):
        return False
    raise ValueError(f"Expected on or off, got: {value}")


def parse_notch_modes(value: str) -> tuple[NotchFilterMode, NotchFilterMode]:
    """Parse --anti-jam argument 'GPS,GLONASS' (each disable, normal or auto)."""
    parts = [part.strip().upper() for part in value.split(",")]
    if len(parts) != 2:
        raise ValueError("anti-jam modes must be GPS,GLONASS (2 values)")
    modes = []
    for part in parts:
        try:
            modes.append(NotchFilterMode[part])
        except KeyError:
            raise ValueError(f"Unknown notch filter mode: {part.lower()}") from None
    return modes[0], modes[1]


def main() -> int:
    """Main entry point for nmeatool CLI."""
    parser = argparse.ArgumentParser(
        description="NMEA receiver monitor and ST Teseo configuration tool",
        prog="nmeatool",
    )

    parser.add_argument(
        "-d", "--device", default="/dev/ttyUSB0", help="Serial device (default: /dev/ttyUSB0)"
    )
    parser.add_argument(
        "-s", "--speed", type=int, default=9600, help="Baud rate (default: 9600)"
    )
    parser.add_argument(
        "--packet-log", metavar="FILE", help="Append every sentence sent or received to FILE (JSON lines)"
    )
    parser.add_argument(
        "--verify-checksum",
        action="store_true",
        help="Drop received sentences whose *hh checksum does not match",
    )
    parser.add_argument("-v", "--debug", action="store_true", help="Show debug messages")
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress info messages (only show warnings and errors)",
    )

    # Query group
    query_group = parser.add_argument_group("Queries")
    query_group.add_argument(
        "--monitor",
        type=float,
        metavar="SECS",
        help="Print decoded sentences for SECS seconds",
    )
    query_group.add_argument(
        "--sw-version",
        nargs="?",
        const="all",
        metavar="LIB",
        help="Show version strings (gnss, os20, app, image, hw, config-id, product, config, all)",
    )
    query_group.add_argument(
        "--unique-code", action="store_true", help="Show the device unique code"
    )
    query_group.add_argument(
        "--standby-status", action="store_true", help="Show periodic standby state"
    )

    # Configuration group
    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--standby-enable", metavar="on|off", help="Enable or disable periodic standby"
    )
    config_group.add_argument(
        "--force-standby",
        type=int,
        metavar="SECS",
        help="Force standby for SECS seconds (max 99999)",
    )
    config_group.add_argument(
        "--odometer", metavar="on|off", help="Enable or disable the odometer"
    )
    config_group.add_argument(
        "--odometer-msg",
        action="store_true",
        help="Enable periodic odometer messages (with --odometer)",
    )
    config_group.add_argument(
        "--odometer-alarm",
        type=int,
        default=0,
        metavar="METERS",
        help="Distance between odometer messages (default: 0)",
    )
    config_group.add_argument(
        "--anti-jam",
        metavar="GPS,GLO",
        help="Notch filter modes for GPS and GLONASS (disable, normal, auto)",
    )

    args = parser.parse_args()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(LevelFormatter("%(message)s"))
    log = logging.getLogger("nmeatool")
    if args.debug:
        log.setLevel(logging.DEBUG)
    elif args.quiet:
        log.setLevel(logging.WARNING)
    else:
        log.setLevel(logging.INFO)
    # Replace the handler from an earlier call
    log.handlers.clear()
    log.addHandler(handler)

    # Validate arguments before opening connection
    try:
        lib_id = parse_library_id(args.sw_version) if args.sw_version else None
        standby_on = parse_on_off(args.standby_enable) if args.standby_enable else None
        odometer_on = parse_on_off(args.odometer) if args.odometer else None
        notch_modes = parse_notch_modes(args.anti_jam) if args.anti_jam else None
    except ValueError as e:
        log.error(str(e))
        return 1

    if args.odometer_msg and odometer_on is None:
        log.error("--odometer-msg requires --odometer")
        return 1

    has_query_op = lib_id is not None or args.unique_code or args.standby_status
    has_config_op = (
        standby_on is not None
        or args.force_standby is not None
        or odometer_on is not None
        or notch_modes is not None
    )
    if not (has_query_op or has_config_op or args.monitor):
        parser.print_help()
        return 0

    try:
        with NmeaConnection(
            args.device,
            baudrate=args.speed,
            packet_log=args.packet_log,
            log=log,
            verify_checksum=args.verify_checksum,
        ) as conn:
            if lib_id is not None:
                if lib_id == LibraryId.ALL_VERSIONS:
                    found, versions = probe_receiver(conn, log)
                    if not found:
                        log.error("No response from receiver. Not a Teseo device?")
                        return 1
                else:
                    versions = query_versions(conn, lib_id, log) or []
                    if not versions:
                        return 1
                for version in versions:
                    print(version.format())

            if args.unique_code:
                code = query_unique_code(conn, log)
                if code is None:
                    return 1
                print(f"Unique code: {code}")

            if args.standby_status:
                status = query_standby_status(conn, log)
                if status is None:
                    return 1
                print(f"Periodic standby: {status.name.lower()}")

            if notch_modes is not None:
                if not configure_anti_jamming(conn, notch_modes[0], notch_modes[1], log):
                    return 1

            if odometer_on is not None:
                if not configure_odometer(
                    conn, odometer_on, enable_msg=args.odometer_msg, alarm=args.odometer_alarm, log=log
                ):
                    return 1

            if standby_on is not None:
                if not set_standby_enable(conn, standby_on, log):
                    return 1

            if args.monitor:
                count = 0
                for msg in conn.iter_messages(args.monitor):
                    print(msg.format())
                    count += 1
                log.info(f"{count} sentences decoded, {conn.rejected} rejected")
                if count == 0 and conn.rejected == 0:
                    log.warning("no NMEA data received (wrong device or speed?)")

            # Last: the receiver stops answering once in standby
            if args.force_standby is not None:
                if not force_standby(conn, args.force_standby, log):
                    return 1

    except serial.SerialException as e:
        log.error(str(e))
        return 1
    except CommandError as e:
        log.error(f"cannot format command: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
