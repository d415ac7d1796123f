"""ST Teseo receiver operations built on NmeaConnection."""

from __future__ import annotations

import logging
import time

from commands import (
    ConfigureAntiJamming,
    ConfigureOdometer,
    ConfigureStandbyEnable,
    ConfigureStandbyForce,
    GetSoftwareVersion,
    GetUniqueCode,
    LibraryId,
    NotchFilterMode,
    StandbyEnableCheckStatus,
)
from connection import INITIAL_TIMEOUT, SUBSEQUENT_TIMEOUT, NmeaConnection
from pstm import (
    HardwareVersion,
    PeriodicStandbyMode,
    SoftwareVersion,
    StandbyEnableStatus,
    UniqueCode,
)

VersionInfo = SoftwareVersion | HardwareVersion


# ============================================================================
# Query Functions
# ============================================================================


def query_versions(
    conn: NmeaConnection, lib_id: LibraryId = LibraryId.ALL_VERSIONS, log: logging.Logger | None = None
) -> list[VersionInfo] | None:
    """Query PSTMVER strings via PSTMGETSWVER.

    ALL_VERSIONS makes the receiver answer with several PSTMVER sentences, so
    replies are collected until SUBSEQUENT_TIMEOUT passes without another one.
    Returns None if the receiver never answered.
    """
    conn.send(GetSoftwareVersion(lib_id))

    versions: list[VersionInfo] = []
    deadline = time.monotonic() + INITIAL_TIMEOUT
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        msg = conn.receive(timeout=remaining)
        if msg is None:
            break
        if isinstance(msg, (SoftwareVersion, HardwareVersion)):
            if log:
                log.debug(f"PSTMVER {msg.format()}")
            versions.append(msg)
            # Periodic sentences in between do not extend the wait
            deadline = time.monotonic() + SUBSEQUENT_TIMEOUT

    if not versions:
        if log:
            log.warning(f"no response to version ({GetSoftwareVersion.CMD}) query")
        return None
    return versions


def probe_receiver(conn: NmeaConnection, log: logging.Logger) -> tuple[bool, list[VersionInfo]]:
    """Probe for a Teseo receiver with PSTMGETSWVER.

    Returns (is_teseo, versions). Waits for the receiver to start sending
    data, then retries the version query up to 3 times.
    """
    log.debug("waiting for receiver data...")
    if conn.receive(timeout=2.0) is None:
        log.warning("no NMEA data being received (wrong device or speed?); querying anyway")
    else:
        log.info("receiving NMEA data from receiver")

    for attempt in range(3):
        log.debug(f"sending {GetSoftwareVersion.CMD} (attempt {attempt + 1}/3)")
        versions = query_versions(conn, LibraryId.ALL_VERSIONS)
        if versions:
            log.info("Teseo receiver detected")
            return True, versions

    log.debug("all version query attempts failed")
    return False, []


def query_unique_code(conn: NmeaConnection, log: logging.Logger | None = None) -> str | None:
    result = conn.poll(GetUniqueCode(), UniqueCode)
    if result.success:
        return result.message.code  # type: ignore[union-attr]
    if log:
        if result.nak:
            log.warning(f"unique code ({GetUniqueCode.CMD}) not available")
        else:
            log.warning(f"no response to unique code ({GetUniqueCode.CMD}) query")
    return None


def query_standby_status(
    conn: NmeaConnection, log: logging.Logger | None = None
) -> PeriodicStandbyMode | None:
    result = conn.poll(StandbyEnableCheckStatus(), StandbyEnableStatus)
    if result.success:
        return result.message.status  # type: ignore[union-attr]
    if log:
        if result.nak:
            log.warning(f"periodic standby status ({StandbyEnableCheckStatus.CMD}) not supported")
        else:
            log.warning(f"no response to periodic standby ({StandbyEnableCheckStatus.CMD}) query")
    return None


# ============================================================================
# Configuration Functions
# ============================================================================


def set_standby_enable(conn: NmeaConnection, on: bool, log: logging.Logger | None = None) -> bool:
    ok = conn.send_and_wait_ack(ConfigureStandbyEnable(on_off=on))
    if log:
        if ok:
            log.info(f"periodic standby {'enabled' if on else 'disabled'}")
        else:
            log.error(f"failed to {'enable' if on else 'disable'} periodic standby")
    return ok


def force_standby(conn: NmeaConnection, seconds: int, log: logging.Logger | None = None) -> bool:
    """Put the receiver into standby for the given time (clamped to 99999 s)."""
    cmd = ConfigureStandbyForce(duration_seconds=seconds)
    ok = conn.send_and_wait_ack(cmd)
    if log:
        if ok:
            log.info(f"standby forced for {cmd.params()[0]} s")
        else:
            log.error("failed to force standby")
    return ok


def configure_odometer(
    conn: NmeaConnection,
    enable: bool,
    enable_msg: bool = False,
    alarm: int = 0,
    log: logging.Logger | None = None,
) -> bool:
    ok = conn.send_and_wait_ack(ConfigureOdometer(enable=enable, enable_msg=enable_msg, alarm=alarm))
    if log:
        if ok:
            log.info(f"odometer {'enabled' if enable else 'disabled'}")
        else:
            log.error(f"odometer configuration ({ConfigureOdometer.CMD}) failed")
    return ok


def configure_anti_jamming(
    conn: NmeaConnection,
    gps_mode: NotchFilterMode,
    glonass_mode: NotchFilterMode,
    log: logging.Logger | None = None,
) -> bool:
    ok = conn.send_and_wait_ack(ConfigureAntiJamming(gps_mode=gps_mode, glonass_mode=glonass_mode))
    if log:
        if ok:
            log.info(
                f"notch filter: GPS {gps_mode.name.lower()}, GLONASS {glonass_mode.name.lower()}"
            )
        else:
            log.error(f"anti-jamming configuration ({ConfigureAntiJamming.CMD}) failed")
    return ok
