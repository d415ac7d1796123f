"""ST Teseo command sentences: formatting, clamping and checksums.

Every command renders as '$' + keyword + ',' parameters + '*' + two hex
checksum digits + CR LF. Numeric parameters outside their documented range
are clamped rather than rejected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from nmea import checksum, format_checksum
from pstm import PeriodicMode


class CommandError(Exception):
    """A command could not be rendered."""


class CapacityError(CommandError):
    """Rendered sentence is longer than the command's MAX_LEN."""


class FormatError(CommandError):
    """A parameter value has no valid text form."""


def append_checksum_and_crlf(sentence: str, max_len: int) -> str:
    """Terminate a '$...' sentence with '*hh' and CR LF, enforcing max_len."""
    framed = f"{sentence}*{format_checksum(checksum(sentence))}\r\n"
    if len(framed) > max_len:
        raise CapacityError(f"{sentence[1:].split(',')[0]}: {len(framed)} bytes exceeds {max_len}")
    return framed


def _clamp(value: int, high: int, low: int = 0) -> int:
    return max(low, min(int(value), high))


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _fixed8(value: float) -> str:
    if not math.isfinite(value):
        raise FormatError(f"cannot format {value!r}")
    return f"{value:.8f}"


class Command:
    """Base for outbound commands.

    Subclasses set CMD (wire keyword) and MAX_LEN (worst-case rendered
    length including '*hh\\r\\n') and return their parameters from params().
    """

    CMD: ClassVar[str]
    MAX_LEN: ClassVar[int]

    def params(self) -> list[str]:
        return []

    def to_string(self) -> str:
        return append_checksum_and_crlf("$" + ",".join([self.CMD, *self.params()]), self.MAX_LEN)

    def to_bytes(self) -> bytes:
        return self.to_string().encode("ascii")


# ============================================================================
# Enums
# ============================================================================


class LibraryId(Enum):
    """PSTMGETSWVER library selector."""

    GNSS_LIBRARY = 0
    OS20 = 1
    SDK_APP = 2
    BINARY_IMAGE = 6
    STA8088_HW = 7
    SW_CONFIG_ID = 11
    PRODUCT_ID = 12
    CONFIG_DATA = 254
    ALL_VERSIONS = 255


class NotchFilterMode(Enum):
    DISABLE = 0
    NORMAL = 1
    AUTO = 2


class GeofenceToleranceLevel(Enum):
    NONE = 0
    LEVEL1 = 1
    LEVEL2 = 2
    LEVEL3 = 3


class LowPowerAlgorithmFeature(Enum):
    PERIODIC_MODE_DISABLED = 0
    ACTIVE_PERIODIC_MODE = 1
    STANDBY_PERIODIC_MODE = 3


@dataclass
class ConstellationMask:
    """Constellations kept in low power adaptive mode."""

    gps: bool = False
    glonass: bool = False
    qzss: bool = False
    galileo: bool = False
    beidou: bool = False

    @property
    def value(self) -> int:
        mask = 0
        if self.gps:
            mask |= 0x01
        if self.glonass:
            mask |= 0x02
        if self.qzss:
            mask |= 0x04
        if self.galileo:
            mask |= 0x08
        if self.beidou:
            mask |= 0x80
        return mask

    def __str__(self) -> str:
        return str(self.value)


# ============================================================================
# Commands
# ============================================================================


@dataclass
class GetSoftwareVersion(Command):
    """Request version strings; answered by PSTMVER."""

    CMD: ClassVar[str] = "PSTMGETSWVER"
    MAX_LEN: ClassVar[int] = 24

    lib_id: LibraryId = LibraryId.ALL_VERSIONS

    def params(self) -> list[str]:
        return [str(self.lib_id.value)]


@dataclass
class GetUniqueCode(Command):
    """Request the device unique code; answered by PSTMGETUCODEOK."""

    CMD: ClassVar[str] = "PSTMGETUCODE"
    MAX_LEN: ClassVar[int] = 18


@dataclass
class ConfigureAntiJamming(Command):
    CMD: ClassVar[str] = "PSTMCFGAJM"
    MAX_LEN: ClassVar[int] = 20

    gps_mode: NotchFilterMode
    glonass_mode: NotchFilterMode

    def params(self) -> list[str]:
        return [str(self.gps_mode.value), str(self.glonass_mode.value)]


@dataclass
class ConfigureEnableGeofenceCircles(Command):
    CMD: ClassVar[str] = "PSTMCGGEOFENCE"
    MAX_LEN: ClassVar[int] = 24

    enable: bool
    tolerance: GeofenceToleranceLevel = GeofenceToleranceLevel.NONE

    def params(self) -> list[str]:
        return [_flag(self.enable), str(self.tolerance.value)]


@dataclass
class ConfigureGeofenceCircle(Command):
    """Configure one geofence circle (id 0-7); coordinates in degrees."""

    CMD: ClassVar[str] = "PSTMCFGGEOCIR"
    MAX_LEN: ClassVar[int] = 71

    circle_id: int
    enable: bool
    lat: float
    lon: float
    radius: float

    def params(self) -> list[str]:
        return [
            str(_clamp(self.circle_id, 7)),
            _flag(self.enable),
            _fixed8(self.lat),
            _fixed8(self.lon),
            _fixed8(self.radius),
        ]


@dataclass
class ConfigureLowPowerOnOff(Command):
    """Switch low power mode.

    Three forms are sent depending on the settings:
    - disabled: only the enable flag
    - periodic (periodic_mode not OFF): periodic settings, adaptive fields zeroed
    - adaptive/cyclic (periodic_mode OFF): adaptive settings, periodic fields zeroed
    """

    CMD: ClassVar[str] = "PSTMLOWPOWERONOFF"
    MAX_LEN: ClassVar[int] = 61

    low_power_enable: bool
    constellation_mask: ConstellationMask = field(default_factory=ConstellationMask)
    ehpe_threshold: int = 0
    max_tracked_satellites: int = 0
    switch_constellation_features: bool = False
    duty_cycle_enable: bool = False
    duty_cycle_fix_period: int = 0
    periodic_mode: PeriodicMode = PeriodicMode.OFF
    fix_period: int = 0
    fix_on_time: int = 0
    ephemeris_refresh: bool = False
    rtc_calibration: bool = False
    no_fix_cnt: int = 0
    no_fix_off: int = 0

    def params(self) -> list[str]:
        if not self.low_power_enable:
            return ["0"]
        if self.periodic_mode != PeriodicMode.OFF:
            return ["1", "0", "0", "0", "0", "0", "0"] + [
                str(self.periodic_mode.value),
                str(_clamp(self.fix_period, 99999)),
                str(_clamp(self.fix_on_time, 99)),
                _flag(self.ephemeris_refresh),
                _flag(self.rtc_calibration),
                str(_clamp(self.no_fix_cnt, 99)),
                str(_clamp(self.no_fix_off, 99)),
            ]
        return [
            "1",
            str(self.constellation_mask),
            str(_clamp(self.ehpe_threshold, 999)),
            str(_clamp(self.max_tracked_satellites, 99)),
            _flag(self.switch_constellation_features),
            _flag(self.duty_cycle_enable),
            str(_clamp(self.duty_cycle_fix_period, 9)),
        ] + ["0"] * 7


@dataclass
class ConfigureLowPowerAlgorithm(Command):
    """Configure the low power algorithm (PSTMCFGLPA).

    fix_period 0 is only valid with STANDBY_PERIODIC_MODE (fix on WAKEUP pin).
    """

    CMD: ClassVar[str] = "PSTMCFGLPA"
    MAX_LEN: ClassVar[int] = 69

    enable: bool
    feature: LowPowerAlgorithmFeature
    fix_period: int = 10
    fix_on_time: int = 1
    no_fix_cnt: int = 8
    no_fix_cnt2: int = 60
    no_fix_off: int = 180
    adaptive_feature: bool = False
    adaptive_duty_cycle: bool = False
    ehpe_threshold: int = 15
    num_of_sat: int = 9
    duty_off: int = 700
    const_type: int = 0

    def params(self) -> list[str]:
        return [
            _flag(self.enable),
            str(self.feature.value),
            str(_clamp(self.fix_period, 86400)),
            str(_clamp(self.fix_on_time, 0xFFFF)),
            str(_clamp(self.no_fix_cnt, 0xFFFF)),
            str(_clamp(self.no_fix_cnt2, 0xFFFF)),
            str(_clamp(self.no_fix_off, 0xFFFF)),
            _flag(self.adaptive_feature),
            _flag(self.adaptive_duty_cycle),
            str(_clamp(self.ehpe_threshold, 0xFF)),
            str(_clamp(self.num_of_sat, 32)),
            str(_clamp(self.duty_off, 740, low=100)),
            str(_clamp(self.const_type, 0xFF)),
        ]


@dataclass
class ConfigureOdometer(Command):
    CMD: ClassVar[str] = "PSTMCFGODO"
    MAX_LEN: ClassVar[int] = 26

    enable: bool
    enable_msg: bool = False
    alarm: int = 0  # distance between odometer messages

    def params(self) -> list[str]:
        return [_flag(self.enable), _flag(self.enable_msg), str(_clamp(self.alarm, 0xFFFF))]


@dataclass
class StandbyEnableCheckStatus(Command):
    """Query periodic standby state; answered by PSTMSTANDBYENABLE,<status>."""

    CMD: ClassVar[str] = "PSTMSTANDBYENABLE"
    MAX_LEN: ClassVar[int] = 23


@dataclass
class ConfigureStandbyEnable(Command):
    CMD: ClassVar[str] = "PSTMSTANDBYENABLE"
    MAX_LEN: ClassVar[int] = 25

    on_off: bool

    def params(self) -> list[str]:
        return [_flag(self.on_off)]


@dataclass
class ConfigureStandbyForce(Command):
    """Force standby for duration_seconds (at most 99999)."""

    CMD: ClassVar[str] = "PSTMFORCESTANDBY"
    MAX_LEN: ClassVar[int] = 28

    duration_seconds: int

    def params(self) -> list[str]:
        return [str(_clamp(self.duration_seconds, 99999))]
