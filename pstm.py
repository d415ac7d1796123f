"""ST Teseo proprietary ($PSTM...) sentences.

Proprietary sentences share the NMEA framing but carry no talker id. The
record type is chosen by matching the sentence body against an ordered table
of literal prefixes; the first match wins, so more specific prefixes must come
before the shorter prefixes they extend.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from nmea import MessageType, ParsedSentence, decimal, parse_hex_text, u8, u16, u32

# Satellite correction groups carried by one PSTMDIFF sentence
MAX_SATELLITE_CORRECTIONS = 12


# ============================================================================
# Enums
# ============================================================================


class VelocityEstimatorModel(Enum):
    SINGLE_MODEL = 0
    MULTIPLE_MODEL = 1


class VelocityEstimatorFilter(Enum):
    SLOW = 0
    FAST = 1


class Library(Enum):
    """Library names reported by PSTMVER."""

    GNSSLIB = "GNSSLIB"
    OS20LIB = "OS20LIB"
    GPSAPP = "GPSAPP"
    BINIMG = "BINIMG"
    SWCG = "SWCG"
    PID = "PID"


class CompilerType(Enum):
    ARM = "ARM"
    GNU = "GNU"


class HardwareType(Enum):
    STA8088 = "STA8088"
    STA8089 = "STA8089"
    STA8090 = "STA8090"


class Mask(Enum):
    """Silicon mask revision."""

    AA = "AA"
    AB = "AB"
    BA = "BA"
    BB = "BB"
    BC = "BC"
    BD = "BD"


# HW signature string -> mask revision (STA8088 first, then STA8089/STA8090)
HW_SIGNATURES: dict[str, Mask] = {
    "0x2229D041": Mask.BB,
    "0x3229D041": Mask.BC,
    "0x122BC043": Mask.AA,
    "0x222BC043": Mask.AB,
    "0x322BC043": Mask.BA,
    "0x422BC043": Mask.BB,
    "0x522BC043": Mask.BC,
    "0x622BC043": Mask.BD,
}


class PeriodicMode(Enum):
    """Low power periodic mode (also used by PSTMLOWPOWERONOFF)."""

    OFF = 0
    ACTIVE = 1
    STANDBY = 3


class PeriodicStandbyMode(Enum):
    ACTIVE = 0
    PERIODIC = 1


# ============================================================================
# Proprietary Dataclasses
# ============================================================================


@dataclass(frozen=True)
class SatelliteCorrection:
    satellite_id: int
    correction_available: int


@dataclass(frozen=True)
class DifferentialCorrectionData:
    """PSTMDIFF: differential correction availability per satellite."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    list_size: int
    corrected_satellites: int
    corrections: tuple[SatelliteCorrection, ...] = ()

    def format(self) -> str:
        sats = ",".join(f"{c.satellite_id}:{c.correction_available}" for c in self.corrections)
        return f"PSTMDIFF list {self.list_size}; corrected {self.corrected_satellites}; {sats or 'none'}"


@dataclass(frozen=True)
class KalmanFilterConfiguration:
    """kf_config_status bit field of PSTMTG."""

    walking_mode: bool
    stop_detection: bool
    frequency_ramp_on: bool
    velocity_estimator_model: VelocityEstimatorModel
    velocity_estimator_filter: VelocityEstimatorFilter
    fde_status: bool

    @classmethod
    def from_bits(cls, bits: int) -> KalmanFilterConfiguration:
        return cls(
            walking_mode=bool(bits & 0x01),
            stop_detection=bool(bits & 0x02),
            frequency_ramp_on=bool(bits & 0x04),
            velocity_estimator_model=(
                VelocityEstimatorModel.MULTIPLE_MODEL if bits & 0x08 else VelocityEstimatorModel.SINGLE_MODEL
            ),
            # Receivers report bit 4 set when running the fast filter
            velocity_estimator_filter=(
                VelocityEstimatorFilter.FAST if bits & 0x10 else VelocityEstimatorFilter.SLOW
            ),
            fde_status=bool(bits & 0x20),
        )


@dataclass(frozen=True)
class TimeAndSatelliteInformation:
    """PSTMTG: time and satellites information."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    week: int
    tow: int
    total_satellites: int
    cpu_time: int
    time_valid: int
    nco: int
    kf_config_status: KalmanFilterConfiguration
    constellation_mask: int
    time_best_sat_type: int
    time_master_sat_type: int
    time_aux_sat_type: int
    time_master_week_n: int
    time_master_tow: float
    time_master_validity: int
    time_aux_week_n: int
    time_aux_tow: float
    time_aux_validity: int

    @property
    def time_valid_str(self) -> str:
        states = {
            0: "No time",
            1: "Time read from flash",
            2: "Time set by user",
            3: "Time set user RTC",
            4: "RTC time",
            5: "RTC time, accurate",
            6: "Time approximate",
            8: "Time accurate",
            9: "Position time",
            10: "Ephemeris time",
        }
        return states.get(self.time_valid, f"Unknown ({self.time_valid})")

    def format(self) -> str:
        return (
            f"PSTMTG week {self.week} tow {self.tow}; sats {self.total_satellites}; "
            f"{self.time_valid_str.lower()}"
        )


@dataclass(frozen=True)
class UniqueCode:
    """PSTMGETUCODEOK: device unique code."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    code: str

    def format(self) -> str:
        return f"Unique code: {self.code}"


@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int
    build: int

    @classmethod
    def from_text(cls, text: str) -> Version:
        parts = text.split(".")
        if len(parts) != 4:
            raise ValueError(f"version must be X.X.X.X: {text!r}")
        return cls(*(u8(part) for part in parts))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}.{self.build}"


@dataclass(frozen=True)
class SoftwareVersion:
    """PSTMVER,<Lib>_<Ver>_<Type>: library version."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    library: Library
    version: Version
    compiler_type: CompilerType

    def format(self) -> str:
        return f"{self.library.value} {self.version} ({self.compiler_type.value})"


@dataclass(frozen=True)
class HardwareVersion:
    """PSTMVER,STA80XX_<signature>: silicon version."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    hw_type: HardwareType
    mask: Mask

    def format(self) -> str:
        return f"{self.hw_type.value} mask {self.mask.value}"


@dataclass(frozen=True)
class LowPowerOnOff:
    """PSTMLOWPOWERON: low power settings in effect."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    ehpe_threshold: int
    max_tracked_sats: int
    switch_constellation_features: int
    duty_cycle_enable: bool
    duty_cycle_ms_signal_off: int
    periodic_mode: PeriodicMode
    fix_period: int
    fix_on_time: int
    ephemeris_refresh: bool
    rtc_calibration: bool
    no_fix_cnt: int
    no_fix_off: int

    def format(self) -> str:
        lines = [
            f"Adaptive: EHPE {self.ehpe_threshold} m; max sats {self.max_tracked_sats}",
            f"Duty cycle: {'on' if self.duty_cycle_enable else 'off'}",
            f"Periodic mode: {self.periodic_mode.name.lower()}",
        ]
        if self.periodic_mode != PeriodicMode.OFF:
            lines.append(f"Fix period: {self.fix_period} s; fixes per period {self.fix_on_time}")
        return "\n".join(lines)


@dataclass(frozen=True)
class StandbyEnableStatus:
    """PSTMSTANDBYENABLE,<status>: periodic standby state."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    status: PeriodicStandbyMode

    def format(self) -> str:
        return f"Periodic standby: {self.status.name.lower()}"


@dataclass(frozen=True)
class CommandAck:
    """<KEYWORD>OK / <KEYWORD>ERROR acknowledgement of a command."""

    message_type: ClassVar[MessageType] = MessageType.PSTM

    command: str
    ok: bool

    def format(self) -> str:
        return f"{self.command}: {'OK' if self.ok else 'ERROR'}"


PstmMessage = (
    DifferentialCorrectionData
    | TimeAndSatelliteInformation
    | UniqueCode
    | SoftwareVersion
    | HardwareVersion
    | LowPowerOnOff
    | StandbyEnableStatus
    | CommandAck
)


# ============================================================================
# Sentence Parsers
# ============================================================================


def flag(text: str) -> bool:
    """Parse a 0/1 enable field."""
    if text == "0":
        return False
    if text == "1":
        return True
    raise ValueError(f"not a 0/1 flag: {text!r}")


def parse_pstmdiff(s: ParsedSentence) -> DifferentialCorrectionData | None:
    """Parse PSTMDIFF.

    Each (satellite id, correction available) pair is followed by a comma, so
    a trailing pair of absent tokens ends the list. A half-present or
    malformed pair rejects the sentence.
    """
    list_size = s.parse(1, u8)
    corrected = s.parse(2, u8)
    if list_size is None or corrected is None:
        return None

    corrections: list[SatelliteCorrection] = []
    index = 3
    while index < s.field_count and len(corrections) < MAX_SATELLITE_CORRECTIONS:
        if s.get_str(index) is None and s.get_str(index + 1) is None:
            break
        satellite_id = s.parse(index, u16)
        available = s.parse(index + 1, u32)
        if satellite_id is None or available is None:
            return None
        corrections.append(SatelliteCorrection(satellite_id, available))
        index += 2
    return DifferentialCorrectionData(list_size, corrected, tuple(corrections))


def parse_pstmtg(s: ParsedSentence) -> TimeAndSatelliteInformation | None:
    try:
        return TimeAndSatelliteInformation(
            week=s.require(1, u16),
            tow=s.require(2, u32),
            total_satellites=s.require(3, u8),
            cpu_time=s.require(4, u32),
            time_valid=s.require(5, u8),
            nco=s.require(6, u32),
            kf_config_status=KalmanFilterConfiguration.from_bits(s.require(7, parse_hex_text)),
            constellation_mask=s.require(8, u8),
            time_best_sat_type=s.require(9, u8),
            time_master_sat_type=s.require(10, u8),
            time_aux_sat_type=s.require(11, u8),
            time_master_week_n=s.require(12, u16),
            time_master_tow=s.require(13, decimal),
            time_master_validity=s.require(14, u8),
            time_aux_week_n=s.require(15, u16),
            time_aux_tow=s.require(16, decimal),
            time_aux_validity=s.require(17, u8),
        )
    except ValueError:
        return None


def parse_pstmgetucodeok(s: ParsedSentence) -> UniqueCode | None:
    # Field storage already truncates the code to 32 characters
    code = s.get_str(1)
    if code is None:
        return None
    return UniqueCode(code)


def parse_sw_version(s: ParsedSentence) -> SoftwareVersion | None:
    text = s.get_str(1)
    if text is None:
        return None
    parts = text.split("_")
    if len(parts) != 3:
        return None
    try:
        return SoftwareVersion(
            library=Library(parts[0]),
            version=Version.from_text(parts[1]),
            compiler_type=CompilerType(parts[2]),
        )
    except ValueError:
        return None


def parse_hw_version(s: ParsedSentence) -> HardwareVersion | None:
    text = s.get_str(1)
    if text is None:
        return None
    parts = text.split("_")
    if len(parts) != 2 or parts[1] not in HW_SIGNATURES:
        return None
    try:
        hw_type = HardwareType(parts[0])
    except ValueError:
        return None
    return HardwareVersion(hw_type=hw_type, mask=HW_SIGNATURES[parts[1]])


def _periodic_mode(text: str) -> PeriodicMode:
    return PeriodicMode(u8(text))


def parse_pstmlowpoweron(s: ParsedSentence) -> LowPowerOnOff | None:
    try:
        return LowPowerOnOff(
            ehpe_threshold=s.require(1, u16),
            max_tracked_sats=s.require(2, u8),
            switch_constellation_features=s.require(3, u8),
            duty_cycle_enable=s.require(4, flag),
            duty_cycle_ms_signal_off=s.require(5, u16),
            periodic_mode=s.require(6, _periodic_mode),
            fix_period=s.require(7, u32),
            fix_on_time=s.require(8, u8),
            ephemeris_refresh=s.require(9, flag),
            rtc_calibration=s.require(10, flag),
            no_fix_cnt=s.require(11, u8),
            no_fix_off=s.require(12, u8),
        )
    except ValueError:
        return None


def parse_pstmstandbyenable(s: ParsedSentence) -> StandbyEnableStatus | None:
    status = s.parse(1, lambda text: PeriodicStandbyMode(u8(text)))
    if status is None:
        return None
    return StandbyEnableStatus(status)


PstmParser = Callable[[ParsedSentence], PstmMessage | None]


def _ack(command: str, ok: bool) -> PstmParser:
    def parse(s: ParsedSentence) -> CommandAck:
        return CommandAck(command, ok)

    return parse


def _acks(*commands: str) -> list[tuple[bytes, PstmParser]]:
    entries: list[tuple[bytes, PstmParser]] = []
    for command in commands:
        entries.append((f"{command}OK".encode("ascii"), _ack(command, True)))
        entries.append((f"{command}ERROR".encode("ascii"), _ack(command, False)))
    return entries


# Ordered: first matching prefix wins
PSTM_PARSERS: list[tuple[bytes, PstmParser]] = [
    (b"PSTMDIFF,", parse_pstmdiff),
    (b"PSTMTG,", parse_pstmtg),
    (b"PSTMGETUCODEOK,", parse_pstmgetucodeok),
    (b"PSTMGETUCODEERROR", _ack("PSTMGETUCODE", False)),
    (b"PSTMVER,STA80", parse_hw_version),
    (b"PSTMVER,", parse_sw_version),
    *_acks("PSTMLOWPOWERONOFF"),
    (b"PSTMLOWPOWERON,", parse_pstmlowpoweron),
    *_acks("PSTMSTANDBYENABLE"),
    (b"PSTMSTANDBYENABLE,", parse_pstmstandbyenable),
    *_acks(
        "PSTMCFGAJM",
        "PSTMCGGEOFENCE",
        "PSTMCFGGEOCIR",
        "PSTMCFGLPA",
        "PSTMCFGODO",
        "PSTMFORCESTANDBY",
    ),
]


def unreachable_prefixes(table: list[tuple[bytes, PstmParser]]) -> list[bytes]:
    """Return prefixes that can never match because an earlier entry shadows them."""
    shadowed = []
    for i, (prefix, _) in enumerate(table):
        if any(prefix.startswith(earlier) for earlier, _parse in table[:i]):
            shadowed.append(prefix)
    return shadowed


def decode_pstm(
    s: ParsedSentence, table: list[tuple[bytes, PstmParser]] | None = None
) -> PstmMessage | None:
    """Decode a proprietary sentence via the first matching body prefix."""
    for prefix, parse in PSTM_PARSERS if table is None else table:
        if s.body.startswith(prefix):
            return parse(s)
    return None
