"""NMEA 0183 protocol implementation: checksum, field typing, and standard sentences."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, TypeVar

T = TypeVar("T")

# Framing bytes
START = 0x24  # '$'
FIELD_SEP = 0x2C  # ','
CHECKSUM_SEP = 0x2A  # '*'
CR = 0x0D
LF = 0x0A

# Shortest sentence the framer will look at: '$' + 2-char talker + 3-char code + 1
MIN_SENTENCE_LEN = 7

# Tokens kept per sentence, header token included
MAX_FIELDS = 32

# Bytes kept per token
FIELD_CAPACITY = 32

PROPRIETARY_PREFIX = "PSTM"


# ============================================================================
# Checksum
# ============================================================================


def checksum(sentence: str | bytes) -> int:
    """Calculate NMEA checksum (XOR of all bytes between '$' and '*').

    A leading '$' is skipped and everything from the first '*' on is ignored,
    so both bare bodies and complete sentences give the same result.
    """
    if isinstance(sentence, str):
        sentence = sentence.encode("utf-8")
    if sentence.startswith(b"$"):
        sentence = sentence[1:]
    star = sentence.find(b"*")
    if star >= 0:
        sentence = sentence[:star]

    ck = 0
    for b in sentence:
        ck ^= b
    return ck


def format_checksum(value: int) -> str:
    """Render a checksum as two uppercase hex digits."""
    return f"{value & 0xFF:02X}"


def verify_checksum(sentence: str | bytes) -> bool | None:
    """Check a sentence's '*hh' suffix against its body.

    Returns None if the sentence carries no checksum, False if the suffix
    is malformed or does not match.
    """
    if isinstance(sentence, str):
        sentence = sentence.encode("utf-8")
    star = sentence.find(b"*")
    if star < 0:
        return None
    digits = sentence[star + 1 : star + 3]
    if len(digits) != 2 or not all(d in b"0123456789abcdefABCDEF" for d in digits):
        return False
    return int(digits, 16) == checksum(sentence)


# ============================================================================
# Identifiers
# ============================================================================


class TalkerId(Enum):
    """Two-letter talker identifiers (constellation of the source)."""

    GP = "GP"  # GPS
    GL = "GL"  # GLONASS
    GA = "GA"  # Galileo
    GB = "GB"  # BeiDou
    GN = "GN"  # Combined GNSS
    BD = "BD"  # BeiDou (legacy)
    QZ = "QZ"  # QZSS
    UNKNOWN = "??"

    @classmethod
    def lookup(cls, code: str) -> TalkerId:
        try:
            talker = cls(code)
        except ValueError:
            return cls.UNKNOWN
        return talker


class MessageType(Enum):
    """Sentence formatter codes understood by the decoder."""

    GGA = "GGA"
    RMC = "RMC"
    GSA = "GSA"
    GSV = "GSV"
    GLL = "GLL"
    VTG = "VTG"
    GNS = "GNS"
    PSTM = "PSTM"  # ST Teseo proprietary
    UNKNOWN = "???"

    @classmethod
    def lookup(cls, code: str) -> MessageType:
        try:
            msg_type = cls(code)
        except ValueError:
            return cls.UNKNOWN
        return msg_type


def identify(header: str | None) -> tuple[TalkerId, MessageType]:
    """Identify talker and message type from the header token (e.g. 'GPGGA')."""
    if header is None:
        return TalkerId.UNKNOWN, MessageType.UNKNOWN
    if header.startswith(PROPRIETARY_PREFIX):
        # Proprietary headers carry no talker; the body prefix selects the record
        return TalkerId.UNKNOWN, MessageType.PSTM
    if len(header) != 5:
        return TalkerId.UNKNOWN, MessageType.UNKNOWN
    return TalkerId.lookup(header[:2]), MessageType.lookup(header[2:])


class ParseError(Enum):
    """Why a framed sentence produced no message."""

    INVALID_CHECKSUM = "invalid checksum"
    INVALID_MESSAGE = "invalid message"


# ============================================================================
# Fields
# ============================================================================


@dataclass(frozen=True)
class Field:
    """Bounded copy of one comma-separated token."""

    data: bytes

    @classmethod
    def from_bytes(cls, raw: bytes) -> Field:
        """Copy a token, truncating to FIELD_CAPACITY bytes."""
        return cls(bytes(raw[:FIELD_CAPACITY]))

    def as_str(self) -> str | None:
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def as_bytes(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)


def _check_digits(text: str) -> str:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        raise ValueError(f"not an unsigned integer: {text!r}")
    return digits


def _unsigned(bits: int) -> Callable[[str], int]:
    limit = (1 << bits) - 1

    def convert(text: str) -> int:
        value = int(_check_digits(text))
        if value > limit:
            raise ValueError(f"{value} exceeds {bits}-bit range")
        return value

    convert.__name__ = f"u{bits}"
    return convert


# Field converters, sized to the ranges the protocol documents
u8 = _unsigned(8)
u16 = _unsigned(16)
u32 = _unsigned(32)


def decimal(text: str) -> float:
    """Parse a decimal number field (e.g. '4807.038', '-0.5')."""
    if not text or not text.isascii() or text.strip() != text or "_" in text:
        raise ValueError(f"not a decimal number: {text!r}")
    return float(text)


def parse_hex_text(text: str, bits: int = 8) -> int:
    """Accumulate hex digits big-endian; an empty string is 0."""
    limit = (1 << bits) - 1
    value = 0
    for ch in text:
        nibble = "0123456789abcdef".find(ch.lower())
        if nibble < 0:
            raise ValueError(f"invalid hex digit {ch!r}")
        value = (value << 4) | nibble
        if value > limit:
            raise ValueError(f"0x{text} exceeds {bits}-bit range")
    return value


@dataclass(frozen=True)
class ParsedSentence:
    """A framed sentence split into fields; index 0 is the header token.

    Fields that were empty on the wire are stored as None.
    """

    talker_id: TalkerId
    message_type: MessageType
    fields: tuple[Field | None, ...]
    body: bytes = b""

    @property
    def field_count(self) -> int:
        return len(self.fields)

    @property
    def header(self) -> str | None:
        return self.get_str(0)

    def get_str(self, index: int) -> str | None:
        """Return field text, or None if out of range, empty, or not UTF-8."""
        if index < 0 or index >= len(self.fields):
            return None
        field = self.fields[index]
        if field is None or len(field) == 0:
            return None
        return field.as_str()

    def parse(self, index: int, convert: Callable[[str], T]) -> T | None:
        """Convert a field with any str -> T callable; None on absence or ValueError."""
        text = self.get_str(index)
        if text is None:
            return None
        try:
            return convert(text)
        except ValueError:
            return None

    def require(self, index: int, convert: Callable[[str], T]) -> T:
        """Like parse(), but raise ValueError if the field is absent or malformed."""
        text = self.get_str(index)
        if text is None:
            raise ValueError(f"field {index} missing")
        return convert(text)

    def parse_char(self, index: int) -> str | None:
        text = self.get_str(index)
        if text is None:
            return None
        return text[0]

    def parse_hex(self, index: int, bits: int = 8) -> int | None:
        text = self.get_str(index)
        if text is None:
            return None
        try:
            return parse_hex_text(text, bits)
        except ValueError:
            return None


def split_sentence(sentence: bytes) -> ParsedSentence | None:
    """Tokenize one framed sentence ('$' up to, not including, the terminator).

    Returns None if the sentence is too short to carry a header.
    """
    if len(sentence) < MIN_SENTENCE_LEN or sentence[0] != START:
        return None
    sentence_end = sentence.find(b"*")
    if sentence_end < 0:
        sentence_end = len(sentence)
    if sentence_end < MIN_SENTENCE_LEN:
        return None

    body = sentence[1:sentence_end]
    fields = tuple(
        Field.from_bytes(token) if token else None
        for token in body.split(b",")[:MAX_FIELDS]
    )
    header = fields[0].as_str() if fields[0] is not None else None
    talker_id, message_type = identify(header)
    return ParsedSentence(talker_id, message_type, fields, body)


# ============================================================================
# Sentence Dataclasses
# ============================================================================


def _opt(value: object) -> str:
    return "-" if value is None else str(value)


@dataclass(frozen=True)
class GgaData:
    """GGA: global positioning system fix data."""

    message_type: ClassVar[MessageType] = MessageType.GGA

    talker_id: TalkerId
    time: str
    latitude: float
    lat_direction: str
    longitude: float
    lon_direction: str
    fix_quality: int
    num_satellites: int | None = None
    hdop: float | None = None
    altitude: float | None = None
    altitude_units: str | None = None
    geoid_separation: float | None = None
    geoid_units: str | None = None
    age_of_diff: float | None = None
    diff_station_id: str | None = None

    @property
    def has_fix(self) -> bool:
        return self.fix_quality != 0

    def format(self) -> str:
        return (
            f"{self.talker_id.value}GGA {self.time} "
            f"{self.latitude} {self.lat_direction} {self.longitude} {self.lon_direction} "
            f"quality {self.fix_quality}; sats {_opt(self.num_satellites)}; "
            f"hdop {_opt(self.hdop)}; alt {_opt(self.altitude)} {self.altitude_units or ''}".rstrip()
        )


@dataclass(frozen=True)
class RmcData:
    """RMC: recommended minimum specific GNSS data."""

    message_type: ClassVar[MessageType] = MessageType.RMC

    talker_id: TalkerId
    time: str
    status: str
    latitude: float
    lat_direction: str
    longitude: float
    lon_direction: str
    speed_knots: float
    track_angle: float
    date: str
    magnetic_variation: float | None = None
    mag_var_direction: str | None = None

    @property
    def valid(self) -> bool:
        return self.status == "A"

    def format(self) -> str:
        status = "valid" if self.valid else "void"
        return (
            f"{self.talker_id.value}RMC {self.date} {self.time} {status} "
            f"{self.latitude} {self.lat_direction} {self.longitude} {self.lon_direction} "
            f"{self.speed_knots} kn {self.track_angle} deg"
        )


@dataclass(frozen=True)
class GsaData:
    """GSA: DOP and active satellites."""

    message_type: ClassVar[MessageType] = MessageType.GSA

    talker_id: TalkerId
    mode: str
    fix_type: int
    satellite_ids: tuple[int | None, ...] = (None,) * 12
    pdop: float | None = None
    hdop: float | None = None
    vdop: float | None = None

    @property
    def active_satellites(self) -> list[int]:
        return [sat for sat in self.satellite_ids if sat is not None]

    @property
    def fix_type_str(self) -> str:
        types = {1: "No fix", 2: "2D", 3: "3D"}
        return types.get(self.fix_type, f"Unknown ({self.fix_type})")

    def format(self) -> str:
        sats = ",".join(str(sat) for sat in self.active_satellites) or "none"
        return (
            f"{self.talker_id.value}GSA {self.fix_type_str}; sats {sats}; "
            f"pdop {_opt(self.pdop)} hdop {_opt(self.hdop)} vdop {_opt(self.vdop)}"
        )


@dataclass(frozen=True)
class SatelliteInfo:
    """One satellite block of a GSV sentence."""

    prn: int | None = None
    elevation: int | None = None
    azimuth: int | None = None
    snr: int | None = None


@dataclass(frozen=True)
class GsvData:
    """GSV: satellites in view (one message of a sequence)."""

    message_type: ClassVar[MessageType] = MessageType.GSV

    talker_id: TalkerId
    num_messages: int
    message_num: int
    satellites_in_view: int
    satellite_info: tuple[SatelliteInfo | None, ...] = (None,) * 4

    @property
    def satellites(self) -> list[SatelliteInfo]:
        return [info for info in self.satellite_info if info is not None]

    def format(self) -> str:
        blocks = " ".join(
            f"{_opt(s.prn)}:{_opt(s.elevation)}/{_opt(s.azimuth)}/{_opt(s.snr)}"
            for s in self.satellites
        )
        return (
            f"{self.talker_id.value}GSV {self.message_num}/{self.num_messages} "
            f"in view {self.satellites_in_view} {blocks}".rstrip()
        )


@dataclass(frozen=True)
class GllData:
    """GLL: geographic position, latitude/longitude."""

    message_type: ClassVar[MessageType] = MessageType.GLL

    talker_id: TalkerId
    latitude: float
    lat_direction: str
    longitude: float
    lon_direction: str
    time: str
    status: str

    def format(self) -> str:
        return (
            f"{self.talker_id.value}GLL {self.time} "
            f"{self.latitude} {self.lat_direction} {self.longitude} {self.lon_direction} "
            f"status {self.status}"
        )


@dataclass(frozen=True)
class VtgData:
    """VTG: track made good and ground speed."""

    message_type: ClassVar[MessageType] = MessageType.VTG

    talker_id: TalkerId
    track_true: float | None = None
    true_indicator: str | None = None
    track_magnetic: float | None = None
    magnetic_indicator: str | None = None
    speed_knots: float | None = None
    knots_indicator: str | None = None
    speed_kph: float | None = None
    kph_indicator: str | None = None

    def format(self) -> str:
        return (
            f"{self.talker_id.value}VTG track {_opt(self.track_true)} T "
            f"{_opt(self.track_magnetic)} M; speed {_opt(self.speed_knots)} kn "
            f"{_opt(self.speed_kph)} km/h"
        )


@dataclass(frozen=True)
class GnsData:
    """GNS: GNSS fix data (combined constellations)."""

    message_type: ClassVar[MessageType] = MessageType.GNS

    talker_id: TalkerId
    time: str
    latitude: float
    lat_direction: str
    longitude: float
    lon_direction: str
    mode_indicator: str
    num_satellites: int
    hdop: float | None = None
    altitude: float | None = None
    geoid_separation: float | None = None
    age_of_diff: float | None = None
    diff_station_id: str | None = None
    nav_status: str | None = None

    def format(self) -> str:
        return (
            f"{self.talker_id.value}GNS {self.time} "
            f"{self.latitude} {self.lat_direction} {self.longitude} {self.lon_direction} "
            f"mode {self.mode_indicator}; sats {self.num_satellites}; "
            f"hdop {_opt(self.hdop)}; alt {_opt(self.altitude)}"
        )


StandardMessage = GgaData | RmcData | GsaData | GsvData | GllData | VtgData | GnsData


# ============================================================================
# Sentence Parsers
# ============================================================================


def parse_gga(s: ParsedSentence) -> GgaData | None:
    """Parse GGA fields; None if a mandatory field is missing or malformed."""
    time = s.get_str(1)
    latitude = s.parse(2, decimal)
    lat_direction = s.parse_char(3)
    longitude = s.parse(4, decimal)
    lon_direction = s.parse_char(5)
    fix_quality = s.parse(6, u8)
    if (
        time is None
        or latitude is None
        or lat_direction is None
        or longitude is None
        or lon_direction is None
        or fix_quality is None
    ):
        return None
    return GgaData(
        talker_id=s.talker_id,
        time=time,
        latitude=latitude,
        lat_direction=lat_direction,
        longitude=longitude,
        lon_direction=lon_direction,
        fix_quality=fix_quality,
        num_satellites=s.parse(7, u8),
        hdop=s.parse(8, decimal),
        altitude=s.parse(9, decimal),
        altitude_units=s.parse_char(10),
        geoid_separation=s.parse(11, decimal),
        geoid_units=s.parse_char(12),
        age_of_diff=s.parse(13, decimal),
        diff_station_id=s.get_str(14),
    )


def parse_rmc(s: ParsedSentence) -> RmcData | None:
    """Parse RMC fields. Status 'V' (void) still yields a record."""
    time = s.get_str(1)
    status = s.parse_char(2)
    latitude = s.parse(3, decimal)
    lat_direction = s.parse_char(4)
    longitude = s.parse(5, decimal)
    lon_direction = s.parse_char(6)
    speed_knots = s.parse(7, decimal)
    track_angle = s.parse(8, decimal)
    date = s.get_str(9)
    if (
        time is None
        or status is None
        or latitude is None
        or lat_direction is None
        or longitude is None
        or lon_direction is None
        or speed_knots is None
        or track_angle is None
        or date is None
    ):
        return None
    return RmcData(
        talker_id=s.talker_id,
        time=time,
        status=status,
        latitude=latitude,
        lat_direction=lat_direction,
        longitude=longitude,
        lon_direction=lon_direction,
        speed_knots=speed_knots,
        track_angle=track_angle,
        date=date,
        magnetic_variation=s.parse(10, decimal),
        mag_var_direction=s.parse_char(11),
    )


def parse_gsa(s: ParsedSentence) -> GsaData | None:
    mode = s.parse_char(1)
    fix_type = s.parse(2, u8)
    if mode is None or fix_type is None:
        return None
    return GsaData(
        talker_id=s.talker_id,
        mode=mode,
        fix_type=fix_type,
        satellite_ids=tuple(s.parse(i, u8) for i in range(3, 15)),
        pdop=s.parse(15, decimal),
        hdop=s.parse(16, decimal),
        vdop=s.parse(17, decimal),
    )


def parse_gsv(s: ParsedSentence) -> GsvData | None:
    """Parse GSV fields.

    Up to four satellite blocks start at fields 4, 8, 12 and 16. A block is
    present when its satellite id token is present; its other values are
    independently optional.
    """
    num_messages = s.parse(1, u8)
    message_num = s.parse(2, u8)
    satellites_in_view = s.parse(3, u8)
    if num_messages is None or message_num is None or satellites_in_view is None:
        return None

    blocks: list[SatelliteInfo | None] = []
    for base in (4, 8, 12, 16):
        if s.get_str(base) is None:
            blocks.append(None)
            continue
        blocks.append(
            SatelliteInfo(
                prn=s.parse(base, u8),
                elevation=s.parse(base + 1, u16),
                azimuth=s.parse(base + 2, u16),
                snr=s.parse(base + 3, u8),
            )
        )
    return GsvData(
        talker_id=s.talker_id,
        num_messages=num_messages,
        message_num=message_num,
        satellites_in_view=satellites_in_view,
        satellite_info=tuple(blocks),
    )


def parse_gll(s: ParsedSentence) -> GllData | None:
    latitude = s.parse(1, decimal)
    lat_direction = s.parse_char(2)
    longitude = s.parse(3, decimal)
    lon_direction = s.parse_char(4)
    time = s.get_str(5)
    status = s.parse_char(6)
    if (
        latitude is None
        or lat_direction is None
        or longitude is None
        or lon_direction is None
        or time is None
        or status is None
    ):
        return None
    return GllData(
        talker_id=s.talker_id,
        latitude=latitude,
        lat_direction=lat_direction,
        longitude=longitude,
        lon_direction=lon_direction,
        time=time,
        status=status,
    )


def parse_vtg(s: ParsedSentence) -> VtgData:
    # Every VTG field is optional
    return VtgData(
        talker_id=s.talker_id,
        track_true=s.parse(1, decimal),
        true_indicator=s.parse_char(2),
        track_magnetic=s.parse(3, decimal),
        magnetic_indicator=s.parse_char(4),
        speed_knots=s.parse(5, decimal),
        knots_indicator=s.parse_char(6),
        speed_kph=s.parse(7, decimal),
        kph_indicator=s.parse_char(8),
    )


def parse_gns(s: ParsedSentence) -> GnsData | None:
    time = s.get_str(1)
    latitude = s.parse(2, decimal)
    lat_direction = s.parse_char(3)
    longitude = s.parse(4, decimal)
    lon_direction = s.parse_char(5)
    mode_indicator = s.get_str(6)
    num_satellites = s.parse(7, u8)
    if (
        time is None
        or latitude is None
        or lat_direction is None
        or longitude is None
        or lon_direction is None
        or mode_indicator is None
        or num_satellites is None
    ):
        return None
    return GnsData(
        talker_id=s.talker_id,
        time=time,
        latitude=latitude,
        lat_direction=lat_direction,
        longitude=longitude,
        lon_direction=lon_direction,
        mode_indicator=mode_indicator,
        num_satellites=num_satellites,
        hdop=s.parse(8, decimal),
        altitude=s.parse(9, decimal),
        geoid_separation=s.parse(10, decimal),
        age_of_diff=s.parse(11, decimal),
        diff_station_id=s.get_str(12),
        nav_status=s.parse_char(13),
    )


SENTENCE_PARSERS: dict[MessageType, Callable[[ParsedSentence], StandardMessage | None]] = {
    MessageType.GGA: parse_gga,
    MessageType.RMC: parse_rmc,
    MessageType.GSA: parse_gsa,
    MessageType.GSV: parse_gsv,
    MessageType.GLL: parse_gll,
    MessageType.VTG: parse_vtg,
    MessageType.GNS: parse_gns,
}
