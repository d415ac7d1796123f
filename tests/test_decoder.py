"""Tests for stream framing and sentence dispatch."""

import logging

import pytest

from decoder import NmeaParser, ParseResult, parse_bytes
from nmea import GgaData, GllData, ParseError, RmcData, TalkerId
from pstm import CommandAck

GGA = b"$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47\r\n"
GNGGA = b"$GNGGA,092725.00,4717.11399,N,00833.91590,E,1,08,1.01,499.6,M,48.0,M,,*45\r\n"
RMC = b"$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A\r\n"
GLL = b"$GPGLL,4916.45,N,12311.12,W,225444,A,*1D\r\n"
ZDA = b"$GPZDA,201530.00,04,07,2002,00,00*60\r\n"


class TestParseResult:
    def test_flags(self) -> None:
        assert not ParseResult(None, 0).success
        assert not ParseResult(None, 0).framed
        result = ParseResult(None, 10, ParseError.INVALID_MESSAGE, b"$GPZDA")
        assert result.framed
        assert not result.success


class TestFraming:
    def test_single_sentence(self) -> None:
        result = parse_bytes(GGA)
        assert result.success
        assert isinstance(result.message, GgaData)
        assert result.consumed == len(GGA)
        assert result.error is None
        assert result.sentence == GGA.rstrip(b"\r\n")

    def test_empty_buffer(self) -> None:
        result = parse_bytes(b"")
        assert result.consumed == 0
        assert result.message is None
        assert result.error is None

    def test_no_start_byte(self) -> None:
        data = b"INVALID DATA\r\n"
        result = parse_bytes(data)
        assert result.message is None
        assert result.consumed == len(data)
        assert result.error is None

    def test_noise_before_and_after(self) -> None:
        data = b"JUNK" + GGA + b"MORE"
        result = parse_bytes(data)
        assert isinstance(result.message, GgaData)
        assert data[result.consumed :] == b"MORE"

    def test_partial_sentence(self) -> None:
        assert parse_bytes(b"$GPGGA,1235").consumed == 0

    def test_partial_sentence_after_noise(self) -> None:
        result = parse_bytes(b"xx$GPGGA,1235")
        assert result.consumed == 2
        assert result.message is None

    def test_cr_only_terminator(self) -> None:
        data = GGA.rstrip(b"\r\n") + b"\r"
        result = parse_bytes(data)
        assert result.success
        assert result.consumed == len(data)

    def test_lf_only_terminator(self) -> None:
        data = GGA.rstrip(b"\r\n") + b"\n"
        result = parse_bytes(data)
        assert result.success
        assert result.consumed == len(data)

    def test_terminator_run_consumed(self) -> None:
        data = GGA + b"\r\n\n" + RMC
        result = parse_bytes(data)
        assert data[result.consumed :] == RMC

    def test_accepts_bytearray(self) -> None:
        result = parse_bytes(bytearray(GLL))
        assert isinstance(result.message, GllData)

    def test_start_offset(self) -> None:
        data = GGA + RMC
        result = parse_bytes(data, len(GGA))
        assert isinstance(result.message, RmcData)
        assert result.consumed == len(RMC)

    def test_start_offset_partial(self) -> None:
        data = GGA + b"xx$GPRMC,1235"
        result = parse_bytes(data, len(GGA))
        assert result.message is None
        assert result.consumed == 2


class TestRejection:
    def test_unknown_type_consumed(self) -> None:
        result = parse_bytes(ZDA)
        assert result.message is None
        assert result.error == ParseError.INVALID_MESSAGE
        assert result.consumed == len(ZDA)

    def test_missing_mandatory_field(self) -> None:
        data = b"$GPGGA,123519,,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*59\r\n"
        result = parse_bytes(data)
        assert result.error == ParseError.INVALID_MESSAGE
        assert result.consumed == len(data)

    def test_short_sentence(self) -> None:
        result = parse_bytes(b"$GP\r\n")
        assert result.error == ParseError.INVALID_MESSAGE
        assert result.consumed == 5

    def test_unknown_proprietary(self) -> None:
        result = parse_bytes(b"$PSTMXYZ,1*5C\r\n")
        assert result.error == ParseError.INVALID_MESSAGE


class TestChecksumVerification:
    BAD_RMC = b"$GPRMC,123519,V,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A\r\n"

    def test_not_verified_by_default(self) -> None:
        result = NmeaParser().parse_bytes(self.BAD_RMC)
        assert isinstance(result.message, RmcData)
        assert not result.message.valid

    def test_mismatch_rejected(self) -> None:
        result = NmeaParser(verify_checksum=True).parse_bytes(self.BAD_RMC)
        assert result.message is None
        assert result.error == ParseError.INVALID_CHECKSUM
        assert result.consumed == len(self.BAD_RMC)

    def test_match_accepted(self) -> None:
        result = NmeaParser(verify_checksum=True).parse_bytes(RMC)
        assert isinstance(result.message, RmcData)
        assert result.message.valid

    def test_sentence_without_checksum_accepted(self) -> None:
        result = NmeaParser(verify_checksum=True).parse_bytes(b"$PSTMCFGODOOK\r\n")
        assert result.message == CommandAck("PSTMCFGODO", ok=True)

    def test_mismatch_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        parser = NmeaParser(verify_checksum=True, log=logging.getLogger("test.decoder"))
        with caplog.at_level(logging.DEBUG, logger="test.decoder"):
            parser.parse_bytes(self.BAD_RMC)
        assert "RX checksum mismatch" in caplog.text


class TestDispatch:
    def test_talker_preserved(self) -> None:
        result = parse_bytes(GNGGA)
        assert isinstance(result.message, GgaData)
        assert result.message.talker_id == TalkerId.GN
        assert result.message.num_satellites == 8

    def test_unknown_talker_known_type(self) -> None:
        data = b"$XXGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*50\r\n"
        result = NmeaParser(verify_checksum=True).parse_bytes(data)
        assert isinstance(result.message, GgaData)
        assert result.message.talker_id == TalkerId.UNKNOWN

    def test_proprietary(self) -> None:
        result = parse_bytes(b"$PSTMCFGODOERROR*44\r\n")
        assert result.message == CommandAck("PSTMCFGODO", ok=False)

    def test_parse_sentence(self) -> None:
        msg = NmeaParser().parse_sentence(GLL.rstrip(b"\r\n"))
        assert isinstance(msg, GllData)
        assert msg.status == "A"


class TestIterResults:
    def test_three_sentences_consume_stream(self) -> None:
        data = GGA + RMC + GLL
        results = list(NmeaParser().iter_results(data))
        assert all(r.success for r in results)
        assert len(results) == 3
        assert sum(r.consumed for r in results) == len(data)

    def test_stream(self) -> None:
        data = b"noise" + GGA + RMC + ZDA + GLL + b"$GPGGA,12"
        results = list(NmeaParser().iter_results(data))
        assert [type(r.message) for r in results] == [GgaData, RmcData, type(None), GllData]
        assert results[2].error == ParseError.INVALID_MESSAGE

    def test_buffer_loop(self) -> None:
        # The way a reader drains its buffer
        parser = NmeaParser()
        buffer = bytearray(GGA[:20])
        messages = []
        for chunk in (GGA[20:] + RMC[:30], RMC[30:] + GLL):
            buffer.extend(chunk)
            while True:
                result = parser.parse_bytes(buffer)
                if result.consumed == 0:
                    break
                del buffer[: result.consumed]
                if result.message is not None:
                    messages.append(result.message)
        assert [type(m) for m in messages] == [GgaData, RmcData, GllData]
        assert buffer == b""

    def test_large_lf_only_stream(self) -> None:
        """LF-terminated receivers stream without slowing down."""
        count = 20_000
        data = (GGA.rstrip(b"\r\n") + b"\n") * count
        results = list(NmeaParser().iter_results(data))
        assert len(results) == count
        assert all(isinstance(r.message, GgaData) for r in results)
        assert sum(r.consumed for r in results) == len(data)
