"""Tests for NmeaConnection against an in-memory serial port."""

import json
from pathlib import Path

from commands import ConfigureOdometer, GetUniqueCode, StandbyEnableCheckStatus
from conftest import FakeSerial
from connection import MAX_PENDING, NmeaConnection, PollResult, _extract_nmea_msg_type
from nmea import GgaData, RmcData
from pstm import StandbyEnableStatus, UniqueCode

GGA = b"$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47\r\n"
RMC = b"$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A\r\n"
ZDA = b"$GPZDA,201530.00,04,07,2002,00,00*60\r\n"
SHORT = 0.05


class TestExtractMsgType:
    def test_header(self) -> None:
        assert _extract_nmea_msg_type("$GNGGA,123519,4807.038") == "GNGGA"

    def test_header_with_checksum(self) -> None:
        assert _extract_nmea_msg_type("$PSTMGETUCODE*14") == "PSTMGETUCODE"

    def test_not_a_sentence(self) -> None:
        assert _extract_nmea_msg_type("garbage") == "NMEA"
        assert _extract_nmea_msg_type("$") == "NMEA"


class TestPollResult:
    def test_states(self) -> None:
        assert PollResult(None).timeout
        assert not PollResult(None, nak=True).timeout
        assert PollResult(UniqueCode("AB")).success


class TestOpenClose:
    def test_open_resets_input(self, fake_serial: FakeSerial) -> None:
        with NmeaConnection("/dev/ttyFAKE", baudrate=115200, timeout=1.5):
            assert fake_serial.input_resets == 1
            assert fake_serial.timeout == 1.5
        assert fake_serial.closed


class TestReceive:
    def test_decodes_sentence(self, fake_serial: FakeSerial) -> None:
        fake_serial.rx.extend(GGA)
        with NmeaConnection("/dev/ttyFAKE") as conn:
            msg = conn.receive(timeout=SHORT)
        assert isinstance(msg, GgaData)
        assert msg.fix_quality == 1

    def test_sentences_in_order(self, fake_serial: FakeSerial) -> None:
        fake_serial.rx.extend(b"noise" + GGA + RMC)
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert isinstance(conn.receive(timeout=SHORT), GgaData)
            assert isinstance(conn.receive(timeout=SHORT), RmcData)
            assert conn.receive(timeout=SHORT) is None

    def test_timeout(self, fake_serial: FakeSerial) -> None:
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert conn.receive(timeout=SHORT) is None

    def test_restores_serial_timeout(self, fake_serial: FakeSerial) -> None:
        with NmeaConnection("/dev/ttyFAKE", timeout=2.0) as conn:
            conn.receive(timeout=SHORT)
            assert fake_serial.timeout == 2.0

    def test_rejected_sentences_counted(self, fake_serial: FakeSerial) -> None:
        """Undecodable sentences are skipped and counted."""
        fake_serial.rx.extend(ZDA + ZDA + GGA)
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert isinstance(conn.receive(timeout=SHORT), GgaData)
            assert conn.rejected == 2

    def test_bad_checksum_rejected_when_verifying(self, fake_serial: FakeSerial) -> None:
        fake_serial.rx.extend(GGA.replace(b"*47", b"*48") + RMC)
        with NmeaConnection("/dev/ttyFAKE", verify_checksum=True) as conn:
            assert isinstance(conn.receive(timeout=SHORT), RmcData)
            assert conn.rejected == 1

    def test_unterminated_noise_dropped(self, fake_serial: FakeSerial) -> None:
        """A '$' never followed by a terminator does not grow the buffer forever."""
        fake_serial.rx.extend(b"$" + b"x" * (MAX_PENDING + 10))
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert conn.receive(timeout=SHORT) is None
            fake_serial.rx.extend(GGA)
            assert isinstance(conn.receive(timeout=SHORT), GgaData)

    def test_iter_messages(self, fake_serial: FakeSerial) -> None:
        fake_serial.rx.extend(GGA + RMC + GGA)
        with NmeaConnection("/dev/ttyFAKE") as conn:
            messages = list(conn.iter_messages(0.2))
        assert [type(m) for m in messages] == [GgaData, RmcData, GgaData]


class TestSend:
    def test_writes_command(self, fake_serial: FakeSerial) -> None:
        with NmeaConnection("/dev/ttyFAKE") as conn:
            conn.send(GetUniqueCode())
        assert fake_serial.written == [b"$PSTMGETUCODE*14\r\n"]

    def test_packet_log(self, fake_serial: FakeSerial, tmp_path: Path) -> None:
        """Both directions are appended to the packet log as JSON lines."""
        log_path = tmp_path / "packets.jsonl"
        fake_serial.replies.append(b"$PSTMGETUCODEOK,0123456789ABCDEF0123456789ABCDEF*3C\r\n")
        with NmeaConnection("/dev/ttyFAKE", packet_log=str(log_path)) as conn:
            conn.send(GetUniqueCode())
            conn.receive(timeout=SHORT)

        entries = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert len(entries) == 2
        assert entries[0]["tag"] == "NMEA"
        assert entries[0]["msg"] == "PSTMGETUCODE"
        assert entries[0]["ascii"] == "$PSTMGETUCODE*14"
        assert entries[0]["out"] is True
        assert entries[1]["msg"] == "PSTMGETUCODEOK"
        assert entries[1]["out"] is False
        assert entries[1]["t"].endswith("Z")


class TestSendAndWaitAck:
    def test_ok(self, fake_serial: FakeSerial) -> None:
        fake_serial.replies.append(GGA + b"$PSTMCFGODOOK*18\r\n")
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert conn.send_and_wait_ack(ConfigureOdometer(True), timeout=SHORT)

    def test_error(self, fake_serial: FakeSerial) -> None:
        fake_serial.replies.append(b"$PSTMCFGODOERROR*44\r\n")
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert not conn.send_and_wait_ack(ConfigureOdometer(True), timeout=SHORT)

    def test_other_command_ack_ignored(self, fake_serial: FakeSerial) -> None:
        fake_serial.replies.append(b"$PSTMCFGAJMOK\r\n")
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert not conn.send_and_wait_ack(ConfigureOdometer(True), timeout=SHORT)

    def test_timeout(self, fake_serial: FakeSerial) -> None:
        with NmeaConnection("/dev/ttyFAKE") as conn:
            assert not conn.send_and_wait_ack(ConfigureOdometer(True), timeout=SHORT)


class TestPoll:
    def test_response(self, fake_serial: FakeSerial) -> None:
        fake_serial.replies.append(RMC + b"$PSTMSTANDBYENABLE,1*51\r\n")
        with NmeaConnection("/dev/ttyFAKE") as conn:
            result = conn.poll(StandbyEnableCheckStatus(), StandbyEnableStatus, timeout=SHORT)
        assert result.success
        assert isinstance(result.message, StandbyEnableStatus)
        assert fake_serial.written == [b"$PSTMSTANDBYENABLE*4C\r\n"]

    def test_nak(self, fake_serial: FakeSerial) -> None:
        fake_serial.replies.append(b"$PSTMGETUCODEERROR*4C\r\n")
        with NmeaConnection("/dev/ttyFAKE") as conn:
            result = conn.poll(GetUniqueCode(), UniqueCode, timeout=SHORT)
        assert result.nak
        assert not result.success

    def test_timeout(self, fake_serial: FakeSerial) -> None:
        fake_serial.rx.extend(GGA)
        with NmeaConnection("/dev/ttyFAKE") as conn:
            result = conn.poll(GetUniqueCode(), UniqueCode, timeout=SHORT)
        assert result.timeout
