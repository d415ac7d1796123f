"""NMEA serial connection: send commands and receive decoded sentences."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING

import serial

from commands import Command
from decoder import NmeaMessage, NmeaParser, ParseResult
from pstm import CommandAck

if TYPE_CHECKING:
    from serial import Serial

# Wait this long for the first reply to a query, then this long for each further one
INITIAL_TIMEOUT = 2.0
SUBSEQUENT_TIMEOUT = 0.3

# Unterminated input longer than this is assumed to be noise
MAX_PENDING = 1024


def _extract_nmea_msg_type(sentence: str) -> str:
    """Extract header from an NMEA sentence (e.g., '$GNGGA,...' -> 'GNGGA')."""
    if not sentence.startswith("$"):
        return "NMEA"
    header = sentence[1:].split("*", 1)[0].split(",", 1)[0]
    return header or "NMEA"


@dataclass
class PollResult:
    """Result of a poll operation."""

    message: NmeaMessage | None
    nak: bool = False

    @property
    def success(self) -> bool:
        return self.message is not None

    @property
    def timeout(self) -> bool:
        return self.message is None and not self.nak


class NmeaConnection:
    """Serial connection to an NMEA receiver (ST Teseo commands)."""

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        timeout: float = 2.0,
        packet_log: str | None = None,
        log: logging.Logger | None = None,
        verify_checksum: bool = False,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._serial: Serial = serial.Serial(port, baudrate=baudrate, timeout=timeout)
        self._serial.reset_input_buffer()
        self._packet_log: IO[str] | None = None
        if packet_log:
            self._packet_log = open(packet_log, "a")
        self._log = log
        self._parser = NmeaParser(verify_checksum=verify_checksum, log=log)
        self._buffer = bytearray()
        self.rejected = 0  # framed sentences that failed to decode

    def close(self) -> None:
        if self._packet_log:
            self._packet_log.close()
            self._packet_log = None
        self._serial.close()

    def _log_nmea_packet(self, sentence: str, ts: float, out: bool) -> None:
        """Log an NMEA sentence to the packet log."""
        if not self._packet_log:
            return
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
        entry = {
            "t": dt.strftime("%Y-%m-%dT%H:%M:%S.%f") + "Z",
            "tag": "NMEA",
            "msg": _extract_nmea_msg_type(sentence),
            "ascii": sentence,
            "out": out,
        }
        self._packet_log.write(json.dumps(entry) + "\n")
        self._packet_log.flush()

    def __enter__(self) -> NmeaConnection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def send(self, command: Command) -> None:
        """Send a command sentence.

        Raises CommandError if the command cannot be rendered.
        """
        data = command.to_bytes()
        ts = time.time()
        self._serial.write(data)
        self._serial.flush()
        self._log_nmea_packet(data.decode("ascii").rstrip("\r\n"), ts, out=True)
        if self._log:
            self._log.debug(f"TX {command.CMD} ({len(data)} bytes)")

    def _next_result(self) -> ParseResult | None:
        """Take the next framed sentence out of the receive buffer."""
        while self._buffer:
            result = self._parser.parse_bytes(self._buffer)
            if result.consumed == 0:
                if len(self._buffer) <= MAX_PENDING:
                    return None
                # Drop the stale '$' so framing restarts at the next one
                del self._buffer[:1]
                continue
            del self._buffer[: result.consumed]
            if result.framed:
                return result
        return None

    def receive(self, timeout: float | None = None) -> NmeaMessage | None:
        """Receive and decode the next valid sentence.

        Sentences that fail to decode are logged and skipped. Returns None on
        timeout.
        """
        if timeout is None:
            timeout = self.timeout

        start_time = time.monotonic()
        old_timeout = self._serial.timeout
        self._serial.timeout = min(0.1, timeout)

        try:
            while True:
                result = self._next_result()
                if result is not None:
                    sentence = result.sentence.decode("ascii", errors="replace")  # type: ignore[union-attr]
                    self._log_nmea_packet(sentence, time.time(), out=False)
                    if result.message is None:
                        self.rejected += 1
                        continue
                    if self._log:
                        self._log.debug(f"RX {_extract_nmea_msg_type(sentence)}")
                    return result.message

                if time.monotonic() - start_time >= timeout:
                    return None
                chunk = self._serial.read(max(1, self._serial.in_waiting))
                if chunk:
                    self._buffer.extend(chunk)
        finally:
            self._serial.timeout = old_timeout

    def iter_messages(self, duration: float) -> Iterator[NmeaMessage]:
        """Yield decoded sentences for duration seconds."""
        start_time = time.monotonic()
        while True:
            remaining = duration - (time.monotonic() - start_time)
            if remaining <= 0:
                return
            msg = self.receive(timeout=remaining)
            if msg is not None:
                yield msg

    def send_and_wait_ack(self, command: Command, timeout: float = 2.0) -> bool:
        """Send a command and wait for its <KEYWORD>OK / <KEYWORD>ERROR reply."""
        self.send(command)

        start_time = time.monotonic()
        while time.monotonic() - start_time < timeout:
            msg = self.receive(timeout=timeout - (time.monotonic() - start_time))
            if msg is None:
                continue
            if isinstance(msg, CommandAck) and msg.command == command.CMD:
                return msg.ok

        return False

    def poll(
        self,
        command: Command,
        response_type: type | tuple[type, ...],
        timeout: float = 2.0,
    ) -> PollResult:
        """Send query and wait for a response of response_type.

        Returns PollResult with:
        - message set on success
        - nak=True if receiver answered <KEYWORD>ERROR
        - both None/False on timeout
        """
        self.send(command)

        start_time = time.monotonic()
        while time.monotonic() - start_time < timeout:
            msg = self.receive(timeout=timeout - (time.monotonic() - start_time))
            if msg is None:
                continue

            if isinstance(msg, CommandAck) and msg.command == command.CMD and not msg.ok:
                return PollResult(None, nak=True)

            if isinstance(msg, response_type):
                return PollResult(msg)

        return PollResult(None)
