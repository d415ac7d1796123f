"""NMEA stream decoding: sentence framing and dispatch to typed records."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from nmea import (
    CR,
    LF,
    SENTENCE_PARSERS,
    MessageType,
    ParseError,
    StandardMessage,
    split_sentence,
    verify_checksum,
)
from pstm import PstmMessage, decode_pstm

# Every record the decoder can produce. Use isinstance() or match/case.
NmeaMessage = StandardMessage | PstmMessage


@dataclass
class ParseResult:
    """Result of one parse_bytes() call.

    consumed is how many bytes the caller should drop from the front of its
    buffer. It is 0 only for an empty buffer or an unterminated sentence with
    nothing before it.
    """

    message: NmeaMessage | None
    consumed: int
    error: ParseError | None = None
    sentence: bytes | None = None  # framed sentence, terminator excluded

    @property
    def success(self) -> bool:
        return self.message is not None

    @property
    def framed(self) -> bool:
        return self.sentence is not None


_TERMINATOR = re.compile(rb"[\r\n]")


def _find_terminator(data: bytes | bytearray, start: int) -> int:
    m = _TERMINATOR.search(data, start)
    return m.start() if m else -1


class NmeaParser:
    """Incremental sentence decoder.

    The parser keeps no buffer: callers append incoming bytes to their own
    buffer, call parse_bytes(), and drop ParseResult.consumed bytes.
    """

    def __init__(self, verify_checksum: bool = False, log: logging.Logger | None = None) -> None:
        self.verify_checksum = verify_checksum
        self._log = log

    def parse_sentence(self, sentence: bytes) -> NmeaMessage | None:
        """Decode one framed sentence ('$...', no terminator); None if rejected."""
        parsed = split_sentence(sentence)
        if parsed is None:
            return None
        if parsed.message_type == MessageType.PSTM:
            return decode_pstm(parsed)
        parse = SENTENCE_PARSERS.get(parsed.message_type)
        if parse is None:
            return None
        return parse(parsed)

    def parse_bytes(self, data: bytes | bytearray, start: int = 0) -> ParseResult:
        """Frame and decode the first complete sentence in data[start:].

        Bytes before the first '$' are noise and are always consumed. A
        framed sentence is consumed through its terminator (any run of CR/LF)
        whether or not it decodes. consumed counts from start.
        """
        dollar = data.find(b"$", start)
        if dollar < 0:
            return ParseResult(None, len(data) - start)

        end = _find_terminator(data, dollar)
        if end < 0:
            # Incomplete: keep the partial sentence for the next call
            return ParseResult(None, dollar - start)

        stop = end + 1
        while stop < len(data) and data[stop] in (CR, LF):
            stop += 1
        consumed = stop - start

        sentence = bytes(data[dollar:end])
        if self.verify_checksum and verify_checksum(sentence) is False:
            if self._log:
                self._log.debug(f"RX checksum mismatch: {sentence!r}")
            return ParseResult(None, consumed, ParseError.INVALID_CHECKSUM, sentence)

        message = self.parse_sentence(sentence)
        if message is None:
            if self._log:
                self._log.debug(f"RX rejected sentence: {sentence!r}")
            return ParseResult(None, consumed, ParseError.INVALID_MESSAGE, sentence)
        return ParseResult(message, consumed, sentence=sentence)

    def iter_results(self, data: bytes | bytearray) -> Iterator[ParseResult]:
        """Yield a result for every complete sentence in data.

        Trailing partial input is left alone; use parse_bytes() directly when
        the unconsumed remainder matters.
        """
        pos = 0
        while pos < len(data):
            result = self.parse_bytes(data, pos)
            if result.consumed == 0:
                break
            pos += result.consumed
            if result.framed:
                yield result


_default_parser = NmeaParser()


def parse_bytes(data: bytes | bytearray, start: int = 0) -> ParseResult:
    """Decode with a default parser (no checksum verification)."""
    return _default_parser.parse_bytes(data, start)
