"""Shared fixtures: an in-memory stand-in for a serial port."""

from collections import deque

import pytest
import serial


class FakeSerial:
    """Serial port double.

    Bytes in rx are returned by read(). Each write() records the data and
    queues the next entry of replies (if any) for reading.
    """

    def __init__(self) -> None:
        self.timeout: float | None = None
        self.rx = bytearray()
        self.written: list[bytes] = []
        self.replies: deque[bytes] = deque()
        self.closed = False
        self.input_resets = 0

    @property
    def in_waiting(self) -> int:
        return len(self.rx)

    def read(self, size: int = 1) -> bytes:
        data = bytes(self.rx[:size])
        del self.rx[:size]
        return data

    def write(self, data: bytes) -> int:
        self.written.append(bytes(data))
        if self.replies:
            self.rx.extend(self.replies.popleft())
        return len(data)

    def flush(self) -> None:
        pass

    def reset_input_buffer(self) -> None:
        # Scripted input stands for data arriving after the port is opened
        self.input_resets += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_serial(monkeypatch: pytest.MonkeyPatch) -> FakeSerial:
    port = FakeSerial()

    def open_port(*args: object, **kwargs: object) -> FakeSerial:
        port.timeout = kwargs.get("timeout")  # type: ignore[assignment]
        return port

    monkeypatch.setattr(serial, "Serial", open_port)
    return port
