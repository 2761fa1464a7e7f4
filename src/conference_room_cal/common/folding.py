from __future__ import annotations

from typing import BinaryIO

CRLF = b"\r\n"
CRLF_SPACE = b"\r\n "
DEFAULT_MAX_WIDTH = 75
# Folding space plus the widest UTF-8 sequence.
MIN_MAX_WIDTH = 5


def _sequence_length(lead: int) -> int:
    if lead < 0x80:
        return 1
    if 0xC0 <= lead < 0xE0:
        return 2
    if 0xE0 <= lead < 0xF0:
        return 3
    if 0xF0 <= lead < 0xF8:
        return 4
    return 1


def _is_continuation(byte: int) -> bool:
    return 0x80 <= byte < 0xC0


class FoldingWriter:
    """Streaming RFC 5545 line folder.

    Bytes written are forwarded to ``sink`` with CRLF line endings. When the
    width of the current line (in UTF-8 bytes) would reach ``max_width``, a
    CRLF followed by one space is inserted before the next code point and
    the width restarts at 1. Width survives across ``write`` calls, and a
    code point split between two calls is held back until it is complete.
    """

    def __init__(self, sink: BinaryIO, max_width: int = DEFAULT_MAX_WIDTH) -> None:
        if max_width < MIN_MAX_WIDTH:
            raise ValueError(f"max_width must be >= {MIN_MAX_WIDTH}")
        self._sink = sink
        self.max_width = max_width
        self._width = 0
        self._pending = b""

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        buf = self._pending + data
        self._pending = b""
        out = bytearray()
        i = 0
        end = len(buf)
        while i < end:
            byte = buf[i]
            if byte == 0x0A:
                out += CRLF
                self._width = 0
                i += 1
                continue
            if byte == 0x0D:
                if i + 1 == end:
                    # Might be the first half of a CRLF.
                    self._pending = buf[i:]
                    break
                if buf[i + 1] == 0x0A:
                    out += CRLF
                    self._width = 0
                    i += 2
                    continue
            size = _sequence_length(byte)
            tail = buf[i + 1 : i + size]
            if not all(_is_continuation(b) for b in tail):
                # Broken sequence: the lead byte goes out on its own.
                size = 1
            elif i + size > end:
                self._pending = buf[i:]
                break
            self._put(out, buf[i : i + size])
            i += size
        if out:
            self._sink.write(bytes(out))
        return len(data)

    def flush(self) -> None:
        if self._pending:
            out = bytearray()
            self._put(out, self._pending)
            self._pending = b""
            self._sink.write(bytes(out))
        flush = getattr(self._sink, "flush", None)
        if callable(flush):
            flush()

    def _put(self, out: bytearray, unit: bytes) -> None:
        if self._width + len(unit) >= self.max_width:
            out += CRLF_SPACE
            self._width = 1
        out += unit
        self._width += len(unit)
