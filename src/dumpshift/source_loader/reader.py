"""Line reader over a dump stream."""

from __future__ import annotations

import io
from typing import IO, Union


class LineReader:
    """Reads a text or binary stream one line at a time.

    Tracks the line number and byte offset of the next unread line so
    diagnostics can point back into the dump. Bytes are decoded as UTF-8
    with surrogate escapes, so binary blob contents survive round trips.
    """

    def __init__(self, stream: Union[IO[str], IO[bytes]]):
        self._stream = stream
        self.eof = False
        self.line_number = 0
        self.offset = 0

    @classmethod
    def from_text(cls, text: str) -> LineReader:
        return cls(io.StringIO(text))

    def read_line(self) -> str:
        """Return the next line including its terminator, or '' at end."""
        if self.eof:
            return ""
        raw = self._stream.readline()
        if not raw:
            self.eof = True
            return ""
        if isinstance(raw, bytes):
            self.offset += len(raw)
            line = raw.decode("utf-8", errors="surrogateescape")
        else:
            self.offset += len(raw.encode("utf-8", errors="surrogateescape"))
            line = raw
        self.line_number += 1
        return line
