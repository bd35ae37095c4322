"""Server-sent-event frame assembly, independent of any transport."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SSEFrame:
    event: str
    data: str


class SSEFrameAssembler:
    """Turns arbitrary text chunks into complete SSE frames.

    Chunks may split a frame anywhere (even inside a ``\\r\\n`` pair); the
    unfinished tail is carried over to the next ``feed`` call.  Frames without
    any ``data:`` line (keep-alive comments, bare ``event:`` lines) are dropped.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[SSEFrame]:
        self._buffer += chunk
        # A trailing "\r" may be the first half of "\r\n" - wait for the next chunk.
        if self._buffer.endswith("\r"):
            ready, self._buffer = self._buffer[:-1], "\r"
        else:
            ready, self._buffer = self._buffer, ""
        ready = ready.replace("\r\n", "\n").replace("\r", "\n")

        blocks = ready.split("\n\n")
        self._buffer = blocks.pop() + self._buffer

        frames: list[SSEFrame] = []
        for block in blocks:
            frame = self._parse_block(block)
            if frame is not None:
                frames.append(frame)
        return frames

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._buffer

    @staticmethod
    def _parse_block(block: str) -> SSEFrame | None:
        event = "message"
        data_lines: list[str] = []
        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event = value.strip() or "message"
            elif field == "data":
                data_lines.append(value)
        if not data_lines:
            return None
        return SSEFrame(event=event, data="\n".join(data_lines))
