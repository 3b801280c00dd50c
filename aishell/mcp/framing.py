"""Content-Length framing for JSON-RPC over stdio.

A frame is ``Content-Length: <n>\\r\\n\\r\\n`` followed by exactly ``n``
bytes of UTF-8 JSON. The codec is transport-agnostic: feed it whatever
chunks the stream produces and it yields each complete body exactly once.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterator, Optional

from aishell.core.logging import get_logger

logger = get_logger(__name__)

HEADER_SEPARATOR = b"\r\n\r\n"
_CONTENT_LENGTH = re.compile(r"content-length:\s*(\d+)", re.IGNORECASE)


def _parse_content_length(header: str) -> Optional[int]:
    match = _CONTENT_LENGTH.search(header)
    return int(match.group(1)) if match else None


class FrameCodec:
    def __init__(self) -> None:
        self._buffer = bytearray()

    @staticmethod
    def encode(message: Any) -> bytes:
        body = json.dumps(message, separators=(",", ":")).encode("utf-8")
        return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        """Buffer ``chunk`` and return a lazy iterator over complete frame bodies.

        The chunk is buffered immediately; bodies are cut from the buffer as
        the iterator is consumed. Incomplete frames stay buffered for the next
        call.
        """
        self._buffer.extend(chunk)
        return self._drain()

    def _drain(self) -> Iterator[bytes]:
        while True:
            header_end = self._buffer.find(HEADER_SEPARATOR)
            if header_end < 0:
                return
            header = bytes(self._buffer[:header_end]).decode("ascii", errors="replace")
            body_start = header_end + len(HEADER_SEPARATOR)
            length = _parse_content_length(header)
            if length is None:
                logger.debug("Skipping frame header without Content-Length", data={"header": header[:200]})
                del self._buffer[:body_start]
                continue
            body_end = body_start + length
            if len(self._buffer) < body_end:
                return
            body = bytes(self._buffer[body_start:body_end])
            del self._buffer[:body_end]
            yield body

    def reset(self) -> None:
        self._buffer.clear()
