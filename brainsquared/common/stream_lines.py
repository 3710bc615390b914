"""
Line reassembly for chunked text streams.

Transports (sockets, HTTP chunked bodies, in-process queues) split data at
arbitrary byte offsets. LineBuffer keeps the trailing partial line and only
releases complete ones, so Server-Sent Events can be parsed the same way
whatever carried them.
"""

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

SSE_DONE = "[DONE]"


class LineBuffer:
    """
    Stateful line splitter.

    ``feed()`` returns the lines completed by the new chunk; ``flush()``
    returns whatever partial line is left once the stream ends.
    Accepts ``bytes`` or ``str`` chunks; a UTF-8 sequence cut in half
    between two byte chunks is held back until it is complete.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._pending = ""
        self._pending_bytes = b""

    def _decode(self, chunk: Union[bytes, str]) -> str:
        if isinstance(chunk, str):
            return chunk
        data = self._pending_bytes + chunk
        try:
            self._pending_bytes = b""
            return data.decode(self._encoding)
        except UnicodeDecodeError as e:
            if e.reason != "unexpected end of data":
                raise
            self._pending_bytes = data[e.start:]
            return data[:e.start].decode(self._encoding)

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        text = self._pending + self._decode(chunk)
        parts = text.split("\n")
        self._pending = parts.pop()
        return [p[:-1] if p.endswith("\r") else p for p in parts]

    def flush(self) -> List[str]:
        rest = self._pending
        if self._pending_bytes:
            rest += self._pending_bytes.decode(self._encoding, errors="replace")
        self._pending = ""
        self._pending_bytes = b""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


def iter_lines(chunks: Iterable[Union[bytes, str]]) -> Iterator[str]:
    """Yield complete lines from an iterable of arbitrary chunks."""
    buffer = LineBuffer()
    for chunk in chunks:
        yield from buffer.feed(chunk)
    yield from buffer.flush()


def parse_sse_line(line: str) -> Optional[str]:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


def iter_sse_data(chunks: Iterable[Union[bytes, str]]) -> Iterator[str]:
    """
    Yield SSE ``data:`` payloads until the stream ends or sends ``[DONE]``.

    Comment lines (``: keep-alive``), event names and blank separators are
    skipped.
    """
    for line in iter_lines(chunks):
        payload = parse_sse_line(line)
        if payload is None:
            continue
        if payload.strip() == SSE_DONE:
            return
        yield payload


def iter_sse_json(chunks: Iterable[Union[bytes, str]]) -> Iterator[Dict[str, Any]]:
    """Like iter_sse_data, decoding each payload as JSON and skipping invalid ones."""
    for payload in iter_sse_data(chunks):
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            continue


def encode_sse_frame(frame: Dict[str, Any]) -> str:
    """Serialize one event frame as an SSE message."""
    return f"data: {json.dumps(frame)}\n\n"
