"""Newline-delimited JSON framing over text streams."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TextIO


@dataclass(slots=True, frozen=True)
class TransportError(Exception):
    """Raised when the connection can no longer carry messages."""

    message: str


class StdioTransport:
    """One message per line in, one JSON object per line out.

    When ``max_message_chars`` is set, at most ``max_message_chars + 1``
    characters of a line are buffered. The rest of an oversized line is
    read and dropped, and the unstripped prefix is yielded so the caller
    can reject it by length.
    """

    def __init__(
        self,
        in_stream: TextIO,
        out_stream: TextIO,
        max_message_chars: int | None = None,
    ) -> None:
        self._in_stream = in_stream
        self._out_stream = out_stream
        self._read_size = -1 if max_message_chars is None else max_message_chars + 1

    def receive(self) -> Iterator[str]:
        """Yield framed messages until the input stream closes."""
        try:
            while True:
                raw_line = self._in_stream.readline(self._read_size)
                if not raw_line:
                    return
                if len(raw_line) == self._read_size and not raw_line.endswith("\n"):
                    self._discard_rest_of_line()
                    yield raw_line
                    continue
                line = raw_line.strip()
                if not line:
                    continue
                yield line
        except (OSError, ValueError) as error:
            raise TransportError(message=f"Failed to read request: {error}") from error

    def send(self, response: dict[str, object]) -> None:
        """Write one response message and flush it."""
        encoded = json.dumps(response, sort_keys=True)
        try:
            self._out_stream.write(f"{encoded}\n")
            self._out_stream.flush()
        except (OSError, ValueError) as error:
            raise TransportError(message=f"Failed to write response: {error}") from error

    def _discard_rest_of_line(self) -> None:
        while True:
            chunk = self._in_stream.readline(self._read_size)
            if not chunk or chunk.endswith("\n"):
                return
