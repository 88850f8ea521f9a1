"""Push-event stream decoder.

Turns a text/byte stream of ``event:`` / ``data:`` / ``id:`` records into
:class:`StreamEvent` objects. ``data`` is left as text; JSON decoding is the
router's job.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from geocatalogue.models.events import StreamEvent

_logger = logging.getLogger(__name__)

_EOL = re.compile(r"\r\n|\r|\n")
_BOM = "\ufeff"


class LineSplitter:
    """Split arbitrarily chunked input into lines.

    Bytes are decoded incrementally as UTF-8, so a multi-byte character split
    across two chunks still decodes. A trailing ``\\r`` is held back until the
    next chunk shows whether it starts a ``\\r\\n`` pair.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._started = False

    def feed(self, chunk: bytes | str) -> list[str]:
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not self._started and text:
            self._started = True
            if text.startswith(_BOM):
                text = text[1:]
        self._buffer += text
        return self._drain(final=False)

    def close(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        lines = self._drain(final=True)
        if self._buffer:
            lines.append(self._buffer)
            self._buffer = ""
        return lines

    def _drain(self, *, final: bool) -> list[str]:
        buffer = self._buffer
        lines: list[str] = []
        pos = 0
        for match in _EOL.finditer(buffer):
            if not final and match.group() == "\r" and match.end() == len(buffer):
                break
            lines.append(buffer[pos : match.start()])
            pos = match.end()
        self._buffer = buffer[pos:]
        return lines


class EventStreamDecoder:
    """Line-at-a-time record assembler."""

    def __init__(self) -> None:
        self._event_name: str | None = None
        self._data: list[str] = []
        self._id: str | None = None

    def _reset(self) -> None:
        self._event_name = None
        self._data = []
        self._id = None

    def feed_line(self, line: str) -> StreamEvent | None:
        """Consume one line; return an event when a blank line completes one."""
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            # comment / keep-alive
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        field = field.strip().lower()

        if field == "event":
            # Only a blank line ends a record; a later event line renames it.
            self._event_name = value.strip() or None
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self._id = value.strip() or None
        else:
            _logger.debug("Ignoring push-event field %r", field)
        return None

    def flush(self) -> StreamEvent | None:
        """Emit a pending record at end of input, if it carries data."""
        return self._dispatch()

    def _dispatch(self) -> StreamEvent | None:
        if not self._data:
            self._reset()
            return None
        event = StreamEvent(event_name=self._event_name, data="\n".join(self._data), id=self._id)
        self._reset()
        return event


def iter_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Decode events from an iterable of already-split lines."""
    decoder = EventStreamDecoder()
    for line in lines:
        event = decoder.feed_line(line.rstrip("\r\n"))
        if event is not None:
            yield event
    event = decoder.flush()
    if event is not None:
        yield event


async def aiter_events(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[StreamEvent]:
    """Decode events lazily from an async source of text or byte chunks.

    Errors raised by *chunks* propagate to the consumer. Closing the
    returned generator early drops any half-assembled record.
    """
    splitter = LineSplitter()
    decoder = EventStreamDecoder()
    async for chunk in chunks:
        for line in splitter.feed(chunk):
            event = decoder.feed_line(line)
            if event is not None:
                yield event
    for line in splitter.close():
        event = decoder.feed_line(line)
        if event is not None:
            yield event
    event = decoder.flush()
    if event is not None:
        yield event
