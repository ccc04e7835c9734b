"""Incremental conversion of raw byte chunks into complete text lines."""

from __future__ import annotations

import codecs
import logging
from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)


LINE_TERMINATOR = "\n"


class FrameDecoder:
    """Turn a sequence of byte chunks into terminator-delimited lines.

    Chunks may end in the middle of a multi-byte character or in the middle
    of a line. The incremental UTF-8 decoder holds back incomplete character
    sequences until the following chunk arrives, and the unterminated tail of
    the decoded text is kept in ``pending`` until its terminator shows up.
    Invalid byte sequences are replaced with U+FFFD instead of raising.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """Text received after the last terminator."""

        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Decode ``chunk`` and return the lines it completed, in order."""

        if self._closed:
            raise RuntimeError("FrameDecoder.feed() called after finish()")
        if not chunk:
            return []
        text = self._decoder.decode(bytes(chunk))
        if not text:
            return []
        lines = (self._pending + text).split(LINE_TERMINATOR)
        self._pending = lines.pop()
        return lines

    def finish(self) -> list[str]:
        """Signal end of stream.

        The producer terminates every record, so an unterminated tail is
        discarded rather than emitted. Always returns an empty list.
        """

        if self._closed:
            return []
        self._closed = True
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if tail:
            logger.debug(
                "Discarding unterminated trailing fragment",
                extra={"fragment_length": len(tail)},
            )
        return []

    def iter_lines(self, chunks: Iterable[bytes]) -> Iterator[str]:
        """Lazily yield lines from ``chunks`` until the iterable is exhausted."""

        for chunk in chunks:
            yield from self.feed(chunk)
        yield from self.finish()


def iter_lines(chunks: Iterable[bytes], *, encoding: str = "utf-8") -> Iterator[str]:
    """Shortcut for ``FrameDecoder(encoding).iter_lines(chunks)``."""

    return FrameDecoder(encoding).iter_lines(chunks)


__all__ = ["FrameDecoder", "LINE_TERMINATOR", "iter_lines"]
