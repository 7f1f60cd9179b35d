"""Incremental output streaming for a running process.

toolkit-exec runtime module v0.1.0

This module provides:
- Concurrent stdout/stderr reading with per-stream incremental decoding
- A bounded FIFO queue between the readers and the consumer (backpressure)
- Sequence numbering in arrival order
- A bounded transcript for callers that need the full output

Key design points:
- Each stream has its own incremental decoder, so a multi-byte character
  split across two reads is held back until its last byte arrives
- The queue is shared by both readers; a chunk's position in the queue is
  its arrival order and becomes its sequence number
- When the queue is full the readers block, which stops draining the pipes;
  no data is ever dropped on the way to the data callback
"""

from __future__ import annotations

import asyncio
import codecs
import inspect
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from .types import DataCallback, OutputChunk, ProcessHandle, StreamTag

__all__ = [
    "OutputStreamer",
    "Transcript",
    "call_safely",
]

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 4096
DEFAULT_QUEUE_SIZE = 256

# Marks the end of one reader in the shared queue.
_EOF = None


async def call_safely(
    callback: Callable[[Any], Any] | None,
    argument: Any,
    *,
    what: str,
) -> None:
    """Invoke a caller-supplied callback without letting it break the loop.

    Coroutine results are awaited before returning, so a slow async consumer
    slows the producer down instead of piling up work.

    Args:
        callback: Plain or coroutine function, or None
        argument: Single positional argument for the callback
        what: Short label used in log messages
    """
    if callback is None:
        return
    try:
        result = callback(argument)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Error in {what} callback: {e}", exc_info=True)


class Transcript:
    """Bounded record of a handle's output chunks.

    Keeps whole chunks in delivery order. When ``limit`` characters are
    exceeded the oldest chunks are dropped; the newest chunk is always kept.
    A limit of 0 keeps everything.
    """

    def __init__(self, limit: int = 0) -> None:
        self.limit = limit
        self._chunks: deque[OutputChunk] = deque()
        self._size = 0
        self.dropped_chars = 0

    def append(self, chunk: OutputChunk) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk.payload)
        if not self.limit:
            return
        while self._size > self.limit and len(self._chunks) > 1:
            removed = self._chunks.popleft()
            self._size -= len(removed.payload)
            self.dropped_chars += len(removed.payload)

    @property
    def truncated(self) -> bool:
        return self.dropped_chars > 0

    @property
    def chunks(self) -> list[OutputChunk]:
        return list(self._chunks)

    def text(self) -> str:
        """Concatenated payloads, prefixed with a marker if truncated."""
        body = "".join(chunk.payload for chunk in self._chunks)
        if self.truncated:
            return f"[... {self.dropped_chars} characters of earlier output dropped ...]\n{body}"
        return body

    def __len__(self) -> int:
        return self._size


class OutputStreamer:
    """Reads and decodes a process's two output streams.

    Example:
        streamer = OutputStreamer(handle, process, on_data=print)
        await streamer.run()  # returns once both streams hit EOF
    """

    def __init__(
        self,
        handle: ProcessHandle,
        process: asyncio.subprocess.Process,
        on_data: DataCallback | None = None,
        *,
        read_size: int = DEFAULT_READ_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        encoding: str = "utf-8",
    ) -> None:
        self.handle = handle
        self._process = process
        self._on_data = on_data
        self._read_size = read_size
        self._encoding = encoding
        self._queue: asyncio.Queue[tuple[StreamTag, str | None]] = asyncio.Queue(
            maxsize=queue_size
        )
        self._next_sequence = 0
        self._finished = False

    @property
    def delivered(self) -> int:
        """Number of chunks delivered so far."""
        return self._next_sequence

    @property
    def finished(self) -> bool:
        return self._finished

    async def run(self) -> None:
        """Stream until both stdout and stderr are closed.

        Every chunk read before EOF is delivered through ``on_data`` before
        this method returns. If the task running this method is cancelled the
        readers are cancelled with it and no further chunk is delivered.
        """
        readers = [
            asyncio.create_task(
                self._read_stream(self._process.stdout, StreamTag.PRIMARY),
                name=f"tkx-stdout-{self.handle.identifier[:8]}",
            ),
            asyncio.create_task(
                self._read_stream(self._process.stderr, StreamTag.SECONDARY),
                name=f"tkx-stderr-{self.handle.identifier[:8]}",
            ),
        ]
        try:
            await self._dispatch(open_streams=len(readers))
            # Readers have already posted EOF; collect them so errors surface in logs.
            await asyncio.gather(*readers)
        finally:
            for reader in readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            self._finished = True
            logger.debug(
                f"Output stream closed for {self.handle!r} "
                f"after {self._next_sequence} chunk(s)"
            )

    async def _dispatch(self, open_streams: int) -> None:
        """Deliver queued chunks in arrival order until every reader is done."""
        while open_streams:
            tag, text = await self._queue.get()
            if text is _EOF:
                open_streams -= 1
                continue
            chunk = OutputChunk(sequence=self._next_sequence, payload=text, stream=tag)
            self._next_sequence += 1
            await call_safely(self._on_data, chunk, what="data")

    async def _read_stream(
        self,
        stream: asyncio.StreamReader | None,
        tag: StreamTag,
    ) -> None:
        """Read one pipe to EOF, pushing decoded text into the queue.

        Args:
            stream: The pipe's reader (None if the stream was not captured)
            tag: Stream tag attached to every chunk from this pipe
        """
        try:
            decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
            if stream is not None:
                while True:
                    data = await stream.read(self._read_size)
                    if not data:
                        break
                    text = self._decode(decoder, data)
                    if text:
                        await self._queue.put((tag, text))
            tail = self._decode(decoder, b"", final=True)
            if tail:
                await self._queue.put((tag, tail))
        except Exception as e:
            logger.warning(f"Error reading {tag.value} of {self.handle!r}: {e}", exc_info=True)
            # Keep draining so the process is never blocked on a full pipe.
            await self._discard(stream)
        await self._queue.put((tag, _EOF))

    def _decode(self, decoder: codecs.IncrementalDecoder, data: bytes, final: bool = False) -> str:
        text = decoder.decode(data, final)
        if not isinstance(text, str):
            raise TypeError(
                f"{self._encoding!r} decoder returned {type(text).__name__}, not str"
            )
        return text

    async def _discard(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        try:
            while await stream.read(self._read_size):
                pass
        except OSError as e:
            logger.debug(f"Error draining output of {self.handle!r}: {e}")
