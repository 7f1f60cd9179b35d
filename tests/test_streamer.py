"""OutputStreamer and Transcript unit tests.

The streamer is driven by in-memory asyncio.StreamReader objects, so these
tests control exactly how bytes are split across reads.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from toolkit_exec.runtime.streamer import OutputStreamer, Transcript, call_safely
from toolkit_exec.runtime.types import OutputChunk, ProcessHandle, StreamTag


def make_handle() -> ProcessHandle:
    return ProcessHandle(identifier="handle-0001", program="fake", args=("--x",), pid=4242)


def make_process(stdout: bytes = b"", stderr: bytes = b""):
    """Fake process whose pipes already hold all their data."""
    out_reader = asyncio.StreamReader()
    err_reader = asyncio.StreamReader()
    out_reader.feed_data(stdout)
    out_reader.feed_eof()
    err_reader.feed_data(stderr)
    err_reader.feed_eof()
    return SimpleNamespace(stdout=out_reader, stderr=err_reader)


# =============================================================================
# Transcript Tests
# =============================================================================


class TestTranscript:
    """Test the bounded transcript."""

    def test_unbounded(self):
        transcript = Transcript(limit=0)
        for i in range(100):
            transcript.append(OutputChunk(i, "x" * 10))

        assert len(transcript) == 1000
        assert not transcript.truncated
        assert transcript.text() == "x" * 1000

    def test_drops_oldest_chunks(self):
        transcript = Transcript(limit=10)
        transcript.append(OutputChunk(0, "aaaa"))
        transcript.append(OutputChunk(1, "bbbb"))
        transcript.append(OutputChunk(2, "cccc"))

        assert transcript.truncated
        assert transcript.dropped_chars == 4
        assert [c.sequence for c in transcript.chunks] == [1, 2]
        assert transcript.text().endswith("bbbbcccc")
        assert transcript.text().startswith("[... 4 characters of earlier output dropped ...]")

    def test_keeps_newest_chunk_even_if_oversized(self):
        transcript = Transcript(limit=3)
        transcript.append(OutputChunk(0, "ab"))
        transcript.append(OutputChunk(1, "0123456789"))

        assert [c.payload for c in transcript.chunks] == ["0123456789"]
        assert transcript.dropped_chars == 2


# =============================================================================
# call_safely Tests
# =============================================================================


class TestCallSafely:
    """Test callback invocation."""

    @pytest.mark.asyncio
    async def test_none_callback(self):
        await call_safely(None, 1, what="data")

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self):
        seen = []

        async def async_cb(value):
            seen.append(("async", value))

        await call_safely(lambda v: seen.append(("sync", v)), 1, what="data")
        await call_safely(async_cb, 2, what="data")

        assert seen == [("sync", 1), ("async", 2)]

    @pytest.mark.asyncio
    async def test_exception_is_swallowed_and_logged(self, caplog):
        def broken(_value):
            raise ValueError("boom")

        await call_safely(broken, 1, what="data")
        assert "Error in data callback" in caplog.text


# =============================================================================
# OutputStreamer Tests
# =============================================================================


class TestOutputStreamer:
    """Test reading, decoding and ordering."""

    @pytest.mark.asyncio
    async def test_delivers_both_streams(self):
        chunks: list[OutputChunk] = []
        process = make_process(stdout=b"out line\n", stderr=b"err line\n")
        streamer = OutputStreamer(make_handle(), process, chunks.append)

        await streamer.run()

        assert streamer.finished
        stdout = "".join(c.payload for c in chunks if c.stream is StreamTag.PRIMARY)
        stderr = "".join(c.payload for c in chunks if c.stream is StreamTag.SECONDARY)
        assert stdout == "out line\n"
        assert stderr == "err line\n"

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_reads(self):
        """A character split across reads is held back, never mangled."""
        text = "héllo ✓ 世界\n"
        chunks: list[OutputChunk] = []
        process = make_process(stdout=text.encode("utf-8"))
        streamer = OutputStreamer(make_handle(), process, chunks.append, read_size=1)

        await streamer.run()

        assert "".join(c.payload for c in chunks) == text
        assert all(c.payload for c in chunks)
        assert "\ufffd" not in "".join(c.payload for c in chunks)

    @pytest.mark.asyncio
    async def test_invalid_bytes_are_replaced(self):
        chunks: list[OutputChunk] = []
        process = make_process(stdout=b"ok \xff\xfe end")
        streamer = OutputStreamer(make_handle(), process, chunks.append)

        await streamer.run()

        output = "".join(c.payload for c in chunks)
        assert output.startswith("ok ")
        assert output.endswith(" end")
        assert "\ufffd" in output

    @pytest.mark.asyncio
    async def test_truncated_character_at_eof(self):
        """A dangling partial character at EOF is flushed as a replacement."""
        chunks: list[OutputChunk] = []
        process = make_process(stdout="abc✓".encode("utf-8")[:-1])
        streamer = OutputStreamer(make_handle(), process, chunks.append)

        await streamer.run()

        assert "".join(c.payload for c in chunks) == "abc\ufffd"

    @pytest.mark.asyncio
    async def test_sequence_numbers(self):
        chunks: list[OutputChunk] = []
        process = make_process(stdout=b"a" * 100, stderr=b"b" * 100)
        streamer = OutputStreamer(make_handle(), process, chunks.append, read_size=7)

        await streamer.run()

        assert [c.sequence for c in chunks] == list(range(len(chunks)))
        assert streamer.delivered == len(chunks)

    @pytest.mark.asyncio
    async def test_slow_consumer_gets_everything(self):
        """With a tiny queue and a slow consumer nothing is dropped."""
        received: list[str] = []

        async def slow_consumer(chunk: OutputChunk) -> None:
            await asyncio.sleep(0.001)
            received.append(chunk.payload)

        data = b"".join(f"row {i}\n".encode() for i in range(300))
        process = make_process(stdout=data)
        streamer = OutputStreamer(
            make_handle(), process, slow_consumer, read_size=16, queue_size=1
        )

        await streamer.run()

        assert "".join(received) == data.decode()

    @pytest.mark.asyncio
    async def test_arrival_order_across_streams(self):
        """Chunks from both pipes interleave in the order they arrive."""
        out_reader = asyncio.StreamReader()
        err_reader = asyncio.StreamReader()
        process = SimpleNamespace(stdout=out_reader, stderr=err_reader)
        chunks: list[OutputChunk] = []
        streamer = OutputStreamer(make_handle(), process, chunks.append)

        task = asyncio.create_task(streamer.run())
        for index in range(3):
            out_reader.feed_data(f"out {index}\n".encode())
            await asyncio.sleep(0.01)
            err_reader.feed_data(f"err {index}\n".encode())
            await asyncio.sleep(0.01)
        out_reader.feed_eof()
        err_reader.feed_eof()
        await asyncio.wait_for(task, timeout=5)

        assert [c.payload for c in chunks] == [
            "out 0\n", "err 0\n", "out 1\n", "err 1\n", "out 2\n", "err 2\n",
        ]
        assert [c.stream for c in chunks] == [
            StreamTag.PRIMARY, StreamTag.SECONDARY,
        ] * 3

    @pytest.mark.asyncio
    async def test_missing_pipe_counts_as_closed(self):
        out_reader = asyncio.StreamReader()
        out_reader.feed_data(b"only stdout\n")
        out_reader.feed_eof()
        process = SimpleNamespace(stdout=out_reader, stderr=None)
        chunks: list[OutputChunk] = []

        await OutputStreamer(make_handle(), process, chunks.append).run()

        assert [c.payload for c in chunks] == ["only stdout\n"]

    @pytest.mark.asyncio
    async def test_cancellation_stops_delivery(self):
        out_reader = asyncio.StreamReader()
        err_reader = asyncio.StreamReader()
        process = SimpleNamespace(stdout=out_reader, stderr=err_reader)
        chunks: list[OutputChunk] = []
        streamer = OutputStreamer(make_handle(), process, chunks.append)

        task = asyncio.create_task(streamer.run())
        out_reader.feed_data(b"first\n")
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        out_reader.feed_data(b"second\n")
        await asyncio.sleep(0.05)
        assert [c.payload for c in chunks] == ["first\n"]
        assert streamer.finished

    @pytest.mark.asyncio
    @pytest.mark.parametrize("encoding", ["hex", "no-such-codec"])
    async def test_unusable_encoding_still_finishes(self, encoding: str, caplog):
        """A decoder that cannot produce text ends the stream instead of hanging it."""
        chunks: list[OutputChunk] = []
        process = make_process(stdout=b"6869\n" * 50, stderr=b"warn\n")
        streamer = OutputStreamer(
            make_handle(), process, chunks.append, read_size=8, encoding=encoding
        )

        await asyncio.wait_for(streamer.run(), timeout=5)

        assert streamer.finished
        assert chunks == []
        assert process.stdout.at_eof()
        assert process.stderr.at_eof()
        assert "Error reading stdout" in caplog.text
