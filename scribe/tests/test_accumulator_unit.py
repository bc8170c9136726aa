import pytest

from scribe.asr.chunk_buffer import ChunkAccumulator
from scribe.asr.transcript_log import TranscriptLog, join_transcript


def test_flush_returns_chunks_in_arrival_order_and_resets() -> None:
    buffer = ChunkAccumulator()
    buffer.append(b"ab")
    buffer.append(b"")
    buffer.append(b"cd")

    assert buffer.pending_chunks == 3
    assert buffer.pending_bytes == 4
    assert buffer.flush() == b"abcd"
    assert buffer.is_empty()
    assert buffer.pending_bytes == 0
    assert buffer.flush() == b""


def test_buffer_limit_rejects_overflowing_chunk() -> None:
    buffer = ChunkAccumulator(max_bytes=4)
    buffer.append(b"abc")

    assert buffer.would_overflow(b"de") is True
    with pytest.raises(OverflowError):
        buffer.append(b"de")
    assert buffer.pending_bytes == 3
    buffer.append(b"d")
    assert buffer.flush() == b"abcd"


def test_non_positive_limit_means_unbounded() -> None:
    assert ChunkAccumulator(max_bytes=0).max_bytes is None
    assert ChunkAccumulator(max_bytes=-5).would_overflow(b"x" * 1024) is False


def test_transcript_log_joins_successful_segments_only() -> None:
    log = TranscriptLog()
    first = log.append_text("  Patient reports headache ", audio_bytes=10, provider_name="mock")
    failed = log.append_failure("HTTP_500", "upstream down", audio_bytes=4, provider_name="openai")
    last = log.append_text("since Monday.")

    assert first.segment.index == 0
    assert first.segment.text == "Patient reports headache"
    assert failed.segment.ok is False
    assert failed.segment.error_code == "HTTP_500"
    assert failed.transcript_text == "Patient reports headache"
    assert last.segment.index == 2
    assert log.text == "Patient reports headache since Monday."
    assert len(log) == 3
    assert log.failed_count == 1


def test_transcript_log_segments_are_a_copy() -> None:
    log = TranscriptLog()
    log.append_text("hello")
    log.segments.clear()
    assert len(log) == 1


def test_join_transcript_skips_empty_texts() -> None:
    assert join_transcript(["", "hello", "", "world"]) == "hello world"
    assert join_transcript([]) == ""


def test_transcript_log_keeps_inner_spacing_of_segments() -> None:
    log = TranscriptLog()
    first = log.append_text("  a  b\n")
    log.append_text("c")

    assert first.segment.text == "a  b"
    assert log.text == "a  b c"
