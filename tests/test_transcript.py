"""
Tests for the transcript sink
"""

import pytest

from src.agents.orchestrator import TranscriptSink


class TestTranscriptSink:

    async def test_finalize_persists_concatenation_once(self):
        written = []

        async def persist(text):
            written.append(text)

        sink = TranscriptSink(persist, "t-1")
        for chunk in ["a", "b", "c"]:
            sink.append(chunk)

        assert await sink.finalize() is True
        assert await sink.finalize() is False
        assert written == ["abc"]

    async def test_append_after_finalize_raises(self):
        async def persist(text):
            return None

        sink = TranscriptSink(persist, "t-1")
        await sink.finalize()

        with pytest.raises(RuntimeError):
            sink.append("late")

    async def test_persistence_failure_is_swallowed(self):
        async def persist(text):
            raise OSError("disk full")

        sink = TranscriptSink(persist, "t-1")
        sink.append("partial")

        assert await sink.finalize() is False
        assert sink.finalized is True
