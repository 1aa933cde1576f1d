"""Tests for error boundaries and the timing helper."""

from __future__ import annotations

import logging

import pytest

from phraselens.errors import ErrorStats, PatternError, protect, protect_async, timed


def _boom(message: str = "broken") -> int:
    raise RuntimeError(message)


class TestErrorStats:
    def test_record_keeps_newest_first(self) -> None:
        stats = ErrorStats()
        stats.record(ValueError("first"), "a")
        stats.record(KeyError("second"), "b")

        assert stats.count == 2
        assert [e["context"] for e in stats.history] == ["b", "a"]
        assert stats.history[0]["name"] == "KeyError"

    def test_history_is_bounded(self) -> None:
        stats = ErrorStats(max_history=3)
        for i in range(5):
            stats.record(RuntimeError(str(i)), "loop")

        assert stats.count == 5
        assert [e["message"] for e in stats.history] == ["4", "3", "2"]

    def test_empty_message_placeholder(self) -> None:
        stats = ErrorStats()
        stats.record(RuntimeError(), "ctx")
        assert stats.as_dict()["recent"][0]["message"] == "Unknown error"

    def test_reset(self) -> None:
        stats = ErrorStats()
        stats.record(RuntimeError("x"), "ctx")
        stats.reset()
        assert stats.as_dict() == {"count": 0, "recent": []}


class TestProtect:
    """Exceptions become log entries and a fallback value."""

    def test_passes_through_result(self) -> None:
        assert protect(lambda x: x + 1, "add")(1) == 2

    def test_fallback_and_log(self, caplog: pytest.LogCaptureFixture) -> None:
        stats = ErrorStats()
        guarded = protect(_boom, "exploding step", fallback=-1, stats=stats)

        with caplog.at_level(logging.ERROR):
            assert guarded("kaboom") == -1

        assert "Error in exploding step" in caplog.text
        assert stats.count == 1
        assert stats.history[0]["message"] == "kaboom"

    def test_keeps_function_metadata(self) -> None:
        assert protect(_boom, "x").__name__ == "_boom"

    @pytest.mark.asyncio
    async def test_async_variant(self) -> None:
        stats = ErrorStats()

        async def fails() -> str:
            raise RuntimeError("async broke")

        guarded = protect_async(fails, "async step", fallback="safe", stats=stats)

        assert await guarded() == "safe"
        assert stats.history[0]["context"] == "async step"


class TestPatternError:
    def test_message_names_key(self) -> None:
        err = PatternError("cnn", "unbalanced parenthesis")
        assert err.key == "cnn"
        assert str(err) == "Invalid pattern for 'cnn': unbalanced parenthesis"


class TestTimed:
    def test_logs_duration_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="phraselens.errors"), timed("sweep"):
            pass
        assert "[TIMING] sweep took" in caplog.text

    def test_logs_even_when_block_raises(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with (
            caplog.at_level(logging.DEBUG, logger="phraselens.errors"),
            pytest.raises(ValueError),
            timed("failing"),
        ):
            raise ValueError("inside")
        assert "[TIMING] failing took" in caplog.text
