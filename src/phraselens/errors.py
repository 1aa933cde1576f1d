"""Error boundaries and timing helpers.

Nothing in the engine is allowed to raise into its host.  Callbacks that run
on behalf of the host (mutation handling, per-node rewriting) are wrapped with
``protect`` so a failure is logged, counted and replaced by a fallback value.
"""

from __future__ import annotations

import functools
import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Iterator

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class PhraseLensError(Exception):
    """Base class for errors raised by phraselens."""


class PatternError(ValueError, PhraseLensError):
    """A registry entry could not be compiled."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Invalid pattern for {key!r}: {reason}")


@dataclass
class ErrorStats:
    """Running count of caught errors with a short history (newest first)."""

    max_history: int = 10
    count: int = 0
    history: deque[dict[str, str]] = field(default_factory=deque)

    def record(self, error: BaseException, context: str) -> None:
        self.count += 1
        self.history.appendleft(
            {
                "message": str(error) or "Unknown error",
                "name": type(error).__name__,
                "context": context,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        while len(self.history) > self.max_history:
            self.history.pop()

    def reset(self) -> None:
        self.count = 0
        self.history.clear()

    def as_dict(self) -> dict[str, Any]:
        return {"count": self.count, "recent": list(self.history)}


def protect(
    fn: Callable[P, R],
    context: str,
    fallback: Any = None,
    *,
    stats: ErrorStats | None = None,
) -> Callable[P, R]:
    """Wrap *fn* so exceptions are logged and *fallback* is returned instead.

    Args:
        fn: The callable to guard.
        context: Short description used in the log message.
        fallback: Value returned when *fn* raises.
        stats: Optional collector that records every caught error.
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Error in %s", context)
            if stats is not None:
                stats.record(exc, context)
            return fallback

    return wrapper


def protect_async(
    fn: Callable[P, Awaitable[R]],
    context: str,
    fallback: Any = None,
    *,
    stats: ErrorStats | None = None,
) -> Callable[P, Coroutine[Any, Any, R]]:
    """Coroutine counterpart of ``protect``."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Error in %s", context)
            if stats is not None:
                stats.record(exc, context)
            return fallback

    return wrapper


@contextmanager
def timed(operation: str) -> Iterator[None]:
    """Log how long the enclosed block took, at DEBUG level."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("[TIMING] %s took %.2f ms", operation, elapsed_ms)
