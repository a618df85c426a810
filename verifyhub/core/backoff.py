"""Retry schedule helpers for outbound explorer calls."""

from __future__ import annotations

from collections.abc import Iterator
from random import SystemRandom

_rng = SystemRandom()


def retry_schedule(
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    factor: float = 2.0,
    max_delay: float = 5.0,
    jitter: float = 0.2,
) -> Iterator[tuple[int, float]]:
    """Yield ``(attempt, delay_after_failure)`` pairs.

    ``attempt`` is 1-based. The delay is how long to wait before the next
    attempt if this one fails; it is ``0.0`` on the final attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        if attempt == max_attempts:
            yield attempt, 0.0
            return
        jitter_offset = _rng.uniform(0, delay * jitter) if jitter > 0 else 0.0
        yield attempt, min(delay + jitter_offset, max_delay)
        delay = min(delay * factor, max_delay)
