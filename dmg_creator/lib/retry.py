from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from ..errors import RetryExhaustedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinearBackoff:
    """Delay before attempt n+1 is ``initial_delay + n * increment`` seconds."""

    initial_delay: float = 0.1
    increment: float = 1.0
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.increment < 0:
            raise ValueError("backoff delays must be >= 0")

    def delays(self) -> Iterator[float]:
        for n in range(self.max_attempts - 1):
            yield self.initial_delay + n * self.increment


def wait_until(
    predicate: Callable[[], bool],
    *,
    backoff: LinearBackoff,
    what: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll ``predicate`` until it returns True; return the attempt count.

    An OSError raised by the predicate counts as a failed attempt.
    Raises RetryExhaustedError once ``backoff.max_attempts`` checks failed.
    """

    delays = backoff.delays()
    last_error: Optional[BaseException] = None
    attempt = 0

    while True:
        attempt += 1
        try:
            if predicate():
                logger.debug("%s observed after %d attempt(s)", what, attempt)
                return attempt
            last_error = None
        except OSError as e:
            last_error = e

        delay = next(delays, None)
        if delay is None:
            break
        logger.debug("waiting %.2fs for %s (attempt %d/%d)", delay, what, attempt, backoff.max_attempts)
        sleep(delay)

    raise RetryExhaustedError(what, attempts=attempt, last_error=last_error)
