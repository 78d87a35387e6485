"""
Retry policies for record store calls
"""
import logging
import random
import time
from typing import Callable, Optional

from .base import ConflictError, TransientError

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_ATTEMPTS = 10


class RetryPolicy:
    """
    Backoff for the two kinds of store failure.

    Transient failures are retried forever with a growing, jittered delay.
    Conflicts are retried a bounded number of times, refreshing whatever
    state the failed attempt was based on in between.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep,
                 rand: Callable[[], float] = random.random,
                 conflict_attempts: int = DEFAULT_CONFLICT_ATTEMPTS):
        if conflict_attempts < 1:
            raise ValueError("conflict_attempts must be at least 1")
        self.sleep = sleep
        self.rand = rand
        self.conflict_attempts = conflict_attempts

    def next_delay(self, previous: Optional[float] = None) -> float:
        if previous is None:
            return 0.5 + self.rand() / 2
        return previous * 1.1 + self.rand()

    def transient(self, func: Callable, *args, description: str = "store call", **kwargs):
        """Call ``func`` until it stops raising TransientError"""
        delay = None
        while True:
            try:
                return func(*args, **kwargs)
            except TransientError as e:
                delay = self.next_delay(delay)
                logger.info(f"{description} failed ({e}); retrying in {delay:.2f}s")
                self.sleep(delay)

    def conflict(self, attempt: Callable[[], None], refresh: Callable[[], None],
                 description: str = "store update") -> bool:
        """
        Run ``attempt`` until it succeeds or the attempt bound is reached

        Returns:
            True on success, False if every attempt conflicted
        """
        for n in range(1, self.conflict_attempts + 1):
            try:
                attempt()
                return True
            except ConflictError as e:
                logger.debug(f"{description} conflicted on attempt {n}: {e}")
                if n < self.conflict_attempts:
                    refresh()
        logger.error(f"{description} failed after {self.conflict_attempts} conflicting attempts; giving up")
        return False
