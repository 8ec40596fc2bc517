# cipherline_core/retry.py
"""
Shared retry policy for every network-facing call made by KeyStore and
MessageExchange: capped attempts with exponentially growing delay.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar
import time

from cipherline_core.constants import RETRY_MAX_ATTEMPTS, RETRY_BASE_DELAY_S, RETRY_MULTIPLIER
from cipherline_core.errors import StoreUnavailableError
from cipherline_core.logger import get_logger

log = get_logger("cipherline.retry")

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_S
    multiplier: float = RETRY_MULTIPLIER
    retry_on: Tuple[Type[BaseException], ...] = (StoreUnavailableError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")

    def delays(self):
        """Delays slept between attempts, e.g. [1.0, 2.0] for 3 attempts."""
        return [self.base_delay * self.multiplier ** i for i in range(self.max_attempts - 1)]

    def run(self, fn: Callable[..., T], *args, op: str = "", **kwargs) -> T:
        """
        Call `fn` until it succeeds or attempts run out. Only exceptions in
        `retry_on` are retried; anything else propagates immediately. The
        last retryable exception is re-raised once attempts are exhausted.
        """
        op = op or getattr(fn, "__name__", "operation")
        delays = self.delays()
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except self.retry_on as e:
                if attempt == self.max_attempts:
                    log.error(f"[RETRY] {op} failed after {attempt} attempts: {e}")
                    raise
                delay = delays[attempt - 1]
                log.warning(f"[RETRY] {op} attempt {attempt}/{self.max_attempts} failed: {e}; retrying in {delay}s")
                self.sleep(delay)
        raise AssertionError("unreachable")

    @classmethod
    def immediate(cls, max_attempts: int = RETRY_MAX_ATTEMPTS) -> "RetryPolicy":
        """Same attempt budget with no sleeping; for tests and local backends."""
        return cls(max_attempts=max_attempts, base_delay=0.0, sleep=lambda _s: None)
