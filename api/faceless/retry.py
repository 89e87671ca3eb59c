import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from faceless.config import settings
from faceless.utils.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """In-place retries for a single step call.

    ``max_attempts=1`` means the first failure is final. Delays grow
    exponentially and are capped so one invocation stays inside its budget.
    """

    max_attempts: int = 1
    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: float = 8.0
    retry_on: Tuple[Type[BaseException], ...] = field(default=(Exception,))

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(max_attempts=max(1, settings.step_max_attempts), initial_delay=settings.step_retry_backoff_sec)

    def delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)

    def call(self, fn: Callable[[], T], label: str = "call", sleep: Optional[Callable[[float], None]] = None) -> T:
        sleep = sleep or time.sleep
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except self.retry_on as exc:
                if attempt + 1 >= self.max_attempts:
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    label, exc, wait, attempt + 1, self.max_attempts,
                )
                sleep(wait)
        raise RuntimeError("unreachable")
