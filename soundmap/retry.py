from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
import logging
import time

from .errors import BackendUnavailable, SoundMapError

logger = logging.getLogger(__name__)

_TRANSIENT_HINTS = ("timeout", "timed out", "network", "connection")

def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, SoundMapError):
        return False
    if isinstance(exc, (OperationalError, PoolTimeoutError, DisconnectionError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    message = str(exc).lower()
    return any(hint in message for hint in _TRANSIENT_HINTS)

class RetryPolicy:
    """Exponential backoff shared by every backend call."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 0.5, max_delay: float = 10.0,
                 backoff_factor: float = 2.0, retryable=is_retryable, sleep=time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.retryable = retryable
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings, **kwargs):
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            **kwargs,
        )

    def delays(self):
        """Sleep before each retry (one fewer than max_attempts)."""
        return [
            min(self.base_delay * self.backoff_factor ** n, self.max_delay)
            for n in range(self.max_attempts - 1)
        ]

    def call(self, fn, *args, **kwargs):
        delays = self.delays()
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                if attempt == self.max_attempts:
                    logger.error(f"Backend call failed after {attempt} attempts: {e}")
                    raise BackendUnavailable(
                        f"Request failed after {attempt} attempts: {e}"
                    ) from e
                delay = delays[attempt - 1]
                logger.warning(f"🔄 Attempt {attempt}/{self.max_attempts} failed, retrying in {delay:.2f}s: {e}")
                self.sleep(delay)
