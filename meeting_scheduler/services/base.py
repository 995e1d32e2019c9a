import logging
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import ServiceUnavailableError
from meeting_scheduler.core.timezones import scheduling_zone

T = TypeVar("T")

Clock = Callable[[], datetime]


def scheduling_now() -> datetime:
    """Current wall-clock time in the canonical scheduling timezone, as a naive datetime."""
    return datetime.now(scheduling_zone()).replace(tzinfo=None)


class BaseService:
    """Shared plumbing for domain services: session, clock, logging and transactional writes."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock: Clock = clock or scheduling_now
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)

    def log_error(self, message: str, **extra):
        self._logger.error(message, extra=extra or None)

    def run_write(self, operation: Callable[[], T]) -> T:
        """
        Execute `operation` and commit it as one unit.

        Transient storage failures (OperationalError: lock timeouts, dropped
        connections) are retried with exponential backoff; once the attempts are
        exhausted they surface as ServiceUnavailableError. Any other exception
        rolls the session back and propagates unchanged.
        """
        retrying = Retrying(
            stop=stop_after_attempt(settings.scheduling.storage_retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    try:
                        result = operation()
                        self.db.commit()
                        return result
                    except Exception:
                        self.db.rollback()
                        raise
        except OperationalError as e:
            self.log_error(f"Storage failure after retries: {e}")
            raise ServiceUnavailableError() from e
