import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat those as UTC so they compare with aware ones."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class BaseService:
    """
    Common plumbing for session-bound services.
    Services flush; the operation that owns the unit of work commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra)
