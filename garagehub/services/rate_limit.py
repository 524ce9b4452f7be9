# garagehub/services/rate_limit.py
"""
Fixed-window attempt counter kept in the database, so every worker process
sees the same count.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garagehub import models
from garagehub.exceptions import RateLimitException

logger = logging.getLogger(__name__)


def window_start(now: datetime, window_seconds: int) -> datetime:
    epoch = int(now.timestamp())
    return datetime.fromtimestamp(epoch - epoch % window_seconds)


def _increment(db: Session, key: str, start: datetime) -> int:
    updated = db.query(models.RateLimitCounter).filter(
        models.RateLimitCounter.key == key,
        models.RateLimitCounter.window_start == start
    ).update({models.RateLimitCounter.count: models.RateLimitCounter.count + 1}, synchronize_session=False)

    if not updated:
        try:
            # Savepoint so a racing insert only undoes this statement
            with db.begin_nested():
                db.add(models.RateLimitCounter(key=key, window_start=start, count=1))
        except IntegrityError:
            db.query(models.RateLimitCounter).filter(
                models.RateLimitCounter.key == key,
                models.RateLimitCounter.window_start == start
            ).update({models.RateLimitCounter.count: models.RateLimitCounter.count + 1}, synchronize_session=False)

    return db.query(models.RateLimitCounter.count).filter(
        models.RateLimitCounter.key == key,
        models.RateLimitCounter.window_start == start
    ).scalar()


def hit(db: Session, key: str, limit: int, window_seconds: int) -> int:
    """
    Count one attempt for ``key`` and commit it. Raises RateLimitException once
    the count for the current window goes past ``limit``.
    """
    now = datetime.now()
    start = window_start(now, window_seconds)
    try:
        count = _increment(db, key, start)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if count > limit:
        retry_after = max(1, int((start.timestamp() + window_seconds) - now.timestamp()))
        logger.warning(f"Rate limit exceeded for {key}: {count} attempts")
        raise RateLimitException("Too many attempts. Please try again later.", retry_after=retry_after)
    return count


def reset(db: Session, key: str) -> None:
    db.query(models.RateLimitCounter).filter(
        models.RateLimitCounter.key == key
    ).delete(synchronize_session=False)
    db.commit()
