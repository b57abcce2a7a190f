"""
Transaction boundary for scheduling writes.

Every write opens with an UPDATE on the owning company row (`queue_version + 1`). That
statement takes the row's write lock, so writers for one room run one at a time while
other rooms proceed untouched. It leaves `updated_at` as is; that column tracks
administrative edits only. Lock timeouts and serialization failures are retried a
bounded number of times; unique-index violations surface as conflicts.
"""
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import QUEUE_TX_MAX_RETRIES, QUEUE_TX_RETRY_BACKOFF_S
from ..models.company import Company
from ..models.interview import Interview
from ..utils.error_handlers import AppError, ConflictError, DatabaseError, get_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lock_company(db: Session, company_id: int) -> bool:
    """Take the room lock for `company_id`. False when the company does not exist."""
    result = db.execute(
        update(Company)
        .where(Company.id == int(company_id))
        .values(queue_version=Company.queue_version + 1, updated_at=Company.updated_at)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def lock_company_of_interview(db: Session, interview_id: int) -> bool:
    """Take the room lock of the company owning `interview_id` in a single statement."""
    owner = select(Interview.company_id).where(Interview.id == int(interview_id)).scalar_subquery()
    result = db.execute(
        update(Company)
        .where(Company.id == owner)
        .values(queue_version=Company.queue_version + 1, updated_at=Company.updated_at)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def run_in_transaction(
    db: Session,
    fn: Callable[[], T],
    *,
    operation: str,
    conflict_message: str | None = None,
    max_retries: int | None = None,
    backoff_s: float | None = None,
) -> T:
    """
    Run `fn` and commit, all or nothing.

    `fn` must take its lock first and re-read everything it validates; on retry it runs
    again from scratch against a rolled-back session.
    """
    retries = QUEUE_TX_MAX_RETRIES if max_retries is None else max_retries
    backoff = QUEUE_TX_RETRY_BACKOFF_S if backoff_s is None else backoff_s
    attempt = 0
    while True:
        attempt += 1
        try:
            result = fn()
            db.commit()
            return result
        except AppError:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            logger.info("%s rejected by a uniqueness constraint: %s", operation, getattr(e, "orig", e))
            raise ConflictError(conflict_message or get_error_message("busy_retry"))
        except OperationalError as e:
            db.rollback()
            if attempt > retries:
                logger.warning("%s gave up after %d attempts: %s", operation, attempt, getattr(e, "orig", e))
                raise ConflictError(get_error_message("busy_retry"), details={"attempts": attempt})
            logger.warning("%s hit a transient store failure (attempt %d), retrying", operation, attempt)
            time.sleep(backoff * attempt)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("%s failed: %s", operation, e)
            raise DatabaseError(get_error_message("database_error"))
