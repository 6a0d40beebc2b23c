"""Unit-of-work helper for mutating requests.

Services only flush; the router owns the transaction boundary. Any failure
inside the block rolls back every write made in it, so an operation is
either fully applied or not at all.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from careteam.core.exceptions import AccessControlError, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session, operation: str) -> Iterator[Session]:
    """Commit on success; roll back on failure.

    Domain errors propagate unchanged. Backing-store faults are logged and
    re-raised as StorageError; they are not retried here.
    """
    try:
        yield db
        db.commit()
    except AccessControlError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure during %s", operation)
        raise StorageError() from exc
    except Exception:
        db.rollback()
        raise
