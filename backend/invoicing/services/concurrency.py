# Overview: Transaction boundaries and row locking for ledger operations.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class StorageError(RuntimeError):
    """
    Raised when the store fails to execute or commit a transaction.

    Never retried here: re-issuing a financial mutation blindly is unsafe, so
    the decision belongs to the caller.
    """
    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (its single writer lock
    serializes instead), but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic(session, operation: str):
    """
    Run one logical operation as a single all-or-nothing transaction.

    Commits on success. Any failure rolls the whole unit back; store failures
    are surfaced as StorageError, everything else is re-raised unchanged.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(operation, str(exc)) from exc
    except Exception:
        session.rollback()
        raise
