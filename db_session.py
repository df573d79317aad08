"""Database session helpers."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.base import SessionLocal


@contextmanager
def get_db() -> Iterator[Session]:
    """Yields a ledger session; a failed transaction is rolled back before close."""
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()
