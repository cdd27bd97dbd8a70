from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from gridledger.db.session import SessionLocal

DEFAULT_AUTHOR_ID = "SYSTEM"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_author_id(x_author_id: str | None = Header(default=None, max_length=100)) -> str:
    """Who is making the change. Identity is asserted by the caller, not authenticated here."""
    if x_author_id is None or not x_author_id.strip():
        return DEFAULT_AUTHOR_ID
    return x_author_id.strip()
