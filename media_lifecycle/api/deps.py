"""API dependencies."""

from typing import Generator

from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from media_lifecycle.clock import Clock, system_clock
from media_lifecycle.database import SessionLocal
from media_lifecycle.storage.base import BaseObjectStore
from media_lifecycle.storage.factory import get_object_store


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store() -> BaseObjectStore:
    """Get the configured object store."""
    return get_object_store()


def get_clock() -> Clock:
    """Get the time source."""
    return system_clock


def get_actor_id(x_actor_id: str = Header(None)) -> str:
    """Get acting user from header (audit only)."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-ID header is required",
        )
    return x_actor_id
