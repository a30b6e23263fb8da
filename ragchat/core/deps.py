"""
Common dependencies for FastAPI endpoints.
"""
from typing import Generator, Optional

from fastapi import Header
from sqlalchemy.orm import Session

from ragchat.core.exceptions import UnauthorizedError
from ragchat.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the authenticated
    user id in the X-User-Id header and it is trusted as-is.

    Raises:
        UnauthorizedError: The header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()
