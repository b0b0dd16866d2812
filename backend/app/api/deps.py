"""FastAPI dependencies: DB session and the shared service container."""
from typing import Generator

from sqlalchemy.orm import Session

from app.container import Services, get_services
from app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_container() -> Services:
    """Services built at startup (overridden in tests)."""
    return get_services()
