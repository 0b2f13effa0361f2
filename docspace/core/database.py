from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from docspace.core.config import get_settings

settings = get_settings()

engine = create_engine(
    str(settings.database_url),
    echo=settings.database_echo,
    future=True,
    pool_pre_ping=True,
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a DB session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def serializable_session() -> Generator[Session, None, None]:
    """
    Context manager for lifecycle operations that must run as one
    serializable unit (document create, move, share).

    Usage (outside of FastAPI dependencies):
        with serializable_session() as db:
            create_document(db, author_id=..., payload=...)

    The services commit their own work; this wrapper rolls back whatever
    is left pending when the block raises.
    """
    db = SessionLocal()
    try:
        db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
