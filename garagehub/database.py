from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from garagehub.config import get_settings

settings = get_settings()

# Create Engine
# SQLite (tests, local runs) shares one connection across threads
if settings.DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_session():
    """Dependency for FastAPI Routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

get_db = get_session


@contextmanager
def transaction(db: Session):
    """Commit on success, roll everything back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def is_unique_violation(error: IntegrityError, table, index_name: str) -> bool:
    """
    True when ``error`` was raised by the unique index ``index_name`` on ``table``.

    Postgres names the index in its message. SQLite lists the indexed
    columns, or names the index when it covers an expression.
    """
    message = str(error.orig)
    if index_name in message:
        return True
    index = next((i for i in table.indexes if i.name == index_name), None)
    if index is None or not index.columns:
        return False
    columns = ", ".join(f"{table.name}.{column.name}" for column in index.columns)
    return f"UNIQUE constraint failed: {columns}" in message
