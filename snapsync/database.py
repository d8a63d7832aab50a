"""Database connection and initialization."""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from snapsync.config import settings

# Import all models so SQLModel registers them
import snapsync.models  # noqa: F401


def _enable_foreign_keys(dbapi_conn, connection_record) -> None:
    # Per-connection setting; applied to every pooled connection
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_path: Path | None = None) -> Engine:
    """Build the SQLite engine backing the document store."""
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        echo=settings.debug,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


def init_db(engine: Engine) -> None:
    """Create all tables and enable WAL mode."""
    SQLModel.metadata.create_all(engine)

    # Enable WAL mode for better concurrent read performance
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()


def open_session(engine: Engine) -> Session:
    return Session(engine, expire_on_commit=False)
