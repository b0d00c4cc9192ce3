"""Engine and session handling for the task store database"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from ..errors import StoreUnavailableError
from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./benchgate.db"


class DatabaseConnection:
    """
    Owns the SQLAlchemy engine for task records and assessment history.

    Connections are not pooled: the gatekeeper reaches the database from
    worker threads (``asyncio.to_thread``) and sweeps are short-lived.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        """
        Args:
            database_url: SQLAlchemy URL; ``DATABASE_URL`` or a local SQLite file when omitted
            echo: Log emitted SQL
        """
        self.url = make_url(database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL)

        connect_args = {}
        if self.url.get_backend_name() == "sqlite":
            connect_args["check_same_thread"] = False

        self.engine = create_engine(self.url, poolclass=NullPool, echo=echo, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        logger.info(f"Task database: {self.safe_url}")

    @property
    def safe_url(self) -> str:
        """URL with the password masked, for logs and reports"""
        return self.url.render_as_string(hide_password=True)

    def create_tables(self):
        """Create task and history tables that do not exist yet"""
        Base.metadata.create_all(bind=self.engine, checkfirst=True)
        tables = sorted(inspect(self.engine).get_table_names())
        logger.info(f"Task database ready with tables: {', '.join(tables)}")

    def check_connection(self):
        """
        Fail fast before a sweep when the database is unreachable.

        Raises:
            StoreUnavailableError: the database did not answer
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Task database unreachable at {self.safe_url}: {e}") from e

    @contextmanager
    def get_session(self, commit: bool = False) -> Generator[Session, None, None]:
        """
        Session scoped to one store operation.

        Args:
            commit: Commit when the block exits without error

        Usage:
            with db.get_session(commit=True) as session:
                session.add(record)
        """
        session = self.SessionLocal()
        try:
            yield session
            if commit:
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Task database session rolled back: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.engine.dispose()
        logger.info(f"Task database closed: {self.safe_url}")
