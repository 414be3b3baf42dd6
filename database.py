"""
Database Manager for the local Champion Cart store

Handles:
- Engine setup (SQLite by default, any SQLAlchemy URL works)
- Schema creation
- Transactional sessions
- Health checks
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages the local database connection and schema initialization"""

    def __init__(self, db_url: str, echo: bool = False):
        """
        Initialize database manager.

        Args:
            db_url: SQLAlchemy URL (e.g., sqlite:///champion_cart.db)
            echo: Enable SQL logging if True
        """
        self.db_url = db_url

        if db_url.startswith("sqlite"):
            # In-memory SQLite lives inside a single connection
            pool_kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in db_url or db_url.rstrip("/") == "sqlite:":
                pool_kwargs["poolclass"] = StaticPool
        else:
            pool_kwargs = {
                "poolclass": QueuePool,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_pre_ping": True,  # Verify connections are alive
            }

        self.engine = create_engine(db_url, echo=echo, **pool_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        logger.info(f"DatabaseManager initialized with {db_url.split('@')[-1]}")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DatabaseManager":
        """Manager for CHAMPION_CART_DB_URL with its tables created"""
        settings = settings or get_settings()
        manager = cls(settings.db_url)
        manager.init_db()
        return manager

    def init_db(self) -> None:
        """Create the cart tables (idempotent)."""
        from models import Base

        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error(f"✗ Failed to create cart tables: {e}")
            raise

        logger.info(f"✓ Cart tables ready: {sorted(Base.metadata.tables)}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        One transaction: committed when the block exits cleanly,
        rolled back (and the error re-raised) otherwise.

        Usage:
            with db_manager.session_scope() as session:
                session.add(record)
        """
        try:
            with self.SessionLocal.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"✗ Cart store transaction rolled back: {e}")
            raise

    def health_check(self) -> bool:
        """
        True when the database answers and the cart tables exist.
        """
        from models import Base

        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                present = set(inspect(conn).get_table_names())
        except SQLAlchemyError as e:
            logger.error(f"✗ Cart store unreachable: {e}")
            return False

        missing = set(Base.metadata.tables) - present
        if missing:
            logger.warning(f"Cart store is missing tables: {sorted(missing)}")
            return False
        return True

    def close(self) -> None:
        """Dispose of the engine's connections"""
        self.engine.dispose()
        logger.info("✓ Cart store connections closed")
