"""Database connection and session management."""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import UpgraderConfig
from ..utils.logging import LogContext, StateStoreError, get_logger
from .models import Base

logger = get_logger(__name__, LogContext.DATABASE)


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_pre_ping: bool = True,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL.
            echo: Whether to echo SQL statements to stdout.
            pool_pre_ping: Whether to enable pool pre-ping for connection validation.
            pool_size: Number of connections to maintain in the pool.
            max_overflow: Maximum number of overflow connections.
            pool_timeout: Timeout for getting connection from pool.
            pool_recycle: Time in seconds to recycle connections.
        """
        self.database_url = database_url
        self.echo = echo
        self.pool_pre_ping = pool_pre_ping
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.pool_recycle = pool_recycle

        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_config(cls, config: UpgraderConfig) -> "DatabaseManager":
        """Create a manager from loaded configuration."""
        return cls(database_url=config.database_url, echo=config.echo)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """Get the database engine, creating it if necessary."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get the session factory, creating it if necessary."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine)
        return self._session_factory

    def _create_engine(self) -> Engine:
        """Create the database engine with appropriate configuration."""
        engine_kwargs: dict[str, Any] = {
            "echo": self.echo,
            "pool_pre_ping": self.pool_pre_ping,
        }

        if self.is_sqlite:
            self._ensure_sqlite_directory()
            engine_kwargs.update(
                {
                    "poolclass": StaticPool,
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": self.pool_timeout,
                    },
                }
            )
        else:
            engine_kwargs.update(
                {
                    "pool_size": self.pool_size,
                    "max_overflow": self.max_overflow,
                    "pool_timeout": self.pool_timeout,
                    "pool_recycle": self.pool_recycle,
                }
            )

        engine = create_engine(self.database_url, **engine_kwargs)

        if self.is_sqlite:

            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(
                dbapi_connection: Any, connection_record: Any
            ) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
                # pysqlite only opens a transaction before DML; hand BEGIN to
                # SQLAlchemy so DDL rolls back with the rest of a scope
                dbapi_connection.isolation_level = None

            @event.listens_for(engine, "begin")
            def begin_sqlite_transaction(conn: Any) -> None:
                conn.exec_driver_sql("BEGIN")

        logger.debug("Created database engine", url=engine.url.render_as_string())
        return engine

    def _ensure_sqlite_directory(self) -> None:
        prefix = "sqlite:///"
        if not self.database_url.startswith(prefix):
            return
        location = self.database_url[len(prefix) :]
        if location and location != ":memory:":
            Path(location).expanduser().parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create the state tables if they do not exist."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to create state tables: {e}") from e

    def has_state_tables(self) -> bool:
        """Whether the state tables exist, without creating them."""
        try:
            existing = set(inspect(self.engine).get_table_names())
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to inspect state tables: {e}") from e
        return set(Base.metadata.tables) <= existing

    def create_session(self) -> Session:
        """Create a new database session.

        The caller is responsible for the session lifecycle; upgrade runs use
        ScopeProvider instead.
        """
        return self.session_factory()

    def close(self) -> None:
        """Close database connections."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
        self._session_factory = None

    def __enter__(self) -> "DatabaseManager":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context manager and clean up."""
        self.close()
