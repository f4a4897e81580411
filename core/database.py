"""
Database setup and connection management.

This module handles:
- SQLAlchemy engine creation
- Session management
- Connection pooling configuration
- Database initialization
- Transaction scoping for multi-step mutations
"""

from contextlib import contextmanager
from typing import Generator, Iterator, Optional
import os
import urllib.parse

from sqlalchemy import create_engine, inspect, pool, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from loguru import logger
import dotenv

from core.exceptions import ConflictError, StoreError
from core.models import Base
from core.observability import track_operation

dotenv.load_dotenv()


class DatabaseConfig:
    """Configuration for database connections"""

    def __init__(self, url: Optional[str] = None):
        self.connection_string = url or os.getenv(
            "DATABASE_URL", "sqlite:///./docvault.db"
        )

        # Connection pooling
        self.pool_size = int(os.getenv("DB_POOL_SIZE", "10"))
        self.max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "20"))
        self.pool_recycle = int(os.getenv("DB_POOL_RECYCLE", "1500"))

        # Echo SQL for debugging (set False in production)
        self.echo = os.getenv("DB_ECHO", "False").lower() == "true"

        logger.info(f"Database config: pool_size={self.pool_size}, max_overflow={self.max_overflow}")


class DatabaseManager:
    """
    Manages database connections and session lifecycle.

    Usage:
        DatabaseManager.initialize()
        with DatabaseManager.session_scope() as session:
            ...
    """

    _engine = None
    _SessionLocal = None
    _db_type = None

    @classmethod
    def initialize(cls, config: DatabaseConfig = None):
        """Initialize database engine and session factory, then create tables."""
        if cls._engine is not None:
            logger.warning("DatabaseManager already initialized")
            return

        if config is None:
            config = DatabaseConfig()

        connection_uri = cls._build_connection_uri(config.connection_string)
        cls._engine = cls._create_engine(connection_uri, config)
        cls._db_type = cls._engine.dialect.name
        cls._SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=cls._engine,
            expire_on_commit=False,
        )

        cls.create_tables()
        logger.info(f"✓ Database initialized ({cls._db_type})")

    @classmethod
    def _create_engine(cls, connection_uri: str, config: DatabaseConfig):
        """Create SQLAlchemy engine with pooling suited to the backend"""
        if connection_uri.startswith("sqlite"):
            kwargs = {
                "echo": config.echo,
                "connect_args": {"check_same_thread": False},
            }
            # One shared connection keeps an in-memory database alive across threads
            if connection_uri in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = pool.StaticPool
            return create_engine(connection_uri, **kwargs)

        return create_engine(
            connection_uri,
            poolclass=pool.QueuePool,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=True,
            echo=config.echo,
        )

    @classmethod
    def _build_connection_uri(cls, connection_string: str) -> str:
        """
        Build SQLAlchemy connection URI from connection string.
        Accepts SQLAlchemy URLs as-is and converts Azure SQL
        ``Server=...;Initial Catalog=...`` strings to pymssql URLs.
        """
        if not connection_string:
            raise ValueError("Connection string is empty")

        if "://" in connection_string:
            return connection_string

        parts = {}
        for part in connection_string.split(';'):
            if '=' in part:
                key, value = part.split('=', 1)
                parts[key.strip()] = value.strip()

        required = ['Server', 'Initial Catalog', 'User ID', 'Password']
        missing = [f for f in required if f not in parts]

        if missing:
            raise ValueError(f"Invalid connection string: missing {missing}")

        server = parts['Server'].replace('tcp:', '').split(',')[0]
        database = parts['Initial Catalog']
        user = parts['User ID']
        password_encoded = urllib.parse.quote_plus(parts['Password'])

        return f"mssql+pymssql://{user}:{password_encoded}@{server}:1433/{database}"

    @classmethod
    def create_tables(cls):
        """Create all tables if they don't exist (IDEMPOTENT)"""
        if cls._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        inspector = inspect(cls._engine)
        existing_tables = set(inspector.get_table_names())

        # Dependencies first
        for table_name in ("users", "files"):
            table = Base.metadata.tables[table_name]
            if table_name not in existing_tables:
                table.create(cls._engine, checkfirst=True)
                logger.info(f"✓ Created table: {table_name}")
            else:
                logger.debug(f"Table already exists: {table_name}")

    @classmethod
    def drop_tables(cls):
        """Drop all tables. USE WITH CAUTION (for testing only)."""
        if cls._engine is None:
            raise RuntimeError("Database not initialized")

        logger.warning("DROPPING ALL TABLES - THIS IS DESTRUCTIVE")
        Base.metadata.drop_all(bind=cls._engine)

    @classmethod
    def dispose(cls):
        """Close pooled connections and forget the engine."""
        if cls._engine is not None:
            cls._engine.dispose()
        cls._engine = None
        cls._SessionLocal = None
        cls._db_type = None

    @classmethod
    def new_session(cls) -> Session:
        if cls._SessionLocal is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return cls._SessionLocal()

    @classmethod
    @contextmanager
    def session_scope(cls) -> Iterator[Session]:
        """Session for scripts and startup tasks; commits on success."""
        session = cls.new_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @classmethod
    def health_check(cls) -> bool:
        """Check if database is healthy"""
        if cls._SessionLocal is None:
            return False
        session = cls._SessionLocal()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"❌ Database health check failed: {e}")
            return False
        finally:
            session.close()

    @classmethod
    def get_engine(cls):
        """Get the SQLAlchemy engine (for migrations, admin tasks)"""
        if cls._engine is None:
            raise RuntimeError("Database not initialized")
        return cls._engine

    @classmethod
    def is_using_sqlite(cls) -> bool:
        return cls._db_type == "sqlite"


# ============ FastAPI Dependencies ============

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Services commit their own transactions; anything left pending when the
    request ends is rolled back.
    """
    session = DatabaseManager.new_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@contextmanager
def transaction(db: Session, operation: str) -> Iterator[Session]:
    """
    Run one mutation as a single transaction tagged with ``operation``.

    Commits once at the end. Unique-constraint violations surface as
    ConflictError, any other persistence failure as StoreError; both roll back.
    """
    try:
        with track_operation(operation, error_types=(SQLAlchemyError,)):
            yield db
            db.commit()
    except IntegrityError as e:
        db.rollback()
        if "unique" in str(e.orig).lower() or "duplicate" in str(e.orig).lower():
            logger.warning(f"[{operation}] Unique constraint violated: {e.orig}")
            raise ConflictError("Resource already exists") from e
        logger.error(f"[{operation}] Integrity error: {e.orig}")
        raise StoreError(operation, e) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[{operation}] Store error: {type(e).__name__}: {e}")
        raise StoreError(operation, e) from e
    except Exception:
        db.rollback()
        raise
