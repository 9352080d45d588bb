import logging
from contextlib import contextmanager
from typing import Iterator, Optional
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import Config
from models import Base

logger = logging.getLogger(__name__)

class DatabaseService:
    """Database service with connection pooling and session management"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or Config.DATABASE_URL

        self.pool_size = Config.DB_POOL_SIZE
        self.max_overflow = Config.DB_MAX_OVERFLOW
        self.pool_timeout = Config.DB_POOL_TIMEOUT
        self.pool_recycle = Config.DB_POOL_RECYCLE

        self.engine = None
        self.SessionLocal = None
        self._setup_engine()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _setup_engine(self):
        """Setup SQLAlchemy engine with connection pooling"""
        try:
            if self.is_sqlite:
                self.engine = create_engine(
                    self.database_url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=False
                )
                event.listen(self.engine, "connect", self._set_sqlite_pragma)
                logger.info(f"SQLite database engine created for {self.database_url}")
            else:
                self.engine = create_engine(
                    self.database_url,
                    poolclass=QueuePool,
                    pool_size=self.pool_size,
                    max_overflow=self.max_overflow,
                    pool_timeout=self.pool_timeout,
                    pool_recycle=self.pool_recycle,
                    pool_pre_ping=True,
                    echo=False
                )
                logger.info(f"Database engine created with pool_size={self.pool_size}, max_overflow={self.max_overflow}")

            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

            try:
                Base.metadata.create_all(self.engine)
                logger.info("Database tables ensured via SQLAlchemy metadata")
            except Exception as table_error:
                logger.error(f"Failed to create database tables: {table_error}")
                raise

        except Exception as e:
            logger.error(f"Failed to create database engine: {e}")
            raise

    @staticmethod
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        """Enforce foreign keys on SQLite connections"""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error"""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def reset_schema(self):
        """Drop and recreate every table"""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)
        logger.info("Database schema reset")

    def get_connection_info(self) -> dict:
        """Get database connection pool information"""
        if not self.engine:
            return {"status": "disconnected"}

        if self.is_sqlite:
            return {"status": "connected", "dialect": "sqlite"}

        try:
            pool = self.engine.pool
            return {
                "status": "connected",
                "dialect": self.engine.dialect.name,
                "pool_size": pool.size(),
                "checked_in_connections": pool.checkedin(),
                "checked_out_connections": pool.checkedout(),
                "overflow_connections": pool.overflow(),
                "pool_timeout": self.pool_timeout,
                "pool_recycle": self.pool_recycle
            }
        except Exception as e:
            logger.error(f"Failed to get connection info: {e}")
            return {"status": "error", "error": str(e)}

    def test_connection(self) -> bool:
        """Test database connectivity"""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1")).fetchone()
                return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

db_service = None

def get_database_service() -> DatabaseService:
    """Get or create the global database service instance"""
    global db_service
    if db_service is None:
        db_service = DatabaseService()
    return db_service
