import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from launchpad.core.models.base import Base

logger = logging.getLogger(__name__)

class DatabaseConnectionManager:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker = None
        self._lock = asyncio.Lock()
        self.connection_retries = 3
        self.retry_delay = 1.0
        self.pool_recycle = 1800  # 30 minutes
        self.pool_pre_ping = True

    @property
    def is_sqlite(self) -> bool:
        return self._get_async_db_url().startswith('sqlite')

    async def init(self):
        """Initialize database connection"""
        if self._engine is not None:
            return

        async with self._lock:
            if self._engine is not None:  # Double-check under lock
                return

            try:
                self._engine = create_async_engine(
                    self._get_async_db_url(),
                    **self._engine_options()
                )

                self._sessionmaker = async_sessionmaker(
                    self._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                # Test connection
                async with self._sessionmaker() as session:
                    await session.execute(text("SELECT 1"))

                logger.info("Database connection initialized successfully")

            except Exception as e:
                logger.error(f"Failed to initialize database: {str(e)}")
                await self.cleanup()
                raise

    def _engine_options(self) -> dict:
        if self.is_sqlite:
            # In-memory SQLite needs a single shared connection; a checkin must
            # not roll back work another session has pending on it
            return {
                "poolclass": StaticPool,
                "pool_reset_on_return": None,
                "connect_args": {"check_same_thread": False},
                "echo": False,
            }
        return {
            "pool_pre_ping": self.pool_pre_ping,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": self.pool_recycle,
            "echo": False,
            "connect_args": {
                "statement_cache_size": 0,
                "command_timeout": 60,
                "server_settings": {
                    "timezone": "UTC",
                    "application_name": "launchpad"
                }
            }
        }

    def _get_async_db_url(self) -> str:
        """Get async database URL with correct driver"""
        db_url = self.database_url

        if db_url.startswith('postgresql://'):
            return db_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        elif db_url.startswith('postgres://'):
            return db_url.replace('postgres://', 'postgresql+asyncpg://', 1)
        elif db_url.startswith('postgresql+asyncpg://') or db_url.startswith('sqlite+aiosqlite://'):
            return db_url
        elif db_url.startswith('sqlite://'):
            return db_url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
        else:
            raise ValueError(
                "Unsupported database URL format. "
                "Use PostgreSQL (asyncpg) or SQLite (aiosqlite)."
            )

    async def create_all(self):
        """Create all tables registered on the declarative base"""
        await self.init()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self):
        await self.init()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def cleanup(self):
        """Cleanup database connections"""
        if self._engine is not None:
            try:
                await self._engine.dispose()
            except Exception as e:
                logger.error(f"Error during database cleanup: {str(e)}")
            finally:
                self._engine = None
                self._sessionmaker = None

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session with automatic retry on connection errors"""
        if self._sessionmaker is None:
            await self.init()

        session = None
        attempt = 0
        last_error = None

        while attempt < self.connection_retries:
            try:
                session = self._sessionmaker()
                # Test the connection
                await session.connection()
                break
            except SQLAlchemyError as e:
                last_error = e
                if session:
                    await session.close()
                    session = None
                attempt += 1
                if attempt < self.connection_retries:
                    logger.warning(
                        f"Database connection attempt {attempt} failed: {str(e)}. "
                        f"Retrying in {self.retry_delay * attempt} seconds..."
                    )
                    await asyncio.sleep(self.retry_delay * attempt)
                else:
                    logger.error(f"All database connection attempts failed: {str(e)}")

        if session is None:
            raise last_error if last_error else RuntimeError("Failed to establish database connection")

        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error occurred: {str(e)}")
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @property
    def engine(self) -> AsyncEngine:
        """Get database engine"""
        if self._engine is None:
            raise RuntimeError("Database not initialized")
        return self._engine
