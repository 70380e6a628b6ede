"""Async database service with SQLModel and SQLAlchemy 2.0."""

from datetime import datetime
from typing import Any, List, Optional
from sqlmodel import SQLModel, select, col
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from core.config import Settings
from models.telemetry import TelemetrySession
from core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async persistence store for telemetry sessions."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
                future=True
            )

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Telemetry Sessions
    # ============================================================================

    async def insert_telemetry_session(self, record: TelemetrySession) -> bool:
        """Insert a new telemetry session."""
        try:
            async with self.get_session() as session:
                session.add(record)
                await session.commit()
                return True

        except Exception as e:
            logger.error("Failed to insert telemetry session", session_id=record.id, error=str(e))
            return False

    async def save_telemetry_session(self, record: TelemetrySession) -> bool:
        """Persist the current state of a (possibly detached) telemetry session."""
        try:
            async with self.get_session() as session:
                await session.merge(record)
                await session.commit()
                return True

        except Exception as e:
            logger.error("Failed to save telemetry session", session_id=record.id, error=str(e))
            return False

    async def query_telemetry_sessions(self, *predicates: Any, order_by: Any = None) -> List[TelemetrySession]:
        """Get telemetry sessions matching all predicates, oldest first by default."""
        try:
            async with self.get_session() as session:
                stmt = select(TelemetrySession)
                if predicates:
                    stmt = stmt.where(*predicates)
                stmt = stmt.order_by(order_by if order_by is not None else col(TelemetrySession.start_date))
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to query telemetry sessions", error=str(e))
            return []

    async def get_telemetry_session(self, session_id: str) -> Optional[TelemetrySession]:
        """Get telemetry session by ID."""
        try:
            async with self.get_session() as session:
                return await session.get(TelemetrySession, session_id)

        except Exception as e:
            logger.error("Failed to get telemetry session", session_id=session_id, error=str(e))
            return None

    async def delete_telemetry_sessions(self, *predicates: Any) -> int:
        """Delete telemetry sessions matching all predicates. Returns rows deleted."""
        if not predicates:
            raise ValueError("Refusing to delete telemetry sessions without a predicate")
        try:
            async with self.get_session() as session:
                result = await session.execute(delete(TelemetrySession).where(*predicates))
                await session.commit()
                return result.rowcount or 0

        except Exception as e:
            logger.error("Failed to delete telemetry sessions", error=str(e))
            return 0

    async def close_dangling_sessions(self, before: datetime) -> int:
        """Close sessions started before `before` that were never closed.

        The end date is the last received sample, or the start date when
        the session never saw one.
        """
        dangling = await self.query_telemetry_sessions(
            col(TelemetrySession.end_date).is_(None),
            col(TelemetrySession.start_date) < before,
        )
        closed = 0
        for record in dangling:
            record.end_date = record.last_sample_at() or record.start_date
            if await self.save_telemetry_session(record):
                closed += 1
        if closed:
            logger.info("Closed dangling telemetry sessions", count=closed)
        return closed
