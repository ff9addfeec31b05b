import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, PersistenceError
from app.models import ActivitySegment, ActivitySession
from app.resolver import WorkHoursResolver
from app.schemas import ActivitySessionRequest
from app.splitter import SessionSplitter
from app.stores import OverrideStore, ScheduleStore, SegmentStore, SessionStore
from app.timeutils import utcnow

logger = logging.getLogger("worktime.ingestion")


class ActivityIngestionService:
    """Stores raw sessions and turns them into segments exactly once."""

    def __init__(self, db: AsyncSession, splitter: Optional[SessionSplitter] = None):
        self.db = db
        self.sessions = SessionStore(db)
        self.segments = SegmentStore(db)
        self.splitter = splitter or SessionSplitter(
            WorkHoursResolver.from_stores(ScheduleStore(db), OverrideStore(db)),
            self.segments,
        )

    async def ingest_session(self, payload: ActivitySessionRequest) -> ActivitySession:
        logger.info(
            "Ingesting activity session for user %s (type: %s, external id: %s)",
            payload.user_id,
            payload.activity_type.value,
            payload.external_record_id,
        )

        if payload.external_record_id is not None:
            existing = await self.sessions.fetch_by_external_record_id(payload.external_record_id)
            if existing is not None:
                logger.warning(
                    "Duplicate session with external id %s, skipping ingestion",
                    payload.external_record_id,
                )
                return existing

        session = ActivitySession(
            **payload.model_dump(),
            id=uuid.uuid4(),
            ingested_at=utcnow(),
            processed=False,
            is_deleted=False,
        )
        try:
            await self.sessions.save(session)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Ingest failed for user %s: %s", payload.user_id, e)
            raise PersistenceError("Database error while saving activity session") from e
        session_id = session.id
        logger.info("Activity session saved with ID: %s", session_id)

        # The raw session is kept even if splitting fails; it stays
        # unprocessed and is picked up by the next reprocess run.
        try:
            await self.process_session(session)
        except Exception as e:
            logger.exception("Error processing session %s: %s", session_id, e)
            await self.db.refresh(session)

        return session

    async def ingest_batch(self, payloads: List[ActivitySessionRequest]) -> List[ActivitySession]:
        logger.info("Ingesting batch of %d activity sessions", len(payloads))
        return [await self.ingest_session(payload) for payload in payloads]

    async def process_session(self, session: ActivitySession) -> List[ActivitySegment]:
        """Split ``session`` and mark it processed in one transaction.

        A session that is already processed is left alone.
        """
        session_id = session.id
        if session.processed:
            logger.debug("Session %s already processed, skipping", session_id)
            return []

        logger.info("Processing session %s for user %s", session_id, session.user_id)
        try:
            segments = await self.splitter.split(session)
            session.processed = True
            await self.sessions.save(session)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to process session %s: %s", session_id, e)
            raise PersistenceError(f"Failed to process session {session_id}") from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Session %s processed, created %d segments", session_id, len(segments))
        return segments

    async def reprocess_unprocessed(self, user_id: Optional[str] = None) -> int:
        """Retry splitting for unprocessed sessions, one user or everyone."""
        scope = f"user {user_id}" if user_id is not None else "all users"
        pending = [s.id for s in await self.sessions.fetch_unprocessed(user_id)]
        logger.info("Found %d unprocessed sessions for %s", len(pending), scope)

        processed = 0
        for session_id in pending:
            try:
                session = await self.sessions.fetch_by_id(session_id)
                await self.process_session(session)
                processed += 1
            except Exception as e:
                logger.exception("Failed to reprocess session %s: %s", session_id, e)

        logger.info("Reprocessed %d/%d sessions for %s", processed, len(pending), scope)
        return processed

    async def get_session(self, session_id: uuid.UUID) -> ActivitySession:
        session = await self.sessions.fetch_by_id(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    async def list_sessions(
        self, user_id: str, start_time: datetime, end_time: datetime
    ) -> List[ActivitySession]:
        return await self.sessions.fetch_by_user_and_start_range(user_id, start_time, end_time)

    async def list_segments(self, session_id: uuid.UUID) -> List[ActivitySegment]:
        await self.get_session(session_id)
        return await self.segments.fetch_by_session(session_id)

    async def delete_session(self, session_id: uuid.UUID) -> None:
        session = await self.get_session(session_id)
        session.soft_delete()
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(f"Failed to delete session {session_id}") from e
        logger.info("Session %s soft deleted", session_id)
