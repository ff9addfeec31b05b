import logging
import uuid
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.aggregator import DailyAggregator
from app.config import settings
from app.database import Base, engine, get_db
from app.errors import InvalidStateError, NotFoundError, PersistenceError
from app.ingestion import ActivityIngestionService
from app.models import SegmentType
from app.schedules import ScheduleManagementService
from app.schemas import (
    ActivitySegmentResponse,
    ActivitySessionRequest,
    ActivitySessionResponse,
    BatchIngestResponse,
    DailyAggregationResponse,
    RecomputeRangeRequest,
    RecomputeRangeResponse,
    ReprocessResponse,
    ScheduleOverrideRequest,
    ScheduleOverrideResponse,
    WorkingScheduleRequest,
    WorkingScheduleResponse,
)
from app.stores import SegmentStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("worktime.api")

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="Work-Time Activity Analytics")


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------
async def verify_api_key(x_api_key: str = Header(...)):
    if x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API Key",
        )
    return x_api_key


# ---------------------------------------------------------------------------
# Service dependencies
# ---------------------------------------------------------------------------
def get_ingestion_service(db: AsyncSession = Depends(get_db)) -> ActivityIngestionService:
    return ActivityIngestionService(db)


def get_schedule_service(db: AsyncSession = Depends(get_db)) -> ScheduleManagementService:
    return ScheduleManagementService(db)


def get_aggregator(db: AsyncSession = Depends(get_db)) -> DailyAggregator:
    return DailyAggregator(db)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning("Not found: %s", exc)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    logger.warning("Invalid state: %s", exc)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error"},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Activity ingestion
# ---------------------------------------------------------------------------
@app.post(
    "/v1/activity/sessions",
    response_model=ActivitySessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_session(
    payload: ActivitySessionRequest,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    return await service.ingest_session(payload)


@app.post(
    "/v1/activity/sessions/batch",
    response_model=BatchIngestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_batch(
    payload: List[ActivitySessionRequest],
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    sessions = await service.ingest_batch(payload)
    return BatchIngestResponse(
        total_ingested=len(sessions),
        sessions=[ActivitySessionResponse.model_validate(s) for s in sessions],
    )


@app.post("/v1/activity/sessions/reprocess", response_model=ReprocessResponse)
async def reprocess_sessions(
    user_id: Optional[str] = None,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    count = await service.reprocess_unprocessed(user_id)
    return ReprocessResponse(sessions_reprocessed=count)


@app.get("/v1/activity/sessions", response_model=List[ActivitySessionResponse])
async def list_sessions(
    user_id: str,
    start_time: datetime,
    end_time: datetime,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    return await service.list_sessions(user_id, start_time, end_time)


@app.get("/v1/activity/sessions/{session_id}", response_model=ActivitySessionResponse)
async def get_session(
    session_id: uuid.UUID,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    return await service.get_session(session_id)


@app.get(
    "/v1/activity/sessions/{session_id}/segments",
    response_model=List[ActivitySegmentResponse],
)
async def list_session_segments(
    session_id: uuid.UUID,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    return await service.list_segments(session_id)


@app.delete("/v1/activity/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: uuid.UUID,
    service: ActivityIngestionService = Depends(get_ingestion_service),
    _: str = Depends(verify_api_key),
):
    await service.delete_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/v1/activity/segments", response_model=List[ActivitySegmentResponse])
async def list_segments_by_date(
    activity_date: date,
    segment_type: Optional[SegmentType] = None,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(verify_api_key),
):
    store = SegmentStore(db)
    if segment_type is None:
        return await store.fetch_by_date(activity_date)
    return await store.fetch_by_date_and_type(activity_date, segment_type)


# ---------------------------------------------------------------------------
# Working schedules
# ---------------------------------------------------------------------------
@app.post(
    "/v1/schedules/working",
    response_model=WorkingScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_working_schedule(
    payload: WorkingScheduleRequest,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    return await service.create_schedule(payload)


@app.get("/v1/schedules/working", response_model=List[WorkingScheduleResponse])
async def list_working_schedules(
    user_id: str,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    return await service.list_active_schedules(user_id)


@app.put("/v1/schedules/working/{schedule_id}", response_model=WorkingScheduleResponse)
async def update_working_schedule(
    schedule_id: uuid.UUID,
    payload: WorkingScheduleRequest,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    return await service.update_schedule(schedule_id, payload)


@app.delete("/v1/schedules/working/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_working_schedule(
    schedule_id: uuid.UUID,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    await service.delete_schedule(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Schedule overrides
# ---------------------------------------------------------------------------
@app.post(
    "/v1/schedules/overrides",
    response_model=ScheduleOverrideResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_override(
    payload: ScheduleOverrideRequest,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    return await service.create_override(payload)


@app.get("/v1/schedules/overrides", response_model=List[ScheduleOverrideResponse])
async def list_overrides(
    start_date: date,
    end_date: date,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    return await service.list_overrides(start_date, end_date)


@app.delete("/v1/schedules/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_override(
    override_id: uuid.UUID,
    service: ScheduleManagementService = Depends(get_schedule_service),
    _: str = Depends(verify_api_key),
):
    await service.delete_override(override_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
@app.get("/v1/analytics/daily", response_model=List[DailyAggregationResponse])
async def list_daily_aggregations(
    user_id: str,
    start_date: date,
    end_date: date,
    aggregator: DailyAggregator = Depends(get_aggregator),
    _: str = Depends(verify_api_key),
):
    return await aggregator.list_range(start_date, end_date, user_id=user_id)


@app.post("/v1/analytics/daily/recompute-range", response_model=RecomputeRangeResponse)
async def recompute_range(
    payload: RecomputeRangeRequest,
    aggregator: DailyAggregator = Depends(get_aggregator),
    _: str = Depends(verify_api_key),
):
    count = await aggregator.recompute_range(payload.user_id, payload.start_date, payload.end_date)
    return RecomputeRangeResponse(total_recomputed=count)


@app.get("/v1/analytics/daily/{day}", response_model=DailyAggregationResponse)
async def get_daily_aggregation(
    day: date,
    user_id: str,
    compute: bool = True,
    aggregator: DailyAggregator = Depends(get_aggregator),
    _: str = Depends(verify_api_key),
):
    if not compute:
        return await aggregator.get(user_id, day)
    return await aggregator.get_or_compute(user_id, day)


@app.post("/v1/analytics/daily/{day}/recompute", response_model=DailyAggregationResponse)
async def recompute_daily_aggregation(
    day: date,
    user_id: str,
    aggregator: DailyAggregator = Depends(get_aggregator),
    _: str = Depends(verify_api_key),
):
    return await aggregator.compute(user_id, day)


# ---------------------------------------------------------------------------
# Startup: create tables (dev only; use Alembic in prod)
# ---------------------------------------------------------------------------
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
