import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from datetime import time as clock_time

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cadence.application.config import AppConfig, resolve_config
from cadence.application.factory import Services, build_services
from cadence.application.queue_builder import QueueBuildResult
from cadence.consts import VERSION
from cadence.domain.errors import (
    CadenceError,
    DuplicateSubmissionError,
    InvalidInputError,
    NotFoundError,
    StaleStateError,
)
from cadence.domain.review.models import ReviewState
from cadence.domain.slots.models import ReviewSlot, SlotType, TimeWindow
from cadence.domain.stats.models import AnalyticsSnapshot, PeriodStats

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cadence.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cadence Server shutting down...")
    services = _state.pop("services", None)
    if services is not None:
        await services.aclose()


app = FastAPI(
    title="Cadence Server",
    description="Review scheduling engine: due queues, ratings, slots and analytics.",
    version=VERSION,
    lifespan=lifespan,
)

start_time = time.time()
_state: dict = {}


def get_config() -> AppConfig:
    if "config" not in _state:
        _state["config"] = resolve_config()
    return _state["config"]


async def get_services(config: AppConfig = Depends(get_config)) -> Services:
    if "services" not in _state:
        _state["services"] = await build_services(config)
    return _state["services"]


def _now(at: datetime | None, config: AppConfig) -> datetime:
    if at is None:
        return datetime.now(config.tz)
    if at.tzinfo is None:
        return at.replace(tzinfo=config.tz)
    # Slots are wall-clock times in the configured zone
    return at.astimezone(config.tz)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(CadenceError)
async def cadence_error_handler(request: Request, exc: CadenceError):
    if isinstance(exc, InvalidInputError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})
    if isinstance(exc, NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    if isinstance(exc, StaleStateError):
        logger.warning(f"Stale state on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=409,
            content={
                "detail": "This card changed since it was shown. Please try again.",
                "error": "stale_state",
            },
        )
    if isinstance(exc, DuplicateSubmissionError):
        return JSONResponse(
            status_code=409, content={"detail": str(exc), "error": "duplicate_submission"}
        )

    logger.error(f"Unhandled engine error: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReviewStateModel(BaseModel):
    flashcard_id: str
    interval_days: float
    formatted_interval: str
    ease_factor: float
    repetitions: int
    lapses: int
    status: str
    due_at: datetime | None
    last_reviewed_at: datetime | None
    version: int

    @classmethod
    def from_state(cls, state: ReviewState) -> "ReviewStateModel":
        return cls(
            flashcard_id=state.flashcard_id,
            interval_days=state.interval_days,
            formatted_interval=state.formatted_interval,
            ease_factor=round(state.ease_factor, 2),
            repetitions=state.repetitions,
            lapses=state.lapses,
            status=state.status.value,
            due_at=state.due_at,
            last_reviewed_at=state.last_reviewed_at,
            version=state.version,
        )


class WindowModel(BaseModel):
    slot_id: str
    start: datetime
    end: datetime
    capacity: int | None

    @classmethod
    def from_window(cls, window: TimeWindow | None) -> "WindowModel | None":
        if window is None:
            return None
        return cls(
            slot_id=window.slot.slot_id, start=window.start, end=window.end, capacity=window.capacity
        )


class QueueItemModel(BaseModel):
    flashcard_id: str
    presented_at: datetime
    expected_version: int
    days_overdue: float
    state: ReviewStateModel


class QueueResponse(BaseModel):
    learner_id: str
    generated_at: datetime
    items: list[QueueItemModel]
    deferred: list[str]
    capacity: int | None
    served: int
    total_eligible: int
    window: WindowModel | None

    @classmethod
    def from_result(cls, learner_id: str, now: datetime, result: QueueBuildResult) -> "QueueResponse":
        return cls(
            learner_id=learner_id,
            generated_at=now,
            items=[
                QueueItemModel(
                    flashcard_id=item.flashcard_id,
                    presented_at=item.presented_at,
                    expected_version=item.expected_version,
                    days_overdue=round(item.state.days_overdue(now), 2),
                    state=ReviewStateModel.from_state(item.state),
                )
                for item in result.items
            ],
            deferred=result.deferred,
            capacity=result.capacity,
            served=result.served,
            total_eligible=result.total_eligible,
            window=WindowModel.from_window(result.window),
        )


class RatingRequest(BaseModel):
    flashcard_id: str
    rating: str
    presented_at: datetime
    expected_version: int | None = None
    rated_at: datetime | None = None


class RatingResponse(BaseModel):
    attempt_id: str
    rating: str
    interval_before: float
    interval_after: float
    status_before: str
    state: ReviewStateModel


class SlotRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: clock_time
    end_time: clock_time
    capacity: int | None = Field(default=None, ge=0)
    slot_type: SlotType = SlotType.MICRO


class SlotUpdateRequest(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: clock_time | None = None
    end_time: clock_time | None = None
    capacity: int | None = Field(default=None, ge=0)
    slot_type: SlotType | None = None
    is_active: bool | None = None


class SlotModel(BaseModel):
    slot_id: str
    learner_id: str
    day_of_week: int
    day_name: str
    start_time: clock_time
    end_time: clock_time
    duration_minutes: int
    capacity: int | None
    slot_type: SlotType
    is_active: bool

    @classmethod
    def from_slot(cls, slot: ReviewSlot) -> "SlotModel":
        return cls(
            slot_id=slot.slot_id,
            learner_id=slot.learner_id,
            day_of_week=slot.day_of_week,
            day_name=slot.day_name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration_minutes=slot.duration_minutes,
            capacity=slot.capacity,
            slot_type=slot.slot_type,
            is_active=slot.is_active,
        )


class PeriodStatsModel(BaseModel):
    days: int
    attempts: int
    success_rate: float | None
    average_interval_days: float
    new_cards: int

    @classmethod
    def from_stats(cls, stats: PeriodStats | None) -> "PeriodStatsModel | None":
        if stats is None:
            return None
        return cls(**asdict(stats))


class AnalyticsResponse(BaseModel):
    learner_id: str
    generated_at: datetime
    window_days: int
    total_cards: int
    due_today: int
    overdue: int
    new_count: int
    learning_count: int
    review_count: int
    mastered_count: int
    retention_rate: float | None
    has_retention_data: bool
    attempts_in_window: int
    rating_counts: dict[str, int]
    weekly: PeriodStatsModel | None
    monthly: PeriodStatsModel | None

    @classmethod
    def from_snapshot(cls, snap: AnalyticsSnapshot) -> "AnalyticsResponse":
        return cls(
            learner_id=snap.learner_id,
            generated_at=snap.generated_at,
            window_days=snap.window_days,
            total_cards=snap.total_cards,
            due_today=snap.due_today,
            overdue=snap.overdue,
            new_count=snap.new_count,
            learning_count=snap.learning_count,
            review_count=snap.review_count,
            mastered_count=snap.mastered_count,
            retention_rate=snap.retention_rate,
            has_retention_data=snap.has_retention_data,
            attempts_in_window=snap.attempts_in_window,
            rating_counts=snap.rating_counts,
            weekly=PeriodStatsModel.from_stats(snap.weekly),
            monthly=PeriodStatsModel.from_stats(snap.monthly),
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/learners/{learner_id}/queue", response_model=QueueResponse)
async def get_queue(
    learner_id: str,
    at: datetime | None = None,
    include_new: bool | None = None,
    config: AppConfig = Depends(get_config),
    services: Services = Depends(get_services),
):
    """Due queue for a learner, sized to the current or next review slot."""
    now = _now(at, config)
    if include_new is None:
        include_new = config.include_new_cards
    result = await services.reviews.get_queue(learner_id, now, include_new=include_new)
    return QueueResponse.from_result(learner_id, now, result)


@app.post("/learners/{learner_id}/reviews", response_model=RatingResponse)
async def submit_rating(
    learner_id: str,
    req: RatingRequest,
    config: AppConfig = Depends(get_config),
    services: Services = Depends(get_services),
):
    """Rate a queued card. 409 means stale or duplicate: re-fetch the queue."""
    outcome = await services.reviews.submit_rating(
        learner_id,
        req.flashcard_id,
        req.rating,
        presented_at=req.presented_at,
        now=_now(req.rated_at, config),
        expected_version=req.expected_version,
    )
    return RatingResponse(
        attempt_id=outcome.attempt.attempt_id,
        rating=outcome.attempt.rating.value,
        interval_before=outcome.attempt.interval_before,
        interval_after=outcome.attempt.interval_after,
        status_before=outcome.previous.status.value,
        state=ReviewStateModel.from_state(outcome.state),
    )


@app.get("/learners/{learner_id}/slots", response_model=list[SlotModel])
async def list_slots(learner_id: str, services: Services = Depends(get_services)):
    return [SlotModel.from_slot(s) for s in await services.slots.list_slots(learner_id)]


@app.post("/learners/{learner_id}/slots", response_model=SlotModel, status_code=201)
async def create_slot(
    learner_id: str, req: SlotRequest, services: Services = Depends(get_services)
):
    slot = await services.slots.create_slot(
        learner_id,
        req.day_of_week,
        req.start_time,
        req.end_time,
        capacity=req.capacity,
        slot_type=req.slot_type,
    )
    return SlotModel.from_slot(slot)


@app.put("/learners/{learner_id}/slots/{slot_id}", response_model=SlotModel)
async def update_slot(
    learner_id: str,
    slot_id: str,
    req: SlotUpdateRequest,
    services: Services = Depends(get_services),
):
    slot = await services.slots.update_slot(learner_id, slot_id, **req.model_dump())
    return SlotModel.from_slot(slot)


@app.delete("/learners/{learner_id}/slots/{slot_id}", status_code=204)
async def delete_slot(learner_id: str, slot_id: str, services: Services = Depends(get_services)):
    await services.slots.delete_slot(learner_id, slot_id)


@app.post("/learners/{learner_id}/slots/{slot_id}/toggle", response_model=SlotModel)
async def toggle_slot(learner_id: str, slot_id: str, services: Services = Depends(get_services)):
    return SlotModel.from_slot(await services.slots.toggle_slot(learner_id, slot_id))


@app.get("/learners/{learner_id}/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    learner_id: str,
    at: datetime | None = None,
    window_days: int | None = None,
    config: AppConfig = Depends(get_config),
    services: Services = Depends(get_services),
):
    snap = await services.analytics.get_snapshot(learner_id, _now(at, config), window_days)
    return AnalyticsResponse.from_snapshot(snap)
