"""HTTP API for inspecting and driving herald."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field

from herald.app.herald_app import HeraldApp
from herald.models.reminders import ReminderDomain


class StatsResponse(BaseModel):
    reminders: Dict[str, Any]
    broadcast: Optional[Dict[str, Any]] = None
    destinations: int = 0


class NotificationBatch(BaseModel):
    notifications: List[Dict[str, Any]]


class SectionView(BaseModel):
    key: str
    title: str
    status: str
    error: Optional[str] = None


class BriefingResponse(BaseModel):
    variant: str
    generated_at: str
    text: str
    sections: List[SectionView] = Field(default_factory=list)


class BriefingSendResponse(BaseModel):
    variant: str
    delivered: bool
    sections: List[str] = Field(default_factory=list)
    failed_sections: List[str] = Field(default_factory=list)


class DestinationRequest(BaseModel):
    destination_id: str = Field(..., description="Chat/group identifier")
    title: Optional[str] = Field(default=None, description="Human-readable name")


class DestinationResponse(BaseModel):
    destination_id: str
    is_new: bool
    total: int


def get_herald(app: FastAPI) -> HeraldApp:
    herald = getattr(app.state, "herald", None)
    if herald is None:
        raise RuntimeError("Herald instance is not configured on the application state")
    return herald


def _check_variant(herald: HeraldApp, variant: str) -> None:
    if variant not in herald.briefing_variants:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown briefing variant: {variant}",
        )


def create_app(herald_instance: HeraldApp | None = None) -> FastAPI:
    herald = herald_instance or HeraldApp()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.herald = herald
        await herald.startup()
        try:
            yield
        finally:
            await herald.shutdown()

    app = FastAPI(
        title="Herald API",
        version="1.0.0",
        description="REST API for the herald reminder, briefing and broadcast service.",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_endpoint() -> Dict[str, Any]:
        try:
            return get_herald(app).snapshot()
        except Exception as exc:  # pragma: no cover
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to fetch health snapshot: {exc}",
            ) from exc

    @app.get("/stats", response_model=StatsResponse)
    async def stats_endpoint() -> StatsResponse:
        try:
            return StatsResponse(**get_herald(app).get_stats())
        except Exception as exc:  # pragma: no cover
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to fetch stats: {exc}",
            ) from exc

    @app.get("/notifications", response_model=NotificationBatch)
    async def notifications_endpoint(limit: int = 20, flush: bool = True) -> NotificationBatch:
        try:
            notifications = await get_herald(app).get_notifications(limit=limit, flush=flush)
            return NotificationBatch(notifications=notifications)
        except Exception as exc:  # pragma: no cover
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to fetch notifications: {exc}",
            ) from exc

    @app.get("/briefings/{variant}", response_model=BriefingResponse)
    async def briefing_endpoint(variant: str) -> BriefingResponse:
        herald = get_herald(app)
        _check_variant(herald, variant)
        report = await herald.compose_briefing(variant)
        return BriefingResponse(
            variant=report.variant,
            generated_at=report.generated_at.isoformat(),
            text=report.render(),
            sections=[
                SectionView(key=s.key, title=s.title, status=s.status.value, error=s.error)
                for s in report.sections
            ],
        )

    @app.post("/briefings/{variant}/send", response_model=BriefingSendResponse)
    async def send_briefing_endpoint(variant: str) -> BriefingSendResponse:
        herald = get_herald(app)
        _check_variant(herald, variant)
        return BriefingSendResponse(**await herald.send_briefing(variant))

    @app.post("/reminders/{domain}/poll")
    async def poll_endpoint(domain: str) -> Dict[str, Any]:
        try:
            reminder_domain = ReminderDomain(domain)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown reminder domain: {domain}",
            ) from exc

        result = await get_herald(app).poll_now(reminder_domain)
        return result.to_dict()

    @app.post("/destinations", response_model=DestinationResponse)
    async def destinations_endpoint(payload: DestinationRequest) -> DestinationResponse:
        herald = get_herald(app)
        is_new = herald.track_destination(payload.destination_id, payload.title)
        return DestinationResponse(
            destination_id=payload.destination_id,
            is_new=is_new,
            total=len(herald.stores.destinations),
        )

    return app


app = create_app()
