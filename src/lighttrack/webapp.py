"""FastAPI application exposing the tracking engine to the UI and browser extension."""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .config import DEFAULT_SETTINGS, RULE_TABLES_KEY, RuleTables
from .db import open_database
from .engine import TrackingEngine
from .events import EventBus
from .hooks import BroadcastNotifier
from .paths import get_db_path
from .reporting import activities_for_day, summarize_day
from .sources import (
    BaseObservationSource,
    BrowserExtensionSource,
    DoNotTrackPolicy,
    ObservationSource,
    create_default_source,
)
from .store import SqliteActivityStore, SqliteSettings

logger = logging.getLogger(__name__)

APP_VERSION = "0.3.0"

EXTENSION_ORIGIN_PREFIXES = ("chrome-extension://", "moz-extension://", "safari-extension://")
_EXTENSION_ORIGIN_REGEX = r"^(chrome|moz|safari)-extension://.*$"


class ProjectSwitchPayload(BaseModel):
    project: str

    model_config = ConfigDict(extra="forbid")


class BrowserActivityPayload(BaseModel):
    url: str
    title: str
    browser: Optional[str] = None
    timestamp: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def is_origin_allowed(origin: Optional[str]) -> bool:
    """Extensions and origin-less local clients may talk to the tracker; web pages may not."""
    if not origin:
        return True
    return origin.startswith(EXTENSION_ORIGIN_PREFIXES)


def create_app(
    *,
    db_path: Optional[Path] = None,
    source: Optional[ObservationSource] = None,
    event_bus: Optional[EventBus] = None,
    clock: Optional[Callable[[], datetime]] = None,
    start_tracking: bool = False,
    extension_token: Optional[str] = None,
) -> FastAPI:
    """Instantiate the FastAPI application and the engine it owns."""
    resolved_db_path = Path(db_path or get_db_path())
    bus = event_bus or EventBus()
    token = extension_token or secrets.token_hex(32)

    conn = open_database(resolved_db_path, check_same_thread=False)
    settings = SqliteSettings(conn)
    store = SqliteActivityStore(conn)
    push_source = BrowserExtensionSource(DoNotTrackPolicy.from_settings(settings))
    pull_source = source or create_default_source(settings)
    engine = TrackingEngine(
        store=store,
        settings=settings,
        source=pull_source,
        rules=RuleTables.from_mapping(settings.get(RULE_TABLES_KEY)),
        notifier=BroadcastNotifier(bus),
        broadcast=bus,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):  # type: ignore[no-untyped-def]
        if start_tracking:
            await engine.start()
        try:
            yield
        finally:
            try:
                await engine.cleanup()
            finally:
                conn.close()

    app = FastAPI(title="LightTrack", version=APP_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=_EXTENSION_ORIGIN_REGEX,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.state.db_path = resolved_db_path
    app.state.engine = engine
    app.state.event_bus = bus

    def _status_payload() -> Dict[str, Any]:
        payload = engine.get_tracking_state().to_payload()
        payload["memory"] = engine.get_memory_stats()
        return payload

    def _refresh_do_not_track() -> None:
        policy = DoNotTrackPolicy.from_settings(settings)
        push_source.policy = policy
        if isinstance(pull_source, BaseObservationSource):
            pull_source.policy = policy

    # -- REST: tracking --------------------------------------------------------

    @app.get("/api/status")
    async def status(request: Request) -> Dict[str, Any]:
        payload = _status_payload()
        payload["databasePath"] = str(request.app.state.db_path)
        return payload

    @app.post("/api/tracking/start")
    async def start_tracking_endpoint() -> Dict[str, Any]:
        try:
            await engine.start()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _status_payload()

    @app.post("/api/tracking/stop")
    async def stop_tracking_endpoint() -> Dict[str, Any]:
        await engine.stop()
        return _status_payload()

    @app.post("/api/tracking/toggle")
    async def toggle_tracking_endpoint() -> Dict[str, Any]:
        try:
            is_active = await engine.toggle()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"isActive": is_active}

    @app.post("/api/tracking/project")
    async def switch_project_endpoint(payload: ProjectSwitchPayload) -> Dict[str, Any]:
        project = payload.project.strip()
        if not project:
            raise HTTPException(status_code=400, detail="project is required")
        switched = engine.get_current_activity() is not None
        await engine.switch_project(project)
        return {"switched": switched, **_status_payload()}

    # -- REST: activities ------------------------------------------------------

    @app.get("/api/activities")
    async def list_activities(
        date_value: Optional[str] = Query(
            default=None,
            alias="date",
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date_value)
        activities = activities_for_day(store.get_activities(), target_day)
        return {
            "date": target_day.isoformat(),
            "activities": [activity.to_record() for activity in activities],
        }

    @app.get("/api/summary")
    async def daily_summary(
        date_value: Optional[str] = Query(default=None, alias="date"),
    ) -> Dict[str, Any]:
        summary = summarize_day(store.get_activities(), _parse_date(date_value))
        return {
            "date": summary.day.isoformat(),
            "totalSeconds": summary.total_seconds,
            "billableSeconds": summary.billable_seconds,
            "activityCount": summary.activity_count,
            "projects": summary.by_project,
            "apps": summary.by_app,
        }

    @app.get("/api/recent")
    async def recent_activities() -> Dict[str, Any]:
        return {"recent": engine.recent.to_records()}

    # -- REST: configuration ---------------------------------------------------

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        stored = settings.as_dict()
        stored.pop(RULE_TABLES_KEY, None)
        return {**DEFAULT_SETTINGS, **stored}

    @app.put("/api/settings")
    async def update_settings(payload: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(payload) - set(DEFAULT_SETTINGS))
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown settings: {', '.join(unknown)}")
        for key, value in payload.items():
            settings.set(key, value)
        if any(key.startswith("doNotTrack") for key in payload):
            _refresh_do_not_track()
        return await get_settings()

    @app.get("/api/rules")
    async def get_rules() -> Dict[str, Any]:
        return engine.rules.to_mapping()

    @app.put("/api/rules")
    async def update_rules(payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            rules = RuleTables.from_mapping(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        settings.set(RULE_TABLES_KEY, rules.to_mapping())
        await engine.update_rules(rules)
        return rules.to_mapping()

    # -- Browser extension -----------------------------------------------------

    @app.get("/status")
    async def extension_status(
        origin: Optional[str] = Header(default=None),
    ) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "status": "ok",
            "version": APP_VERSION,
            "tracking": engine.is_active,
        }
        if is_origin_allowed(origin):
            response["token"] = token
        return response

    @app.post("/browser-activity")
    async def browser_activity(
        payload: BrowserActivityPayload,
        origin: Optional[str] = Header(default=None),
        authorization: Optional[str] = Header(default=None),
    ) -> Dict[str, Any]:
        if not is_origin_allowed(origin):
            logger.warning("Rejected browser activity from origin %s", origin)
            raise HTTPException(status_code=403, detail="Forbidden: invalid origin")
        scheme, _, presented = (authorization or "").partition(" ")
        if scheme != "Bearer" or not secrets.compare_digest(presented, token):
            raise HTTPException(status_code=401, detail="Unauthorized: invalid or missing token")
        try:
            observation = push_source.receive(payload.model_dump())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await engine.handle_browser_activity(observation)
        return {"success": True, "tracking": engine.is_active}

    # -- WebSocket -------------------------------------------------------------

    @app.websocket("/ws/events")
    async def ws_events(websocket: WebSocket) -> None:
        await websocket.accept()
        try:
            async with bus.subscribe() as queue:
                await websocket.send_json({"type": "hello", **_status_payload()})
                while True:
                    event = await queue.get()
                    await websocket.send_json(event)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.debug("WebSocket error", exc_info=True)

    return app


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return datetime.now().date()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
