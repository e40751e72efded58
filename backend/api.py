from __future__ import annotations

import asyncio
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from focus import FocusService, FocusSettings
from focus.actuator import Actuator
from focus.signals import ActivityReport, AttentionSignal, TabChange

from .config_loader import persist_settings
from .db import Database
from .schemas import (
    ActivityEventSchema,
    AttentionEventSchema,
    HistoryResponse,
    ModeSchema,
    PhaseSchema,
    SessionStartSchema,
    SettingsSchema,
    TabEventSchema,
)


def create_app(
    settings: FocusSettings,
    database: Database,
    actuator: Optional[Actuator] = None,
    config_path: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(title="focus-guard", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    service = FocusService(settings, store=database, db=database, actuator=actuator)
    app.state.service = service

    @app.on_event("startup")
    async def startup() -> None:
        service.loop = asyncio.get_running_loop()
        service.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:
        service.stop()

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "tick_running": service.running}

    @app.get("/api/settings", response_model=SettingsSchema)
    async def get_settings() -> SettingsSchema:
        return SettingsSchema(**asdict(service.settings))

    @app.post("/api/settings", response_model=SettingsSchema)
    async def update_settings(payload: SettingsSchema) -> SettingsSchema:
        data = payload.model_dump()
        service.update_settings(FocusSettings.from_dict(data))
        if config_path:
            persist_settings(config_path, data)
        return payload

    @app.get("/api/state")
    async def get_state() -> Dict[str, Any]:
        return service.snapshot()

    @app.post("/api/session/start")
    async def start_session(payload: SessionStartSchema) -> Dict[str, Any]:
        try:
            session = service.start_session(payload.mode)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return session.to_dict()

    @app.post("/api/session/stop")
    async def stop_session() -> Dict[str, Any]:
        return service.stop_session().to_dict()

    @app.post("/api/session/mode")
    async def set_mode(payload: ModeSchema) -> Dict[str, Any]:
        try:
            session = service.set_mode(payload.mode)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return session.to_dict()

    @app.post("/api/session/phase")
    async def set_phase(payload: PhaseSchema) -> Dict[str, Any]:
        try:
            session = service.set_phase(payload.phase)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return session.to_dict()

    @app.post("/api/events/tab")
    async def tab_event(payload: TabEventSchema) -> Dict[str, bool]:
        event = TabChange.from_payload(payload.model_dump(), time.time())
        return {"accepted": service.handle_event(event)}

    @app.post("/api/events/activity")
    async def activity_event(payload: ActivityEventSchema) -> Dict[str, bool]:
        event = ActivityReport.from_payload(payload.model_dump(), time.time())
        return {"accepted": service.handle_event(event)}

    @app.post("/api/events/attention")
    async def attention_event(payload: AttentionEventSchema) -> Dict[str, bool]:
        event = AttentionSignal.from_payload(payload.model_dump(), time.time())
        return {"accepted": service.handle_event(event)}

    @app.post("/api/tick")
    async def tick() -> Dict[str, Any]:
        result = await asyncio.get_running_loop().run_in_executor(None, service.tick)
        return result.to_dict()

    @app.post("/api/policy/reset")
    async def reset_policy() -> Dict[str, Any]:
        return service.reset_learning().to_dict()

    @app.websocket("/api/stream")
    async def websocket_stream(ws: WebSocket) -> None:
        await ws.accept()
        queue = service.subscribe()
        try:
            while True:
                payload = await queue.get()
                await ws.send_text(payload)
        except WebSocketDisconnect:
            pass
        finally:
            service.unsubscribe(queue)

    @app.get("/api/history", response_model=HistoryResponse)
    async def history(
        start: Optional[float] = Query(None),
        end: Optional[float] = Query(None),
    ) -> HistoryResponse:
        now = time.time()
        start_ts = start or (now - 60 * 60)
        end_ts = end or now
        return HistoryResponse(metrics=database.history(start_ts, end_ts), events=database.events(start_ts, end_ts))

    @app.get("/api/export")
    async def export(
        start: Optional[float] = Query(None),
        end: Optional[float] = Query(None),
    ) -> StreamingResponse:
        now = time.time()
        start_ts = start or (now - 60 * 60)
        end_ts = end or now
        filename = f"focus_{int(start_ts)}_{int(end_ts)}.csv"
        generator = database.export_csv(start_ts, end_ts)
        return StreamingResponse(generator, media_type="text/csv", headers={"Content-Disposition": f'attachment; filename="{filename}"'})

    return app
