"""HTTP and WebSocket surface: REST routes plus the bidirectional event channel."""

from __future__ import annotations

import json
import logging
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .config import ServerConfig
from .core import LifecycleController
from .exceptions import ActionNotFoundError, InvalidRequestError, PersistenceError
from .executor import ExecutorRegistry
from .models import InterceptRequest, ResolveMode
from .store import open_store

logger = logging.getLogger(__name__)

router = APIRouter()

_RESOLVE_EVENTS = {
    "undo": ResolveMode.UNDO,
    "commit": ResolveMode.COMMIT,
}


class SettingsUpdate(BaseModel):
    owner_id: str | None = Field(default=None, alias="userId")
    grace_window: Any = Field(default=None, alias="graceWindow")


def _controller(request: Request) -> LifecycleController:
    return request.app.state.controller


# ── Actions ──


@router.post("/api/action")
async def create_action(body: InterceptRequest, request: Request) -> dict[str, Any]:
    action = await _controller(request).create(body)
    return {"success": True, "action": action.to_wire()}


@router.post("/api/action/{action_id}/undo")
async def undo_action(action_id: str, request: Request) -> dict[str, Any]:
    outcome = await _controller(request).undo(action_id)
    return {"success": True, "status": outcome.status.value, "log": outcome.log.to_wire()}


@router.post("/api/action/{action_id}/commit")
async def commit_action(action_id: str, request: Request) -> dict[str, Any]:
    outcome = await _controller(request).commit(action_id)
    return {"success": True, "status": outcome.status.value, "log": outcome.log.to_wire()}


@router.get("/api/pending")
async def list_pending(request: Request) -> dict[str, Any]:
    actions = await _controller(request).list_pending()
    return {"success": True, "actions": [a.to_wire() for a in actions]}


# ── Settings ──


@router.get("/api/settings")
async def get_settings(
    request: Request, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    settings = await _controller(request).settings.get(user_id)
    return {"graceWindow": settings.grace_window_seconds}


@router.post("/api/settings")
async def update_settings(body: SettingsUpdate, request: Request) -> dict[str, Any]:
    settings = await _controller(request).settings.update(body.owner_id, body.grace_window)
    return {"success": True, "graceWindow": settings.grace_window_seconds}


# ── Logs & stats ──


@router.get("/api/logs")
async def list_logs(
    request: Request, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    logs = await _controller(request).list_logs(user_id)
    return {"success": True, "logs": [e.to_wire() for e in logs]}


@router.delete("/api/logs")
async def clear_logs(
    request: Request, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    await _controller(request).clear_logs(user_id)
    return {"success": True, "message": "Logs cleared"}


@router.get("/api/stats")
async def get_stats(
    request: Request, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    stats = await _controller(request).stats(user_id)
    return {"success": True, "stats": stats.to_wire()}


@router.get("/api/health")
async def health(request: Request) -> dict[str, Any]:
    controller = _controller(request)
    return {
        "status": "ok",
        "backend": controller.store.name,
        "pending_timers": len(controller.scheduler),
    }


# ── WebSocket channel ──


class WebSocketSession:
    """Adapts a WebSocket to the BroadcastHub session protocol."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws

    async def send(self, event: str, data: Any) -> None:
        await self._ws.send_json({"event": event, "data": data})


async def handle_message(controller: LifecycleController, owner_id: str | None, raw: str) -> None:
    """Translate one client frame into a controller call.

    Malformed frames are logged and dropped; the connection stays open.
    """
    try:
        message = json.loads(raw)
        event = message["event"]
        data = message.get("data")
    except (ValueError, KeyError, TypeError, AttributeError):
        logger.warning("Ignoring malformed frame: %.200s", raw)
        return

    if event == "intercept":
        try:
            request = InterceptRequest.model_validate(data or {})
        except ValidationError as exc:
            logger.warning("Ignoring invalid intercept: %s", exc)
            return
        if request.owner_id is None and owner_id:
            request = request.model_copy(update={"owner_id": owner_id})
        await controller.create(request)

    elif event in _RESOLVE_EVENTS:
        action_id = data.get("id") if isinstance(data, dict) else data
        if not isinstance(action_id, str):
            logger.warning("Ignoring %s without an action id", event)
            return
        try:
            await controller.resolve(action_id, _RESOLVE_EVENTS[event])
        except ActionNotFoundError:
            logger.debug("%s of %s ignored, already resolved", event, action_id)
        except PersistenceError as exc:
            logger.warning("%s of %s failed, still pending: %s", event, action_id, exc)

    else:
        logger.warning("Ignoring unknown event %r", event)


@router.websocket("/ws")
async def events_ws(ws: WebSocket) -> None:
    controller: LifecycleController = ws.app.state.controller
    owner_id = ws.query_params.get("userId") or None
    await ws.accept()
    session = WebSocketSession(ws)
    try:
        await controller.hub.join(session, owner_id)
        while True:
            raw = await ws.receive_text()
            await handle_message(controller, owner_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        controller.hub.leave(session)


# ── App ──


def create_app(controller: LifecycleController) -> FastAPI:
    app = FastAPI(title="Instant Undo")
    app.state.controller = controller
    # The browser extension calls from its own origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ActionNotFoundError)
    async def _not_found(request: Request, exc: ActionNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Action not found or already processed"},
        )

    @app.exception_handler(InvalidRequestError)
    async def _invalid(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _unavailable(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.warning("%s", exc)
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Storage unavailable, try again"},
        )

    app.include_router(router)
    return app


async def run(config: ServerConfig) -> None:
    """Open the store, serve until interrupted, then shut the controller down."""
    store = await open_store(config)
    controller = LifecycleController(
        store=store,
        executors=ExecutorRegistry.default(simulate_latency=config.simulate_latency),
    )
    await controller.recover_pending()

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(controller),
            host=config.host,
            port=config.port,
            log_level=config.log_level,
            log_config=None,
        )
    )
    logger.info(
        "Instant Undo listening on http://%s:%s (storage: %s)", config.host, config.port, store.name
    )
    try:
        await server.serve()
    finally:
        await controller.shutdown()
