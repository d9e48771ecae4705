"""
FastAPI control surface for LANLink.

The display layer (a browser page or any other client) reads snapshots, shows
the outgoing blob for copying and posts pasted blobs back.  Every endpoint is a
thin shell around one :class:`~lanlink.signaling.SignalingMachine` call.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Path as PathParam, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..config import LinkConfig
from ..errors import (
    DeviceUnavailable,
    InvalidState,
    MachineClosed,
    MalformedDescription,
    NegotiationRejected,
    SignalingError,
)
from . import schemas
from .state import LinkState

LOG = logging.getLogger(__name__)

# Most specific first: MachineClosed is an InvalidState.
ERROR_STATUS = (
    (MachineClosed, 410),
    (MalformedDescription, 422),
    (DeviceUnavailable, 503),
    (NegotiationRejected, 409),
    (InvalidState, 409),
)


def _http_error(exc: SignalingError, state: LinkState) -> HTTPException:
    status_code = 400
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    detail: Dict[str, Any] = {
        "kind": exc.kind,
        "message": str(exc),
        "session": state.snapshot(),
    }
    return HTTPException(status_code=status_code, detail=detail)


def create_app(
    *,
    state: Optional[LinkState] = None,
    config: Optional[LinkConfig] = None,
) -> FastAPI:
    link_state = state or LinkState(config)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        await link_state.start()
        try:
            yield
        finally:
            # Runs whenever the host goes away, reset or not.
            await link_state.stop()

    app = FastAPI(title="LANLink API", lifespan=app_lifespan)
    app.state.link = link_state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    machine = link_state.machine

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "profile": link_state.config.profile}

    @app.get("/config", response_model=schemas.ConfigModel)
    async def get_config() -> schemas.ConfigModel:
        return schemas.ConfigModel(
            profile=link_state.config.profile,
            iceServers=[
                schemas.IceServerModel(**server.to_dict()) for server in link_state.config.ice_servers
            ],
        )

    @app.get("/session", response_model=schemas.SessionSnapshotModel)
    async def get_session() -> schemas.SessionSnapshotModel:
        return schemas.SessionSnapshotModel(**link_state.snapshot())

    @app.post("/session/role")
    async def select_role(payload: schemas.RoleRequest) -> dict:
        try:
            await machine.select_role(payload.role)
        except SignalingError as exc:
            raise _http_error(exc, link_state) from exc
        return {"session": link_state.snapshot()}

    @app.post("/session/offer")
    async def generate_offer() -> dict:
        try:
            blob = await machine.generate_offer()
        except SignalingError as exc:
            raise _http_error(exc, link_state) from exc
        return {"blob": blob, "session": link_state.snapshot()}

    @app.put("/session/pending/{slot}")
    async def update_pending(
        payload: schemas.PendingTextRequest,
        slot: str = PathParam(..., pattern="^(offer|answer)$"),
    ) -> dict:
        try:
            if slot == "offer":
                machine.set_pending_offer(payload.text)
            else:
                machine.set_pending_answer(payload.text)
        except SignalingError as exc:
            raise _http_error(exc, link_state) from exc
        return {"session": link_state.snapshot()}

    @app.post("/session/remote-offer")
    async def apply_remote_offer(payload: schemas.BlobRequest) -> dict:
        try:
            blob = await machine.apply_remote_offer(payload.blob)
        except SignalingError as exc:
            raise _http_error(exc, link_state) from exc
        return {"blob": blob, "session": link_state.snapshot()}

    @app.post("/session/remote-answer")
    async def apply_remote_answer(payload: schemas.BlobRequest) -> dict:
        try:
            await machine.apply_remote_answer(payload.blob)
        except SignalingError as exc:
            raise _http_error(exc, link_state) from exc
        return {"session": link_state.snapshot()}

    @app.post("/session/reset")
    async def reset_session() -> dict:
        await machine.reset()
        return {"session": link_state.snapshot()}

    @app.websocket("/session/events")
    async def session_events(websocket: WebSocket) -> None:
        await websocket.accept()
        token, listener = link_state.add_listener()
        logger = LOG.getChild(f"ws.{token}")

        async def _send_loop() -> None:
            while True:
                payload = await listener.queue.get()
                await websocket.send_json({"type": "session", "session": payload})

        async def _recv_loop() -> None:
            while True:
                message = await websocket.receive_json()
                if isinstance(message, dict) and str(message.get("type") or "").lower() == "ping":
                    await websocket.send_json({"type": "pong"})

        tasks = {asyncio.create_task(_send_loop()), asyncio.create_task(_recv_loop())}
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    logger.warning("Snapshot stream ended: %s", exc)
        finally:
            for task in tasks:
                task.cancel()
            link_state.remove_listener(token)
            with contextlib.suppress(RuntimeError, WebSocketDisconnect):
                await websocket.close()

    return app
