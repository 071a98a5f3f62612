from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status

from ..core.config import settings
from ..domain.errors import DeviceUnavailable, SessionNotOpen, WriteError
from ..drivers.broadcast_ws import WebSocketHub
from ..drivers.serial_port import list_serial_ports
from ..services.session import SessionManager
from .schemas import CloseSessionRequest, OpenSessionRequest, SendMessageRequest

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py points these at the real singletons via app.dependency_overrides.
def get_manager() -> SessionManager:  # overridden in main
    raise RuntimeError("Session manager dependency not configured")

def get_hub() -> WebSocketHub:  # overridden in main
    raise RuntimeError("Broadcast hub dependency not configured")


@router.get("/health")
async def health(manager: SessionManager = Depends(get_manager)):
    return {
        "app": settings.app_name,
        "status": "ok",
        "open_sessions": len(manager.sessions()),
    }


@router.get("/serialports")
async def serial_ports():
    return list_serial_ports()


@router.get("/sessions")
async def list_sessions(manager: SessionManager = Depends(get_manager)):
    return {"sessions": [s.describe() for s in manager.sessions()]}


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def open_session(req: OpenSessionRequest, manager: SessionManager = Depends(get_manager)):
    logger.info(
        "Open request: path=%s baud=%s data=%s parity=%s stop=%s",
        req.path, req.baud_rate, req.data_bits, req.parity, req.stop_bits,
    )
    try:
        session = await manager.open(req.path, req.link())
    except DeviceUnavailable as e:
        code = status.HTTP_409_CONFLICT if e.already_open else status.HTTP_503_SERVICE_UNAVAILABLE
        raise HTTPException(status_code=code, detail=str(e)) from e
    return {"ok": True, "path": session.path, "state": session.state.value}


@router.post("/sessions/send")
async def send_message(req: SendMessageRequest, manager: SessionManager = Depends(get_manager)):
    logger.info("Message for %s: %r", req.path, req.message)
    try:
        written = await manager.send(req.path, req.message.encode("utf-8"))
    except SessionNotOpen as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except WriteError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return {"ok": True, "path": req.path, "bytes": written}


@router.post("/sessions/close")
async def close_session(req: CloseSessionRequest, manager: SessionManager = Depends(get_manager)):
    await manager.close(req.path)
    remaining = manager.get(req.path)
    return {"ok": True, "path": req.path, "state": remaining.state.value if remaining else "closed"}


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket, hub: WebSocketHub = Depends(get_hub)):
    await hub.serve(websocket)
