"""
FORMCOACH Squat Service Router

Endpoints for real-time squat analysis sessions.
Landmark frames come from the client's pose detector over REST or WebSocket;
every frame is answered with the current feedback and rep count.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, WebSocket
from pydantic import BaseModel

from core.websocket import (
    ConnectedClient,
    MessageType,
    WebSocketMessage,
    connection_manager,
    websocket_endpoint
)
from shared.utils import handle_exceptions, success_response

from .models import (
    AnalysisSnapshot,
    SessionLimitError,
    SessionNotFoundError,
    get_session_manager,
    landmark_catalog
)

logger = logging.getLogger(__name__)

router = APIRouter()


def session_room(session_id: str) -> str:
    return f"squat:session:{session_id}"


async def publish_update(session_id: str, snapshot: AnalysisSnapshot) -> int:
    """Push a snapshot to every display subscribed to the session."""
    return await connection_manager.broadcast_to_room(
        session_room(session_id),
        WebSocketMessage(
            type=MessageType.ANALYSIS_UPDATE,
            payload={"session_id": session_id, **snapshot.to_dict()}
        )
    )


# ============= Pydantic Models =============

class StartSessionRequest(BaseModel):
    user_id: str = "anonymous"


class FrameRequest(BaseModel):
    # Validated by parse_landmark_frame so malformed frames become feedback, not 422s
    landmarks: Any = None
    timestamp: Optional[float] = None


# ============= REST Endpoints =============

@router.post("/session/start")
async def start_session(request: StartSessionRequest):
    """
    Start a new squat analysis session.

    Returns a session ID for use with the frame endpoint or WebSocket stream.
    """
    manager = get_session_manager()

    try:
        session = manager.create_session(request.user_id)
    except SessionLimitError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "status": "created",
        "session_id": session.session_id,
        "user_id": session.user_id,
        "websocket_url": f"/api/squat/ws/session/{session.session_id}",
        **session.analyzer.snapshot().to_dict()
    }


@router.get("/session/{session_id}")
@handle_exceptions
async def get_session_status(session_id: str):
    """Current feedback and rep count for a session."""
    return get_session_manager().get_session_status(session_id)


@router.post("/session/{session_id}/frame")
@handle_exceptions
async def submit_frame(session_id: str, request: FrameRequest):
    """Analyze one landmark frame (null landmarks means nothing was detected)."""
    snapshot = get_session_manager().process_frame(
        session_id, request.landmarks, timestamp=request.timestamp
    )
    await publish_update(session_id, snapshot)
    return snapshot.to_dict()


@router.post("/session/{session_id}/toggle")
@handle_exceptions
async def toggle_analysis(session_id: str):
    """Start or stop analysis without touching the rep count."""
    snapshot = get_session_manager().toggle(session_id)
    await publish_update(session_id, snapshot)
    return snapshot.to_dict()


@router.post("/session/{session_id}/reset")
@handle_exceptions
async def reset_analysis(session_id: str):
    """Reset the rep count and feedback."""
    snapshot = get_session_manager().reset(session_id)
    await publish_update(session_id, snapshot)
    return snapshot.to_dict()


@router.delete("/session/{session_id}")
async def end_session(session_id: str):
    """End a session and release its analyzer."""
    manager = get_session_manager()

    try:
        summary = manager.get_session_status(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    manager.cleanup_session(session_id)
    await connection_manager.broadcast_to_room(
        session_room(session_id),
        WebSocketMessage(type=MessageType.SESSION_ENDED, payload=summary)
    )

    return success_response(summary, message="Session ended")


@router.get("/landmarks")
async def get_landmarks():
    """Joint numbering expected in landmark frames."""
    return {"landmarks": landmark_catalog()}


# ============= WebSocket Endpoints =============

@router.websocket("/ws/session/{session_id}")
async def squat_session_stream(websocket: WebSocket, session_id: str):
    """
    Real-time squat analysis stream.

    Accepts:
    - {"type": "landmarks", "payload": [...] | null}
    - a bare JSON array of landmarks
    - {"type": "toggle"} / {"type": "reset"} / {"type": "ping"}

    Every processed message is answered with an analysis_update.
    """
    manager = get_session_manager()

    try:
        manager.get_session(session_id)
    except SessionNotFoundError:
        logger.warning(f"WebSocket rejected: session {session_id} not found")
        await websocket.accept()
        await websocket.send_json({
            "type": MessageType.ERROR.value,
            "payload": {"error": f"Session {session_id} not found"}
        })
        await websocket.close()
        return

    room = session_room(session_id)

    async def on_connect(client: ConnectedClient):
        await connection_manager.subscribe(client.client_id, room)
        await connection_manager.send_to_client(client.client_id, WebSocketMessage(
            type=MessageType.ANALYSIS_UPDATE,
            payload={"session_id": session_id, **manager.get_session(session_id).analyzer.snapshot().to_dict()}
        ))

    async def handle(client_id: str, message: WebSocketMessage):
        try:
            if message.type == MessageType.LANDMARKS:
                snapshot = manager.process_frame(session_id, message.payload)
            elif message.type == MessageType.TOGGLE:
                snapshot = manager.toggle(session_id)
            elif message.type == MessageType.RESET:
                snapshot = manager.reset(session_id)
            else:
                await connection_manager.send_to_client(client_id, WebSocketMessage(
                    type=MessageType.ERROR,
                    payload={"error": f"Unsupported message type: {getattr(message.type, 'value', message.type)}"}
                ))
                return
        except SessionNotFoundError:
            await connection_manager.send_to_client(client_id, WebSocketMessage(
                type=MessageType.SESSION_ENDED,
                payload={"session_id": session_id}
            ))
            return

        await publish_update(session_id, snapshot)

    client_id = f"squat_{session_id}_{uuid.uuid4().hex[:6]}"
    await websocket_endpoint(websocket, client_id, handle, on_connect=on_connect)
