"""Live update WebSocket and health check route handlers."""

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from arena.database.db import get_database
from arena.models.schemas import HealthResponse
from arena.services import auth_service
from arena.services.websocket_manager import WEBSOCKET_TIMEOUT_SECONDS, get_websocket_manager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health_check(database=Depends(get_database)):
    """
    Health check endpoint.

    Returns:
        dict: Service status, degraded when no database is configured
    """
    if not database.available:
        return {"status": "degraded", "database": "unavailable", "message": "API is running without a database"}
    return {"status": "healthy", "database": "available", "message": "API is running"}


@router.websocket("/api/ws/updates")
async def websocket_updates(websocket: WebSocket):
    """
    WebSocket endpoint for live profile and support updates.

    Requires JWT token in query parameter: ?token=<jwt_token>
    """
    await websocket.accept()

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008, reason="Missing authentication token")
        return

    payload = auth_service.verify_token(token)
    if payload is None:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return
    user_id = payload["user_id"]

    manager = get_websocket_manager()
    await manager.connect(user_id, websocket)

    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS
                )
                await manager.update_activity(websocket)
                # Client sends "ping", server responds "pong"
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                # Probe the connection; a dead socket ends the loop
                try:
                    await websocket.send_text("ping")
                except Exception:
                    break
                await manager.update_activity(websocket)
    except WebSocketDisconnect:
        logger.info(f"Live updates socket closed by user {user_id}")
    except Exception as e:
        logger.error(f"Live updates error for user {user_id}: {e}")
    finally:
        await manager.disconnect(user_id, websocket)
