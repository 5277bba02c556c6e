"""
Real-time Updates Endpoint

WebSocket feed of booking events for the admin dashboard.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.infra.realtime import get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    Booking event stream.

    Sends a "connected" event on open, answers {"type": "ping"} with
    {"type": "pong"}, and pushes booking_created, booking_updated and
    booking_deleted events as they happen.
    """
    manager = get_connection_manager()
    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_json()
            await manager.handle_message(websocket, data)
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        # Non-JSON frame
        logger.warning(f"Closing WebSocket after invalid message: {e}")
    finally:
        manager.disconnect(websocket)
