from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from jobagent.services.notifications import Broadcaster, get_broadcaster

router = APIRouter()


@router.websocket("/ws")
async def session_events(websocket: WebSocket, broadcaster: Broadcaster = Depends(get_broadcaster)) -> None:
    await broadcaster.connect(websocket)
    try:
        while True:
            # Clients only listen; inbound frames are read to notice disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
