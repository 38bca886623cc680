"""Reference echo responder.

One process serves both surfaces on the same port:

- ``GET /`` and ``GET /index.html``: the bundled test page
- WebSocket ``/``: answers every ``sync_req`` with ``sync_res`` carrying the
  receipt (t2) and send (t3) times of this process's clock

Anything else over HTTP is a plain-text 404. Malformed frames are dropped
without a reply.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, Optional

import structlog
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from timesync.api.wire import build_sync_response, parse_message
from timesync.config.settings import settings

logger = structlog.get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def create_app(index_page: Optional[str] = None) -> FastAPI:
    """Build the responder application.

    Args:
        index_page: Path of the HTML page served on ``/``; defaults to the
            configured ``INDEX_PAGE``.
    """
    page_path = Path(index_page or settings.INDEX_PAGE)
    app = FastAPI(title="Time Server")
    # websocket -> "host:port" of connected clients
    clients: Dict[WebSocket, str] = {}
    app.state.clients = clients

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        if exc.status_code == 404:
            return PlainTextResponse("Not found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/", response_class=HTMLResponse)
    @app.get("/index.html", response_class=HTMLResponse)
    async def index():
        try:
            data = page_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("index_page_unreadable", path=str(page_path), error=str(e))
            return PlainTextResponse("Error", status_code=500)
        return HTMLResponse(data)

    @app.websocket("/")
    async def sync_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        peer = websocket.client
        client_id = f"{peer.host}:{peer.port}" if peer else "unknown"
        clients[websocket] = client_id
        logger.info("client_connected", client=client_id, online=len(clients))
        try:
            while True:
                message = await websocket.receive()
                t2 = now_ms()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text") or message.get("bytes")
                if raw is None:
                    continue
                msg = parse_message(raw)
                if msg is None:
                    continue
                response = build_sync_response(msg, t2=t2, t3=now_ms())
                if response is None:
                    continue
                await websocket.send_json(response)
        except WebSocketDisconnect:
            pass
        finally:
            clients.pop(websocket, None)
            logger.info("client_disconnected", client=client_id, online=len(clients))

    return app


app = create_app()
