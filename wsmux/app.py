import contextlib
import logging
from typing import Optional

import anyio
from starlette import status
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocket

from wsmux.config import Settings
from wsmux.coordinator import Coordinator
from wsmux.transport import WebSocketConnection

logger = logging.getLogger(__name__)

html_client = """
<html>
<head>
    <title>wsmux</title>
    <script src="/client.js"></script>
</head>
<body>
    <div id="conn_err" hidden><h1>No connection to server</h1></div>
    <div id="content" hidden></div>
</body>
</html>
"""

client_js = """
let ws;
let conn_err;
let content;

function loaded() {
  conn_err = document.getElementById("conn_err");
  content = document.getElementById("content");
  connect();
}

function connect() {
  ws = new WebSocket("ws://" + window.location.host + "/");

  ws.addEventListener("open", () => {
    conn_err.hidden = true;
    content.hidden = false;
    ws.send("Hello?");
  });

  ws.addEventListener("close", () => {
    conn_err.hidden = false;
    content.hidden = true;
  });

  ws.addEventListener("error", (err) => {
    console.error("Socket encountered error: ", err.message);
    ws.close();
  });

  ws.addEventListener("message", (e) => parse_message(e.data));
}

function parse_message(data) {
  if (data == "PONG") {
    console.log(data);
    return;
  }

  let msg = JSON.parse(data);
  content.innerHTML = "";
  let text = document.createElement("h1");
  text.appendChild(document.createTextNode(msg.message));
  content.appendChild(text);
}

window.addEventListener("load", loaded);
"""


class MultiplexerEndpoint:
    """
    ASGI websocket endpoint feeding accepted connections to a coordinator.

    The ASGI call stays open until the coordinator has closed the session,
    since the server tears the connection down once the application returns.
    """

    def __init__(self, coordinator: Coordinator) -> None:
        self.coordinator = coordinator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        websocket = WebSocket(scope, receive=receive, send=send)
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        if not self.coordinator.running:
            logger.info(
                "WebSocket connection from %s refused, coordinator not running",
                connection.remote_address,
                extra={"remote": connection.remote_address, "event": "refused"},
            )
            await websocket.close(code=status.WS_1001_GOING_AWAY)
            return
        logger.info(
            "WebSocket connection from %s accepted",
            connection.remote_address,
            extra={"remote": connection.remote_address, "event": "accepted"},
        )
        await self.coordinator.accept(connection)
        await connection.wait_closed()


async def home(request: Request) -> HTMLResponse:
    return HTMLResponse(html_client)


async def script(request: Request) -> Response:
    return Response(client_js, media_type="application/javascript")


def create_app(
    coordinator: Optional[Coordinator] = None,
    settings: Optional[Settings] = None,
    debug: bool = False,
) -> Starlette:
    """Build the Starlette app; the coordinator loop runs for the app's lifespan."""
    if coordinator is None:
        settings = settings if settings is not None else Settings.from_config()
        coordinator = settings.build_coordinator()

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", **coordinator.stats()})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with anyio.create_task_group() as task_group:
            await task_group.start(coordinator.run)
            yield
            coordinator.stop()

    routes = [
        Route("/", endpoint=home),
        WebSocketRoute("/", endpoint=MultiplexerEndpoint(coordinator)),
        Route("/client.js", endpoint=script),
        Route("/health", endpoint=health),
    ]
    app = Starlette(debug=debug, routes=routes, lifespan=lifespan)
    app.state.coordinator = coordinator
    return app
