import contextlib
from datetime import datetime

import anyio
import uvicorn
from starlette.applications import Starlette
from starlette.routing import Route, WebSocketRoute

from wsmux import Coordinator, default_router
from wsmux.app import MultiplexerEndpoint, home, script
from wsmux.router import encode_reply

from uvicorn.config import logger as _log

router = default_router()


@router.command("TIME?")
def time_now(message: str) -> str:
    return datetime.now().isoformat(timespec="seconds")


coordinator = Coordinator(router=router)


async def announce():
    """Simulates periodic server messages pushed to every connected client."""
    while True:
        await anyio.sleep(5)
        text = encode_reply({"message": f"It is {time_now('')}"})
        sent = coordinator.broadcast(text)
        _log.info(f"Announced to {sent} sessions")


@contextlib.asynccontextmanager
async def lifespan(app: Starlette):
    async with anyio.create_task_group() as task_group:
        await task_group.start(coordinator.run)
        task_group.start_soon(announce)
        yield
        coordinator.stop()
        task_group.cancel_scope.cancel()


routes = [
    Route("/", endpoint=home),
    WebSocketRoute("/", endpoint=MultiplexerEndpoint(coordinator)),
    Route("/client.js", endpoint=script),
]

app = Starlette(debug=True, routes=routes, lifespan=lifespan)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="trace")
