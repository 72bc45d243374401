import asyncio
from unittest.mock import AsyncMock, Mock

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from fuel_delivery.core.config import SimulationConfig


FAST_CONFIG = SimulationConfig(tick_interval=0.001, step=0.001, jitter=0.005, eta_minutes_per_degree=100)


def make_connection() -> Mock:
    """Create a mock WebSocket that records what was sent to it."""
    websocket = Mock(spec=WebSocket)
    websocket.send_json = AsyncMock()
    websocket.client_state = WebSocketState.CONNECTED
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


def sent_messages(websocket) -> list:
    return [call.args[0] for call in websocket.send_json.await_args_list]


def sent_of_type(websocket, message_type: str) -> list:
    return [m for m in sent_messages(websocket) if m.get("type") == message_type]


async def wait_for(predicate, timeout: float = 2.0):
    """Poll until predicate() is truthy, yielding to the event loop between checks."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.002)


def make_stalled_connection() -> Mock:
    """A connection whose client stopped reading: every send blocks forever."""
    websocket = make_connection()

    async def never_returns(*args, **kwargs):
        await asyncio.Event().wait()

    websocket.send_json = AsyncMock(side_effect=never_returns)
    return websocket
