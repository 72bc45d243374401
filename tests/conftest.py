import random

import pytest
import pytest_asyncio

from fuel_delivery.modules.connection_manager import ConnectionManager
from fuel_delivery.modules.order_store import InMemoryOrderStore
from fuel_delivery.modules.position_simulator import PositionSimulator
from fuel_delivery.modules.tracking_session import TrackingSessionManager
from tests.helpers import FAST_CONFIG, make_connection


@pytest.fixture
def connection():
    return make_connection()


@pytest.fixture
def registry():
    return ConnectionManager(send_timeout=0.05)


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest_asyncio.fixture
async def simulator():
    sim = PositionSimulator(FAST_CONFIG, rng=random.Random(7))
    yield sim
    await sim.shutdown()


@pytest_asyncio.fixture
async def tracking(registry, simulator, order_store):
    manager = TrackingSessionManager(registry, simulator, order_store)
    yield manager
    await manager.shutdown()
