"""End-to-end tests through the FastAPI app (HTTP routes + tracking WebSocket)."""

import random

import pytest
from fastapi.testclient import TestClient

from fuel_delivery.core.config import SimulationConfig
from fuel_delivery.main import create_app
from fuel_delivery.modules.connection_manager import ConnectionManager
from fuel_delivery.modules.order_store import InMemoryOrderStore
from fuel_delivery.modules.position_simulator import PositionSimulator, ticks_to_arrival
from fuel_delivery.modules.tracking_session import TrackingSessionManager

WS_URL = "/api/v1/tracking/ws"
API_CONFIG = SimulationConfig(tick_interval=0.01, step=0.001, jitter=0.005, eta_minutes_per_degree=100)


def build_client(config: SimulationConfig) -> TestClient:
    manager = TrackingSessionManager(
        ConnectionManager(), PositionSimulator(config, rng=random.Random(3)), InMemoryOrderStore()
    )
    return TestClient(create_app(manager))


@pytest.fixture
def client():
    with build_client(API_CONFIG) as test_client:
        yield test_client


@pytest.fixture
def slow_client():
    with build_client(SimulationConfig(tick_interval=30, step=0.001, jitter=0.01)) as test_client:
        yield test_client


def create_order(client, user_id=42, lat=25.76, lng=-80.19):
    response = client.post("/api/v1/orders", json={"user_id": user_id, "destination": {"lat": lat, "lng": lng}})
    assert response.status_code == 201
    return response.json()["data"]


def auth(ws, user_id):
    ws.send_json({"type": "auth", "userId": user_id})
    assert ws.receive_json() == {"type": "auth_success", "userId": user_id}


def receive_until(ws, message_type, limit):
    messages = []
    for _ in range(limit):
        message = ws.receive_json()
        messages.append(message)
        if message["type"] == message_type:
            return messages
    raise AssertionError(f"no {message_type} within {limit} messages")


class TestOrdersApi:

    def test_create_and_get_order(self, client):
        order = create_order(client)
        assert order["status"] == "IN_PROGRESS"
        assert order["user_id"] == 42

        response = client.get(f"/api/v1/orders/{order['id']}")
        assert response.status_code == 200
        assert response.json()["data"] == order

    def test_list_orders_for_user(self, client):
        first = create_order(client, user_id=1)
        second = create_order(client, user_id=1)
        create_order(client, user_id=2)

        data = client.get("/api/v1/orders", params={"user_id": 1}).json()["data"]
        assert [o["id"] for o in data] == [second["id"], first["id"]]

    def test_missing_order_returns_404(self, client):
        assert client.get("/api/v1/orders/999").status_code == 404
        assert client.patch("/api/v1/orders/999/status", json={"status": "COMPLETED"}).status_code == 404

    def test_invalid_status_is_rejected(self, client):
        order = create_order(client)
        response = client.patch(f"/api/v1/orders/{order['id']}/status", json={"status": "LOST"})
        assert response.status_code == 422


class TestTrackingSocket:

    def test_full_delivery_reaches_every_connection_of_owner(self, client):
        order = create_order(client, user_id=42)
        limit = ticks_to_arrival(API_CONFIG) + 1

        with client.websocket_connect(WS_URL) as phone, client.websocket_connect(WS_URL) as tablet:
            auth(phone, 42)
            auth(tablet, 42)
            phone.send_json({"type": "track_order", "orderId": order["id"]})

            phone_messages = receive_until(phone, "order_status_update", limit)
            tablet_messages = receive_until(tablet, "order_status_update", limit)

        locations = phone_messages[:-1]
        assert all(m["type"] == "driver_location" for m in locations)
        assert locations[-1]["estimatedArrival"] == "Arrived"
        assert locations[-1]["location"] == {"lat": 25.76, "lng": -80.19}
        assert phone_messages[-1] == {"type": "order_status_update", "orderId": order["id"], "status": "COMPLETED"}
        assert tablet_messages == phone_messages

        assert client.get(f"/api/v1/orders/{order['id']}").json()["data"]["status"] == "COMPLETED"
        assert client.get("/api/v1/tracking/active").json()["data"]["simulations"] == []

    def test_foreign_order_gets_error(self, client):
        order = create_order(client, user_id=1)
        with client.websocket_connect(WS_URL) as ws:
            auth(ws, 2)
            ws.send_json({"type": "track_order", "orderId": order["id"]})
            assert ws.receive_json() == {"type": "error", "message": "Order not found"}

        assert client.get("/api/v1/tracking/active").json()["data"]["simulations"] == []

    def test_malformed_message_keeps_connection_open(self, client):
        with client.websocket_connect(WS_URL) as ws:
            ws.send_text("not json at all")
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_binary_frame_keeps_connection_open(self, client):
        with client.websocket_connect(WS_URL) as ws:
            ws.send_bytes(b'{"type": "ping"}')
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_disconnect_unregisters_connection(self, slow_client):
        with slow_client.websocket_connect(WS_URL) as ws:
            auth(ws, 9)
            assert slow_client.get("/api/v1/tracking/active").json()["data"]["connections"] == 1

        assert slow_client.get("/api/v1/tracking/active").json()["data"]["connections"] == 0


class TestAdminControls:

    def test_admin_cancel_stops_simulation(self, slow_client):
        order = create_order(slow_client, user_id=3)
        with slow_client.websocket_connect(WS_URL) as ws:
            auth(ws, 3)
            ws.send_json({"type": "track_order", "orderId": order["id"]})
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            active = slow_client.get("/api/v1/tracking/active").json()["data"]["simulations"]
            assert [s["orderId"] for s in active] == [order["id"]]

            response = slow_client.delete(f"/api/v1/tracking/{order['id']}")
            assert response.json()["data"] == {"orderId": order["id"], "cancelled": True}

        assert slow_client.get("/api/v1/tracking/active").json()["data"]["simulations"] == []
        assert slow_client.delete("/api/v1/tracking/12345").json()["data"]["cancelled"] is False

    def test_status_patch_is_echoed_to_owner(self, slow_client):
        order = create_order(slow_client, user_id=3)
        with slow_client.websocket_connect(WS_URL) as ws:
            auth(ws, 3)
            ws.send_json({"type": "track_order", "orderId": order["id"]})
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            response = slow_client.patch(f"/api/v1/orders/{order['id']}/status", json={"status": "CANCELLED"})
            assert response.json()["data"]["status"] == "CANCELLED"
            assert ws.receive_json() == {"type": "order_status_update", "orderId": order["id"], "status": "CANCELLED"}

        assert slow_client.get("/api/v1/tracking/active").json()["data"]["simulations"] == []
