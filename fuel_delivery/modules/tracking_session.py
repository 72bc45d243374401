# 파일명: fuel_delivery/modules/tracking_session.py
# 역할: 연결별 프로토콜 상태머신. 인증 -> 주문 추적 -> 시뮬레이터 출력 중계

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from fastapi import WebSocket
from pydantic import BaseModel, Field, ValidationError

from fuel_delivery.core.config import SimulationConfig
from fuel_delivery.core.exceptions import OrderAccessError, ProtocolError, TrackingError
from fuel_delivery.modules.connection_manager import ConnectionManager
from fuel_delivery.modules.order_store import (
    InMemoryOrderStore, Order, OrderStatus, OrderStore, TERMINAL_STATUSES,
)
from fuel_delivery.modules.position_simulator import Coordinates, PositionSimulator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# 1. 수신 메시지 DTO
# ---------------------------------------------------------
class AuthMessage(BaseModel):
    # 문자열 "42" 나 true 는 받지 않음
    user_id: int = Field(alias="userId", strict=True, gt=0)


class TrackOrderMessage(BaseModel):
    order_id: int = Field(alias="orderId", strict=True, gt=0)


class SessionState(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AUTHENTICATED = "AUTHENTICATED"
    TRACKING = "TRACKING"


@dataclass(eq=False)
class TrackingSession:
    """연결 하나에 붙는 임시 상태 (저장하지 않음)"""
    connection: WebSocket
    user_id: Optional[int] = None
    order_id: Optional[int] = None

    @property
    def state(self) -> SessionState:
        if self.user_id is None:
            return SessionState.UNAUTHENTICATED
        if self.order_id is None:
            return SessionState.AUTHENTICATED
        return SessionState.TRACKING


# ---------------------------------------------------------
# 2. 송신 메시지
# ---------------------------------------------------------
def error_message(message: str) -> dict:
    return {"type": "error", "message": message}


def driver_location_message(order_id: int, position: Coordinates, eta_label: str) -> dict:
    return {
        "type": "driver_location",
        "orderId": order_id,
        "location": {"lat": position.lat, "lng": position.lng},
        "estimatedArrival": eta_label,
    }


def order_status_message(order: Order) -> dict:
    return {"type": "order_status_update", "orderId": order.id, "status": order.status.value}


# ---------------------------------------------------------
# 3. 세션 매니저
# ---------------------------------------------------------
class TrackingSessionManager:
    """
    수신 메시지를 해석하는 유일한 컴포넌트.
    연결 레지스트리와 주문별 시뮬레이터는 여기(와 시뮬레이터 자신)에서만 변경된다.
    """

    def __init__(self, connections: Optional[ConnectionManager] = None,
                 simulator: Optional[PositionSimulator] = None,
                 orders: Optional[OrderStore] = None):
        self.connections = connections or ConnectionManager()
        self.simulator = simulator or PositionSimulator()
        self.orders = orders or InMemoryOrderStore()

    def open_session(self, connection: WebSocket) -> TrackingSession:
        return TrackingSession(connection=connection)

    async def close_session(self, session: TrackingSession):
        """연결 종료. 시뮬레이션은 주문 단위이므로 여기서 멈추지 않음"""
        if session.user_id is not None:
            self.connections.unregister(session.user_id, session.connection)
            logger.info(f"[WS] user={session.user_id} disconnected (order={session.order_id})")
        session.order_id = None

    async def handle_message(self, session: TrackingSession, raw: Optional[str]):
        """수신 메시지 처리. 어떤 오류도 연결을 끊지 않고 보낸 쪽에만 에러로 응답"""
        try:
            await self._dispatch(session, raw)
        except TrackingError as e:
            await self.connections.send_to(session.connection, error_message(e.message))
        except Exception:
            logger.exception(f"[WS] failed to handle message for user={session.user_id}")
            await self.connections.send_to(session.connection, error_message("Internal server error"))

    async def _dispatch(self, session: TrackingSession, raw: Optional[str]):
        # 텍스트가 아닌 프레임 (바이너리 등)
        if raw is None:
            raise ProtocolError("Invalid message format")
        try:
            content = json.loads(raw)
        except (TypeError, ValueError):
            raise ProtocolError("Invalid message format")
        if not isinstance(content, dict):
            raise ProtocolError("Invalid message format")

        message_type = content.get("type")

        if message_type == "auth":
            await self._authenticate(session, _parse(AuthMessage, content))
        elif message_type == "track_order":
            await self._track_order(session, _parse(TrackOrderMessage, content))
        elif message_type == "stop_tracking":
            await self._stop_tracking(session)
        elif message_type == "ping":
            await self.connections.send_to(session.connection, {"type": "pong"})
        else:
            raise ProtocolError(f"Unknown message type: {message_type}")

    async def _authenticate(self, session: TrackingSession, message: AuthMessage):
        # 한 연결은 한 사용자 아래에만 존재
        if session.user_id is not None and session.user_id != message.user_id:
            self.connections.unregister(session.user_id, session.connection)
            session.order_id = None
        session.user_id = message.user_id
        self.connections.register(message.user_id, session.connection)
        logger.info(f"[WS] user={message.user_id} authenticated")
        await self.connections.send_to(session.connection, {"type": "auth_success", "userId": message.user_id})

    async def _track_order(self, session: TrackingSession, message: TrackOrderMessage):
        if session.user_id is None:
            raise ProtocolError("Not authenticated")

        order = await self.orders.get_order(message.order_id)
        if order is None or order.user_id != session.user_id:
            raise OrderAccessError("Order not found")
        if order.status != OrderStatus.IN_PROGRESS:
            raise OrderAccessError(f"Order is not in progress ({order.status.value})")

        if not self.simulator.is_running(order.id):
            self._start_simulation(order)
        session.order_id = order.id
        logger.info(f"[WS] user={session.user_id} tracking order={order.id}")

    async def _stop_tracking(self, session: TrackingSession):
        if session.user_id is None:
            raise ProtocolError("Not authenticated")
        order_id, session.order_id = session.order_id, None
        await self.connections.send_to(session.connection, {"type": "tracking_stopped", "orderId": order_id})

    def _start_simulation(self, order: Order):
        order_id, owner_id = order.id, order.user_id
        destination = Coordinates(order.destination.lat, order.destination.lng)

        async def on_tick(position: Coordinates, eta_label: str):
            # 주문 주인의 연결에만 전송
            await self.connections.broadcast(owner_id, driver_location_message(order_id, position, eta_label))

        async def on_arrival():
            await self.update_order_status(order_id, OrderStatus.COMPLETED)

        self.simulator.start(order_id, destination, on_tick, on_arrival)

    async def update_order_status(self, order_id: int, status: OrderStatus) -> Optional[Order]:
        """
        주문 상태 저장 후 주인의 모든 연결에 order_status_update 전송.
        종료 상태(완료/취소)로 바뀌면 해당 주문의 시뮬레이션도 중단.
        """
        order = await self.orders.set_status(order_id, status)
        if order is None:
            logger.warning(f"[WS] status update for unknown order={order_id}")
            return None
        if order.status in TERMINAL_STATUSES:
            self.simulator.cancel(order_id)
        await self.connections.broadcast(order.user_id, order_status_message(order))
        return order

    def cancel_tracking(self, order_id: int) -> bool:
        """관리자용 강제 중단"""
        return self.simulator.cancel(order_id)

    async def shutdown(self):
        await self.simulator.shutdown()


def _parse(model, content: dict):
    try:
        return model.model_validate(content)
    except ValidationError:
        raise ProtocolError("Invalid message format")


def build_tracking_manager(config: Optional[SimulationConfig] = None) -> TrackingSessionManager:
    return TrackingSessionManager(
        connections=ConnectionManager(),
        simulator=PositionSimulator(config),
        orders=InMemoryOrderStore(),
    )
