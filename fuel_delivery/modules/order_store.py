# 파일명: fuel_delivery/modules/order_store.py
# 역할: 주문 조회 / 상태 변경 인터페이스 (실제 DB 는 외부 협력 시스템)

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel


class OrderStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class LatLng(BaseModel):
    lat: float
    lng: float


class Order(BaseModel):
    id: int
    user_id: int
    status: OrderStatus
    destination: LatLng


class OrderStore(ABC):
    """
    추적 서비스가 사용하는 주문 저장소의 최소 인터페이스.
    같은 상태로 여러 번 호출해도 안전해야 한다.
    """

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]:
        ...

    @abstractmethod
    async def set_status(self, order_id: int, status: OrderStatus) -> Optional[Order]:
        ...


class InMemoryOrderStore(OrderStore):
    """단일 프로세스용 메모리 저장소"""

    def __init__(self):
        self._orders: Dict[int, Order] = {}
        self._next_id = 1

    async def create_order(self, user_id: int, destination: LatLng,
                           status: OrderStatus = OrderStatus.IN_PROGRESS,
                           order_id: Optional[int] = None) -> Order:
        if order_id is None:
            order_id = self._next_id
        self._next_id = max(self._next_id, order_id + 1)
        order = Order(id=order_id, user_id=user_id, status=status, destination=destination)
        self._orders[order_id] = order
        return order.model_copy()

    async def get_order(self, order_id: int) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy() if order else None

    async def list_orders(self, user_id: int) -> List[Order]:
        # 최신 주문이 먼저 오도록 정렬
        return [o.model_copy() for o in sorted(self._orders.values(), key=lambda o: o.id, reverse=True)
                if o.user_id == user_id]

    async def set_status(self, order_id: int, status: OrderStatus) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return None
        order.status = status
        return order.model_copy()
