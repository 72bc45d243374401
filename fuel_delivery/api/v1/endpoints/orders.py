# 주문 조회 / 생성 / 상태 변경 로직

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fuel_delivery.api.v1.endpoints.tracking import get_tracking_manager
from fuel_delivery.modules.order_store import LatLng, OrderStatus
from fuel_delivery.modules.tracking_session import TrackingSessionManager

router = APIRouter()


class CreateOrderRequest(BaseModel):
    user_id: int
    destination: LatLng


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


@router.post("", status_code=201)
async def create_order(req: CreateOrderRequest,
                       tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    # 신규 주문은 항상 진행 중 상태로 생성
    order = await tracking.orders.create_order(req.user_id, req.destination)
    return {"success": True, "data": order.model_dump(mode="json")}


@router.get("")
async def list_orders(user_id: int, tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    orders = await tracking.orders.list_orders(user_id)
    return {"success": True, "data": [o.model_dump(mode="json") for o in orders]}


@router.get("/{order_id}")
async def get_order(order_id: int, tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    order = await tracking.orders.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "data": order.model_dump(mode="json")}


@router.patch("/{order_id}/status")
async def update_order_status(order_id: int, req: StatusUpdateRequest,
                              tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    """
    관리자/기사 쪽 상태 변경. 소켓으로 주문 주인에게 order_status_update 가 전송되고,
    완료/취소로 바뀌면 진행 중인 위치 시뮬레이션도 멈춘다.
    """
    order = await tracking.update_order_status(order_id, req.status)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "data": order.model_dump(mode="json")}
