# 파일명: fuel_delivery/api/v1/endpoints/tracking.py
# 역할: 실시간 주문 추적을 위한 WebSocket 엔드포인트 + 관리자용 시뮬레이션 제어

import logging
from fastapi import APIRouter, Depends, WebSocket
from starlette.requests import HTTPConnection

from fuel_delivery.modules.tracking_session import TrackingSessionManager

logger = logging.getLogger(__name__)

router = APIRouter()


def get_tracking_manager(connection: HTTPConnection) -> TrackingSessionManager:
    return connection.app.state.tracking


# 주소 예시: ws://127.0.0.1:8000/api/v1/tracking/ws
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket,
                             tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    """
    [실시간 주문 추적 소켓]
    - 고객: {"type": "auth", "userId": ..} 로 인증 후 {"type": "track_order", "orderId": ..} 전송
    - 서버: driver_location / order_status_update 를 해당 사용자의 모든 연결로 전송
    """
    # 1. 연결 수락 (아직 인증 전)
    await websocket.accept()
    session = tracking.open_session(websocket)

    try:
        while True:
            # 2. 데이터 수신 (Client -> Server). 바이너리 프레임은 text 가 None 으로 전달되어 에러 응답
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            await tracking.handle_message(session, message.get("text"))

    finally:
        # 3. 연결 끊김 처리 (시뮬레이션은 주문 단위라 계속 진행)
        await tracking.close_session(session)


@router.get("/active")
async def list_active_tracking(tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    simulations = [
        {
            "orderId": state.order_id,
            "location": {"lat": state.position.lat, "lng": state.position.lng},
            "destination": {"lat": state.destination.lat, "lng": state.destination.lng},
            "estimatedArrival": state.eta_label,
            "ticks": state.ticks,
        }
        for state in tracking.simulator.active_orders()
    ]
    return {
        "success": True,
        "data": {
            "simulations": simulations,
            "connected_users": tracking.connections.user_count,
            "connections": tracking.connections.connection_count,
        },
    }


@router.delete("/{order_id}")
async def cancel_tracking(order_id: int, tracking: TrackingSessionManager = Depends(get_tracking_manager)):
    """관리자용: 주문 상태는 그대로 두고 시뮬레이션 타이머만 중단"""
    cancelled = tracking.cancel_tracking(order_id)
    if cancelled:
        logger.info(f"[SIM] order={order_id} cancelled by admin")
    return {"success": True, "data": {"orderId": order_id, "cancelled": cancelled}}
