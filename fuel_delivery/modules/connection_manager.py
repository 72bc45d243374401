# 파일명: fuel_delivery/modules/connection_manager.py
# 역할: 사용자별 WebSocket 연결 상태를 관리하고 메시지를 중계(Broadcast)함

import asyncio
import logging
from typing import Dict, Optional, Set
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from fuel_delivery.core.config import TRACKING_SEND_TIMEOUT_SEC

logger = logging.getLogger(__name__)


def is_open(connection: WebSocket) -> bool:
    """전송 계층 기준으로 아직 열려 있는 연결인지 확인"""
    return (
        connection.client_state == WebSocketState.CONNECTED
        and connection.application_state == WebSocketState.CONNECTED
    )


class ConnectionManager:
    def __init__(self, send_timeout: Optional[float] = None):
        # { 사용자ID: {접속1, 접속2, ...} } 형태로 저장 (여러 기기/탭 동시 접속)
        self.active_connections: Dict[int, Set[WebSocket]] = {}
        self.send_timeout = TRACKING_SEND_TIMEOUT_SEC if send_timeout is None else send_timeout

    def register(self, user_id: int, connection: WebSocket):
        """인증이 끝난 연결을 사용자 아래에 등록 (같은 쌍은 한 번만 저장)"""
        self.active_connections.setdefault(user_id, set()).add(connection)

    def unregister(self, user_id: int, connection: WebSocket):
        """연결 끊김 처리. 등록된 적 없는 쌍이면 아무 일도 하지 않음"""
        connections = self.active_connections.get(user_id)
        if connections is None:
            return
        connections.discard(connection)
        # 남은 연결이 없으면 항목 삭제 (메모리 관리)
        if not connections:
            del self.active_connections[user_id]

    def discard(self, connection: WebSocket):
        """어느 사용자 아래에 있든 연결 제거"""
        for user_id in [u for u, c in self.active_connections.items() if connection in c]:
            self.unregister(user_id, connection)

    def connections_for(self, user_id: int) -> Set[WebSocket]:
        return set(self.active_connections.get(user_id, ()))

    @property
    def user_count(self) -> int:
        return len(self.active_connections)

    @property
    def connection_count(self) -> int:
        return sum(len(c) for c in self.active_connections.values())

    async def send_to(self, connection: WebSocket, message: dict) -> bool:
        """
        연결 하나에 전송. 닫혔거나 전송에 실패하면 False.
        send_timeout 안에 끝나지 않는 연결(읽기를 멈춘 클라이언트)은 목록에서 제외.
        """
        message_type = message.get("type")
        if not is_open(connection):
            logger.debug(f"[WS] skipped closed connection ({message_type})")
            return False
        try:
            await asyncio.wait_for(connection.send_json(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[WS] send stalled over {self.send_timeout}s ({message_type}), dropping connection")
            self.discard(connection)
            return False
        except Exception as e:
            logger.warning(f"[WS] send failed ({message_type}): {e}")
            return False
        return True

    async def broadcast(self, user_id: int, message: dict) -> int:
        """
        해당 사용자의 모든 연결에 동시에 전송.
        - 닫힌 연결은 건너뜀
        - 한 연결의 실패/지연이 나머지 전송을 막지 않음
        - 접속 중인 연결이 없으면 조용히 무시 (추적은 서버에서 계속 진행)
        """
        # 전송 중 등록/해제가 일어나도 안전하도록 복사본으로 순회
        targets = list(self.active_connections.get(user_id, ()))
        if not targets:
            return 0
        results = await asyncio.gather(*(self.send_to(c, message) for c in targets))
        return sum(results)
