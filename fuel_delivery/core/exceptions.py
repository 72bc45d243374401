# 파일명: fuel_delivery/core/exceptions.py
# 역할: 실시간 추적 소켓에서 클라이언트에게 그대로 돌려줄 에러 정의


class TrackingError(Exception):
    """클라이언트에게 {"type": "error"} 로 전달되는 복구 가능한 오류"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProtocolError(TrackingError):
    """파싱 불가 / 알 수 없는 타입 / 인증 전 요청"""


class OrderAccessError(TrackingError):
    """주문이 없거나, 본인 주문이 아니거나, 진행 중이 아닌 경우"""
