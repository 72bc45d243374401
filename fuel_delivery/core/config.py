# 파일명: fuel_delivery/core/config.py
# 역할: .env 기반 서버 설정 및 기사 위치 시뮬레이션 상수

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# .env 파일 로드 (상위 폴더를 거슬러 올라가며 찾음)
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 쉼표로 구분된 허용 출처 목록 ("*" 은 개발용)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# 1. 시뮬레이션 주기 (초)
TRACKING_TICK_INTERVAL_SEC = float(os.getenv("TRACKING_TICK_INTERVAL_SEC", "3.0"))

# 2. 틱당 이동 거리 (위도/경도 단위, 0.001 ≒ 110m)
TRACKING_STEP_DEG = float(os.getenv("TRACKING_STEP_DEG", "0.001"))

# 3. 출발 위치 오차 범위. STEP 과 함께 조정해야 도착까지의 틱 수가 정해짐
TRACKING_JITTER_DEG = float(os.getenv("TRACKING_JITTER_DEG", "0.01"))

# 4. 남은 거리(도) -> 분 환산 계수
TRACKING_ETA_MINUTES_PER_DEG = float(os.getenv("TRACKING_ETA_MINUTES_PER_DEG", "100"))

# 5. 소켓 하나에 메시지를 보낼 때 기다리는 최대 시간 (초). 넘기면 해당 연결을 목록에서 제외
TRACKING_SEND_TIMEOUT_SEC = float(os.getenv("TRACKING_SEND_TIMEOUT_SEC", "1.0"))


@dataclass(frozen=True)
class SimulationConfig:
    """
    기사 위치 시뮬레이터 설정값 묶음.
    테스트에서는 tick_interval 을 0 에 가깝게 넣어 빠르게 수렴시킨다.
    """
    tick_interval: float = TRACKING_TICK_INTERVAL_SEC
    step: float = TRACKING_STEP_DEG
    jitter: float = TRACKING_JITTER_DEG
    eta_minutes_per_degree: float = TRACKING_ETA_MINUTES_PER_DEG

    def __post_init__(self):
        if self.step <= 0:
            raise ValueError("step 은 0 보다 커야 합니다.")
        if self.jitter < 0:
            raise ValueError("jitter 는 음수일 수 없습니다.")
        if self.tick_interval < 0:
            raise ValueError("tick_interval 은 음수일 수 없습니다.")
        if self.eta_minutes_per_degree <= 0:
            raise ValueError("eta_minutes_per_degree 는 0 보다 커야 합니다.")
