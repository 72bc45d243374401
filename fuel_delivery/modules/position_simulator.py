"""
===============================================================================
[기사 위치 시뮬레이터]
- 역할: 주문 하나당 백그라운드 태스크 하나를 두고, 가상의 기사 위치를
        목적지 쪽으로 일정 주기마다 이동시키며 남은 시간(ETA)을 계산.
- 출발 위치: 목적지 + 작은 무작위 오차 ("근처에 있지만 아직 도착 전")
- 종료 조건: 도착(거리 0) 또는 cancel() 호출. 그 외에는 접속자가 없어도 계속 진행.
===============================================================================
"""

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional

from fuel_delivery.core.config import SimulationConfig

logger = logging.getLogger(__name__)

ARRIVED_LABEL = "Arrived"


class Coordinates(NamedTuple):
    lat: float
    lng: float


TickCallback = Callable[[Coordinates, str], Awaitable[None]]
ArrivalCallback = Callable[[], Awaitable[None]]


@dataclass
class SimulatedDriverState:
    order_id: int
    position: Coordinates
    destination: Coordinates
    eta_label: str
    ticks: int = 0
    arrived: bool = False


# ---------------------------------------------------------
# 1. 이동 / 거리 / ETA 계산 (순수 함수)
# ---------------------------------------------------------
def _step_axis(current: float, target: float, step: float) -> float:
    # 남은 거리가 한 걸음 이내면 목적지 값으로 고정 (지나치지 않음)
    if abs(target - current) <= step:
        return target
    return current + step if current < target else current - step


def step_towards(current: Coordinates, target: Coordinates, step: float) -> Coordinates:
    return Coordinates(
        _step_axis(current.lat, target.lat, step),
        _step_axis(current.lng, target.lng, step),
    )


def distance(a: Coordinates, b: Coordinates) -> float:
    """직선(유클리드) 거리, 단위는 도. 시뮬레이션 용도라 대권거리는 쓰지 않음"""
    return math.hypot(a.lat - b.lat, a.lng - b.lng)


def minutes_remaining(dist: float, minutes_per_degree: float) -> int:
    return math.ceil(dist * minutes_per_degree)


def format_eta(minutes: int) -> str:
    if minutes <= 0:
        return ARRIVED_LABEL
    return f"{minutes} min"


def ticks_to_arrival(config: SimulationConfig) -> int:
    """오차 범위 안의 어떤 출발점이든 도착까지 필요한 틱 수의 상한 (부동소수 오차로 +1)"""
    return math.ceil(config.jitter / config.step) + 1


# ---------------------------------------------------------
# 2. 주문별 타이머 관리
# ---------------------------------------------------------
class PositionSimulator:
    def __init__(self, config: Optional[SimulationConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random()
        self._states: Dict[int, SimulatedDriverState] = {}
        self._tasks: Dict[int, asyncio.Task] = {}

    def is_running(self, order_id: int) -> bool:
        return order_id in self._tasks

    def get(self, order_id: int) -> Optional[SimulatedDriverState]:
        return self._states.get(order_id)

    def active_orders(self) -> List[SimulatedDriverState]:
        return [self._states[order_id] for order_id in self._tasks if order_id in self._states]

    def initial_position(self, destination: Coordinates) -> Coordinates:
        jitter = self.config.jitter
        return Coordinates(
            destination.lat + self._rng.uniform(-jitter, jitter),
            destination.lng + self._rng.uniform(-jitter, jitter),
        )

    def advance(self, state: SimulatedDriverState) -> bool:
        """한 틱 진행. 도착했으면 True"""
        state.position = step_towards(state.position, state.destination, self.config.step)
        state.ticks += 1
        minutes = minutes_remaining(distance(state.position, state.destination),
                                    self.config.eta_minutes_per_degree)
        state.eta_label = format_eta(minutes)
        return minutes <= 0

    def start(self, order_id: int, destination: Coordinates,
              on_tick: TickCallback, on_arrival: ArrivalCallback) -> SimulatedDriverState:
        """
        주문 추적 시작. 이미 진행 중인 주문이면 기존 상태를 그대로 반환
        (주문당 타이머는 하나뿐).
        """
        if order_id in self._tasks:
            return self._states[order_id]

        destination = Coordinates(*destination)
        position = self.initial_position(destination)
        minutes = minutes_remaining(distance(position, destination), self.config.eta_minutes_per_degree)
        state = SimulatedDriverState(
            order_id=order_id,
            position=position,
            destination=destination,
            eta_label=format_eta(minutes),
        )
        self._states[order_id] = state
        self._tasks[order_id] = asyncio.create_task(
            self._run(state, on_tick, on_arrival), name=f"driver-sim-{order_id}"
        )
        logger.info(f"[SIM] started order={order_id} from={position} to={destination}")
        return state

    async def _run(self, state: SimulatedDriverState, on_tick: TickCallback, on_arrival: ArrivalCallback):
        order_id = state.order_id
        try:
            while True:
                await asyncio.sleep(self.config.tick_interval)
                arrived = self.advance(state)
                try:
                    await on_tick(state.position, state.eta_label)
                except Exception:
                    logger.exception(f"[SIM] tick callback failed for order={order_id}")
                if arrived:
                    break

            state.arrived = True
            logger.info(f"[SIM] order={order_id} arrived after {state.ticks} ticks")
            try:
                await on_arrival()
            except Exception:
                logger.exception(f"[SIM] arrival callback failed for order={order_id}")
        except asyncio.CancelledError:
            logger.info(f"[SIM] order={order_id} cancelled")
            raise
        finally:
            self._release(order_id, asyncio.current_task())

    def _release(self, order_id: int, task: Optional[asyncio.Task]):
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]
            self._states.pop(order_id, None)

    def cancel(self, order_id: int) -> bool:
        """진행 중인 시뮬레이션 중단. 없는 주문이면 False (오류 아님)"""
        task = self._tasks.pop(order_id, None)
        self._states.pop(order_id, None)
        if task is None:
            return False
        # 도착 콜백 안에서 자기 자신을 취소하는 경우: 이미 끝나가는 중이므로 정리만 함
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def shutdown(self):
        """프로세스 종료 시 모든 타이머 정리"""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._states.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"[SIM] stopped {len(tasks)} simulation(s)")
