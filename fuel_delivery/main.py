# 파일명: fuel_delivery/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fuel_delivery.api.v1.endpoints import orders, tracking
from fuel_delivery.core.config import CORS_ORIGINS, LOG_LEVEL
from fuel_delivery.modules.tracking_session import TrackingSessionManager, build_tracking_manager

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def create_app(tracking_manager: Optional[TrackingSessionManager] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # 종료 시 남아 있는 주문별 타이머 모두 정리
        await app.state.tracking.shutdown()
        logger.info("tracking service stopped")

    app = FastAPI(title="Fuel Delivery Tracking", lifespan=lifespan)
    app.state.tracking = tracking_manager or build_tracking_manager()

    # 브라우저/모바일 앱 접속 허용 (CORS) 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 라우터 등록
    app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(tracking.router, prefix="/api/v1/tracking", tags=["Tracking"])

    @app.get("/")
    def read_root():
        return {"message": "연료 배달 주문 추적 API 서버 (Orders + Tracking)"}

    return app


app = create_app()
