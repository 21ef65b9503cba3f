import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from educhat.core import config
from educhat.admin_panel import mount_admin
from educhat.api.deps import registry
from educhat.api.v1.routers import api_router
from educhat.db.database import engine, init_db
from educhat.db.database_redis import RedisManager
from educhat.sockets.chat_socket import router as chat_socket_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="EduAdmin Chat API")

    # CORS: 대시보드가 다른 도메인에서 API를 호출할 수 있도록 허용
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 세션 쿠키 (HTTP와 웹소켓 모두에서 request.session 사용 가능)
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.SESSION_SECRET,
        max_age=config.SESSION_MAX_AGE,
        same_site="lax",
        https_only=config.APP_ENV == "production",
    )

    @app.on_event("startup")
    async def on_startup():
        """
        서버가 시작될 때 테이블 생성 및 (개발 환경) 기본 유저 시딩을 수행합니다.
        """
        await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        """
        서버 종료 시 열린 채널을 닫고 리소스를 해제합니다.
        """
        await registry.close_all()
        await RedisManager.close()  # Redis 연결 풀 닫기

    # REST API와 WebSocket 엔드포인트 연결
    app.include_router(api_router)
    app.include_router(chat_socket_router)

    mount_admin(app, engine)

    @app.get("/")
    async def root():
        """
        서버 상태 확인용 루트 엔드포인트입니다.
        """
        return {"message": "Welcome to EduAdmin Chat API"}

    return app


app = create_app()
