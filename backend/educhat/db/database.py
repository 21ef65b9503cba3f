import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from educhat.core import config

logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """
    서버 시작 시 테이블을 생성하고, 개발 환경이면 기본 관리자 계정을 시딩합니다.
    """
    # Base.metadata 등록을 위해 모델 임포트
    from educhat.db.models import user, chat_data  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if config.APP_ENV != "development":
        return

    from educhat.services import user_service

    async with AsyncSessionLocal() as session:
        await user_service.upsert_dev_user(session)
        logger.info("--- 개발 환경 초기화 완료 (dev-user 준비됨) ---")
