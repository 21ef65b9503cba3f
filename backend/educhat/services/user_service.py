# backend/educhat/services/user_service.py
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from educhat.core.security import DEV_USER_ID, get_password_hash, verify_password
from educhat.db.models.user import User, UserRole


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def upsert_dev_user(db: AsyncSession, email: Optional[str] = None) -> User:
    """
    개발 환경용 super_admin 유저를 만들거나 갱신합니다.
    """
    user = await db.get(User, DEV_USER_ID)
    if user is None:
        user = User(
            id=DEV_USER_ID,
            email=email or "dev@example.com",
            first_name="Development",
            last_name="User",
            role=UserRole.SUPER_ADMIN,
        )
        db.add(user)
    elif email:
        user.email = email

    await db.commit()
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """
    로그인 비즈니스 로직: 자격 증명 확인. 실패 시 None 반환 (라우터에서 예외 처리)
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if not user or not user.is_active or not verify_password(password, user.password):
        return None
    return user


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: UserRole = UserRole.TEACHER,
) -> Optional[User]:
    """이미 존재하는 이메일이면 None을 반환합니다."""
    result = await db.execute(select(User).where(User.email == email))
    if result.scalars().first():
        return None

    new_user = User(
        email=email,
        password=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)
    return new_user
