# backend/educhat/api/v1/auth.py
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from educhat.core import config
from educhat.core.security import SESSION_USER_KEY, create_access_token, get_current_user_id
from educhat.db.database import get_db
from educhat.schemas.user import Token, UserLogin, UserRead
from educhat.services import user_service

router = APIRouter()


@router.post("/login", response_model=Token)
async def login(user_in: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    """
    로그인: 세션 쿠키에 user_id를 저장하고 Bearer 토큰도 함께 반환합니다.
    개발 환경에서는 어떤 이메일이든 dev-user(super_admin)로 로그인됩니다.
    """
    if config.APP_ENV == "development":
        user = await user_service.upsert_dev_user(db, email=user_in.email)
    else:
        if not user_in.email or not user_in.password:
            raise HTTPException(status_code=401, detail="Email and password are required")
        user = await user_service.authenticate_user(db, user_in.email, user_in.password)
        if not user:
            raise HTTPException(status_code=401, detail="Invalid email or password")

    request.session[SESSION_USER_KEY] = user.id
    access_token = create_access_token(
        data={"sub": user.id},
        expires_delta=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer", "user": user}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"message": "Logged out successfully"}


@router.get("/user", response_model=UserRead)
async def get_me(current_user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user(db, current_user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
