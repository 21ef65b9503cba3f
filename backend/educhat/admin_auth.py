from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request

from educhat.core import config
from educhat.db.database import AsyncSessionLocal
from educhat.services import user_service

ADMIN_SESSION_KEY = "admin_user_id"


class AdminAuth(AuthenticationBackend):
    async def login(self, request: Request) -> bool:
        form = await request.form()
        email = form.get("username")
        password = form.get("password")

        async with AsyncSessionLocal() as session:
            # 1. 유저 존재 및 비밀번호 확인
            user = await user_service.authenticate_user(session, email, password)

        # 2. 관리자 권한 확인
        if not user or not user.is_admin:
            return False

        # 3. 세션에 관리자 id 저장
        request.session.update({ADMIN_SESSION_KEY: user.id})
        return True

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        user_id = request.session.get(ADMIN_SESSION_KEY)
        if not user_id:
            return False

        # 매 요청마다 권한 재확인
        async with AsyncSessionLocal() as session:
            user = await user_service.get_user(session, user_id)
            return bool(user and user.is_active and user.is_admin)


authentication_backend = AdminAuth(secret_key=config.SESSION_SECRET)
