from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

from educhat.core import config

# 비밀번호 암호화 설정
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

# 개발 환경에서 세션이 없을 때 사용하는 기본 유저
DEV_USER_ID = "dev-user"

SESSION_USER_KEY = "user_id"


def get_password_hash(password: str) -> str:
    """비밀번호를 해시화합니다."""
    return pwd_context.hash(password[:72])


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """평문 비밀번호와 해시된 비밀번호를 비교합니다."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """JWT 액세스 토큰을 생성합니다."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=ALGORITHM)


def decode_token_subject(token: str) -> Optional[str]:
    """토큰이 유효하면 sub(user_id)를, 아니면 None을 반환합니다."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None


def verify_token(token: str) -> str:
    """
    JWT 토큰을 디코딩하고 유효성을 검증한 뒤 user_id를 반환합니다.
    """
    user_id = decode_token_subject(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def _dev_fallback() -> Optional[str]:
    return DEV_USER_ID if config.APP_ENV == "development" else None


# --- HTTP API 검증 ---

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/login", auto_error=False)


async def get_current_user_id(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> str:
    """
    FastAPI Dependency: 세션 쿠키 -> Bearer 토큰 -> (개발 환경) dev-user 순서로 user_id를 찾습니다.
    """
    session = request.scope.get("session") or {}
    user_id = session.get(SESSION_USER_KEY)
    if user_id:
        return user_id
    if token:
        return verify_token(token)

    user_id = _dev_fallback()
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# --- 웹소켓 검증 ---

def resolve_websocket_user(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    """
    채널을 열기 전에 사용자를 확인합니다. 확인할 수 없으면 None.
    잘못된 토큰은 개발 환경에서도 거부합니다.
    """
    session = websocket.scope.get("session") or {}
    user_id = session.get(SESSION_USER_KEY)
    if user_id:
        return user_id
    if token:
        return decode_token_subject(token)
    return _dev_fallback()
