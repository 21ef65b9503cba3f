import os
from pathlib import Path

from dotenv import load_dotenv

# 루트 .env 위치: backend/educhat/core/../../../.env -> Project Root
env_path = Path(__file__).resolve().parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Database ---
POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB")

# DATABASE_URL이 있으면 우선 사용 (테스트/로컬에서는 sqlite+aiosqlite 등)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)
SQL_ECHO = _get_bool("SQL_ECHO", False)

# --- Redis ---
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CHAT_NOTIFY_REDIS = _get_bool("CHAT_NOTIFY_REDIS", True)

# --- Auth / Session ---
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-very-secret")
SESSION_SECRET = os.getenv("SESSION_SECRET", SECRET_KEY)
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(7 * 24 * 60 * 60)))  # 1주

# --- CORS ---
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")]

# --- Chat ---
# broadcast: 접속한 모든 채널에 전송 / targeted: 보낸 사람과 받는 사람에게만 전송
CHAT_DELIVERY_MODE = os.getenv("CHAT_DELIVERY_MODE", "broadcast")
CHAT_HEARTBEAT_INTERVAL = float(os.getenv("CHAT_HEARTBEAT_INTERVAL", "20"))
CHAT_HEARTBEAT_TIMEOUT = float(os.getenv("CHAT_HEARTBEAT_TIMEOUT", "60"))
