import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()


def _bool(name, default="0"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or (
        f"mysql+pymysql://{os.getenv('DB_USER', 'root')}:{os.getenv('DB_PASSWORD', '')}"
        f"@{os.getenv('DB_HOST', '127.0.0.1')}:{os.getenv('DB_PORT', '3306')}/{os.getenv('DB_NAME', 'auctionhouse')}?charset=utf8mb4"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Motor robusto frente a locks y conexiones caídas
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_timeout": 10,
        "isolation_level": "READ COMMITTED",
    }

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=12)

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")]

    # Pujas
    MIN_INCREMENT_DEFAULT = int(os.getenv("MIN_INCREMENT_DEFAULT", "5"))
    BID_MAX_ATTEMPTS = int(os.getenv("BID_MAX_ATTEMPTS", "2"))
    BID_LOCK_TIMEOUT_SECONDS = int(os.getenv("BID_LOCK_TIMEOUT_SECONDS", "5"))

    # Jobs
    RUN_SCHEDULER = _bool("RUN_SCHEDULER", "1")
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "30"))

    # Broadcaster en vivo (proceso aparte)
    LIVE_BROADCAST_URL = os.getenv("LIVE_BROADCAST_URL", "")
    LIVE_NAMESPACE = os.getenv("LIVE_NAMESPACE", "/live")
    LIVE_RECONNECT_DELAY = float(os.getenv("LIVE_RECONNECT_DELAY", "5"))
    LIVE_PORT = int(os.getenv("WS_PORT", "8081"))
    BROADCAST_SECRET = os.getenv("BROADCAST_SECRET", "broadcast-change-me")
    SSE_QUEUE_SIZE = int(os.getenv("SSE_QUEUE_SIZE", "100"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
