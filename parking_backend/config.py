import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

# --- DEFAULTS ---
DATABASE_URL = "sqlite:///parking_system.db"
COMPLETION_TIMEOUT = 30.0  # seconds, <= 0 waits forever
LOG_LEVEL = "INFO"
HOST = "127.0.0.1"
PORT = 8000


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime configuration of the service."""
    database_url: str = DATABASE_URL
    completion_timeout_s: Optional[float] = COMPLETION_TIMEOUT
    log_level: str = LOG_LEVEL
    host: str = HOST
    port: int = PORT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = _env_float("PARKING_COMPLETION_TIMEOUT", COMPLETION_TIMEOUT)
        return cls(
            database_url=os.environ.get("PARKING_DB_URL", DATABASE_URL),
            completion_timeout_s=timeout if timeout > 0 else None,
            log_level=os.environ.get("PARKING_LOG_LEVEL", LOG_LEVEL).upper(),
            host=os.environ.get("PARKING_HOST", HOST),
            port=_env_int("PARKING_PORT", PORT),
            cors_origins=_env_list("PARKING_CORS_ORIGINS", ["*"]),
        )


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
