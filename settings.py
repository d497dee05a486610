import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:3001"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s=%r, using %s", name, raw, default)
        return default


def _bool_env(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Settings:
    store_backend: str = "firestore"
    firestore_project_id: str = "musicstreamlite"
    firebase_credentials: Optional[str] = None
    jwt_secret: Optional[str] = None
    jwks_uri: Optional[str] = None
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    bypass_auth: bool = False
    refresh_workers: int = 2
    refresh_queue_size: int = 1000
    refresh_submit_timeout: float = 0.5
    cors_origins: List[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))
    log_level: str = "INFO"
    environment: str = "development"
    port: int = 8080


def load_settings() -> Settings:
    """Reads the service configuration from the environment (and .env)."""
    load_dotenv()
    origins = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return Settings(
        store_backend=os.getenv("STORE_BACKEND", "firestore").lower(),
        firestore_project_id=(
            os.getenv("FIRESTORE_PROJECT_ID") or os.getenv("PROJECT_ID") or "musicstreamlite"
        ),
        firebase_credentials=os.getenv("FIREBASE_CREDENTIALS"),
        jwt_secret=os.getenv("JWT_SECRET"),
        jwks_uri=os.getenv("JWKS_URI"),
        jwt_issuer=os.getenv("JWT_ISSUER"),
        jwt_audience=os.getenv("JWT_AUDIENCE"),
        bypass_auth=_bool_env("BYPASS_AUTH"),
        refresh_workers=max(1, _int_env("REFRESH_WORKERS", 2)),
        refresh_queue_size=max(1, _int_env("REFRESH_QUEUE_SIZE", 1000)),
        refresh_submit_timeout=max(0.0, _float_env("REFRESH_SUBMIT_TIMEOUT", 0.5)),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        environment=os.getenv("ENVIRONMENT", "development"),
        port=_int_env("PORT", 8080),
    )
