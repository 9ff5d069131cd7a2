import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./food_service.db"
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_lifetime_seconds: int = 3600
    bcrypt_rounds: int = 10
    preparing_minutes: int = 15
    delivery_minutes: int = 20
    sweep_interval_seconds: float = 30.0
    sweep_enabled: bool = True


# ----- Config (env overrides the local development defaults above) -----
ENV_VARS = {
    "database_url": ("DATABASE_URL", str),
    "jwt_secret": ("JWT_SECRET", str),
    "jwt_algorithm": ("JWT_ALGORITHM", str),
    "jwt_lifetime_seconds": ("JWT_LIFETIME_SECONDS", int),
    "bcrypt_rounds": ("BCRYPT_ROUNDS", int),
    "preparing_minutes": ("ORDER_PREPARING_MINUTES", int),
    "delivery_minutes": ("ORDER_DELIVERY_MINUTES", int),
    "sweep_interval_seconds": ("ORDER_SWEEP_INTERVAL_SECONDS", float),
    "sweep_enabled": ("ORDER_SWEEP_ENABLED", _bool),
}


def get_settings() -> Settings:
    values = {}
    for field, (name, cast) in ENV_VARS.items():
        raw = os.getenv(name)
        if raw is not None:
            values[field] = cast(raw)
    return Settings(**values)


# Tracking client
FOOD_SERVICE_URL = os.getenv("FOOD_SERVICE_URL", "http://localhost:8000")
TRACKING_POLL_SECONDS = float(os.getenv("TRACKING_POLL_SECONDS", 10))
