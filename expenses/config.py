import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_JWT_SECRET = "dev-secret-key"

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = Field(default=24, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    admin_email: Optional[str] = None
    admin_username: str = "admin"
    admin_password: Optional[str] = None
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    model_config = ConfigDict(frozen=True)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from the environment (and a local .env file, if any).

    Call once at process start and pass the result down; nothing else in the
    package reads environment variables.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    values = {}
    for key in (
        "jwt_secret", "jwt_algorithm", "token_ttl_hours", "bcrypt_rounds",
        "admin_email", "admin_username", "admin_password", "log_level",
        "host", "port",
    ):
        raw = env.get(key.upper())
        if raw:
            values[key] = raw

    origins = env.get("CORS_ORIGINS")
    if origins:
        values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    settings = Settings(**values)
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set, using the development secret")
    return settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
