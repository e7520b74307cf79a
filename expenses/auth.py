from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
import jwt
from pydantic import BaseModel

from .config import Settings


class AuthError(Exception):
    pass


class InvalidCredentialsError(AuthError):
    pass


class TokenExpiredError(AuthError):
    pass


class InvalidTokenError(AuthError):
    pass


class Claims(BaseModel):
    user_id: UUID
    email: str
    username: str
    is_admin: bool = False
    exp: int


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_token(user: dict, settings: Settings) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(hours=settings.token_ttl_hours)
    claims = Claims(
        user_id=user["id"],
        email=user["email"],
        username=user["username"],
        is_admin=user["is_admin"],
        exp=int(expires_at.timestamp()),
    )
    return jwt.encode(claims.model_dump(mode="json"), settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: Settings) -> Claims:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token expired")
    except jwt.InvalidTokenError:
        raise InvalidTokenError("Invalid token")

    try:
        return Claims(**payload)
    except (TypeError, ValueError):
        raise InvalidTokenError("Token is missing required claims")
