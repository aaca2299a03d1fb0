import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel

from quizzer.core.cache import RedisCache, get_cache
from quizzer.core.config import Settings, get_app_settings
from quizzer.core.errors import AuthenticationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    sub: str
    username: str
    email: str
    type: Literal["access", "refresh"]
    jti: str
    exp: int

    @property
    def user_id(self) -> uuid.UUID:
        return uuid.UUID(self.sub)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def password_problems(settings: Settings, password: str) -> List[str]:
    """Rules from the PASSWORD_* settings that the password breaks."""
    problems = []
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        problems.append(f"at least {settings.PASSWORD_MIN_LENGTH} characters")
    if settings.PASSWORD_REQUIRE_LOWERCASE and not any(c.islower() for c in password):
        problems.append("a lowercase letter")
    if settings.PASSWORD_REQUIRE_UPPERCASE and not any(c.isupper() for c in password):
        problems.append("an uppercase letter")
    if settings.PASSWORD_REQUIRE_NUMBERS and not any(c.isdigit() for c in password):
        problems.append("a number")
    if settings.PASSWORD_REQUIRE_SPECIAL and all(c.isalnum() for c in password):
        problems.append("a special character")
    return problems


def create_token(settings: Settings, user_id: str, username: str, email: str,
                 token_type: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "username": username,
        "email": email,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def create_token_pair(settings: Settings, user_id: str, username: str, email: str) -> TokenPair:
    access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return TokenPair(
        access_token=create_token(settings, user_id, username, email, "access", access_ttl),
        refresh_token=create_token(settings, user_id, username, email, "refresh", refresh_ttl),
        expires_in=int(access_ttl.total_seconds()),
    )


def decode_token(settings: Settings, token: str, expected_type: Optional[str] = None) -> TokenData:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
        data = TokenData(**payload)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except (jwt.InvalidTokenError, ValueError, TypeError):
        raise AuthenticationError("Invalid token")
    if expected_type and data.type != expected_type:
        raise AuthenticationError(f"Expected a {expected_type} token")
    return data


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_app_settings),
    cache: RedisCache = Depends(get_cache),
) -> TokenData:
    if creds is None or creds.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token")
    user = decode_token(settings, creds.credentials, expected_type="access")
    if await cache.is_blacklisted(user.jti):
        raise AuthenticationError("Token has been revoked")
    return user
