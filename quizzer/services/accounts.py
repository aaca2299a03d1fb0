"""
User accounts: registration, login, token refresh, logout and profiles.

Refresh tokens are persisted as ``UserSession`` rows so they can be rotated
and revoked; access tokens are revoked through the redis blacklist.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.auth import (
    TokenData, TokenPair, create_token_pair, decode_token, hash_password, password_problems, verify_password,
)
from quizzer.core.cache import RedisCache
from quizzer.core.config import Settings
from quizzer.core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from quizzer.models.orm import User, UserSession, utcnow

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: AsyncSession, cache: RedisCache, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings

    def _issue(self, user: User) -> TokenPair:
        return create_token_pair(self.settings, str(user.id), user.username, user.email)

    def _new_session(self, user_id: uuid.UUID, tokens: TokenPair, user_agent: Optional[str],
                     ip_address: Optional[str]) -> UserSession:
        return UserSession(
            user_id=user_id,
            refresh_token=tokens.refresh_token,
            expires_at=utcnow() + timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS),
            user_agent=user_agent,
            ip_address=ip_address,
        )

    async def _cache_profile(self, user: User) -> dict:
        profile = user.to_profile()
        await self.cache.set_user(user.id, profile, expire=self.settings.USER_CACHE_TTL)
        return profile

    async def register(self, username: str, email: str, password: str, *,
                       first_name: Optional[str] = None, last_name: Optional[str] = None,
                       grade_level: Optional[int] = None, user_agent: Optional[str] = None,
                       ip_address: Optional[str] = None) -> Tuple[dict, TokenPair]:
        problems = password_problems(self.settings, password)
        if problems:
            raise ValidationError("Password must contain " + ", ".join(problems), details={"password": problems})

        username, email = username.strip().lower(), email.strip().lower()
        existing = await self.db.scalar(
            select(User).where(or_(User.username == username, User.email == email))
        )
        if existing is not None:
            field = "username" if existing.username == username else "email"
            raise ConflictError(f"A user with this {field} already exists", details={"field": field})

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            grade_level=grade_level,
        )
        self.db.add(user)
        await self.db.flush()

        tokens = self._issue(user)
        self.db.add(self._new_session(user.id, tokens, user_agent, ip_address))
        await self.db.commit()

        logger.info(f"Registered user {user.username} ({user.id})")
        return await self._cache_profile(user), tokens

    async def login(self, identifier: str, password: str, *, user_agent: Optional[str] = None,
                    ip_address: Optional[str] = None) -> Tuple[dict, TokenPair]:
        identifier = identifier.strip().lower()
        user = await self.db.scalar(
            select(User).where(or_(User.username == identifier, User.email == identifier))
        )
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", identifier)
            raise AuthenticationError("Invalid username or password")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        user.last_login = utcnow()
        tokens = self._issue(user)
        self.db.add(self._new_session(user.id, tokens, user_agent, ip_address))
        await self.db.commit()

        logger.info(f"User {user.username} logged in")
        return await self._cache_profile(user), tokens

    async def refresh(self, refresh_token: str) -> TokenPair:
        data = decode_token(self.settings, refresh_token, expected_type="refresh")
        session = await self.db.scalar(
            select(UserSession).where(
                UserSession.refresh_token == refresh_token,
                UserSession.user_id == uuid.UUID(data.sub),
                UserSession.is_active.is_(True),
                UserSession.expires_at > utcnow(),
            )
        )
        if session is None:
            raise AuthenticationError("Refresh token is not recognised or has been revoked")

        user = await self.db.get(User, session.user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Account is not available")

        tokens = self._issue(user)
        session.refresh_token = tokens.refresh_token
        session.expires_at = utcnow() + timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)
        await self.db.commit()
        return tokens

    async def logout(self, token: TokenData) -> None:
        remaining = token.exp - int(datetime.now(timezone.utc).timestamp())
        await self.cache.blacklist_token(token.jti, remaining)

        user_id = uuid.UUID(token.sub)
        await self.db.execute(
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        await self.db.commit()
        await self.cache.drop_user(user_id)
        logger.info(f"User {token.username} logged out")

    async def get_profile(self, user_id: uuid.UUID) -> dict:
        cached = await self.cache.get_user(user_id)
        if cached:
            return cached

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return await self._cache_profile(user)
