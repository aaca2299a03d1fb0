from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field, constr
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.auth import TokenData, TokenPair, get_current_user
from quizzer.core.cache import RedisCache, get_cache
from quizzer.core.config import Settings, get_app_settings
from quizzer.core.database import get_db
from quizzer.services.accounts import AccountService

router = APIRouter()


class RegisterRequest(BaseModel):
    username: constr(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: constr(min_length=8, max_length=128)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grade_level: Optional[int] = Field(default=None, ge=1, le=12)


class LoginRequest(BaseModel):
    username: str = Field(description="Username or email")
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class AuthResponse(BaseModel):
    user: dict
    tokens: TokenPair


def get_account_service(
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
    settings: Settings = Depends(get_app_settings),
) -> AccountService:
    return AccountService(db, cache, settings)


def _client(request: Request):
    host = request.client.host if request.client else None
    return request.headers.get("user-agent"), host


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(payload: RegisterRequest, request: Request,
                   accounts: AccountService = Depends(get_account_service)):
    user_agent, ip_address = _client(request)
    user, tokens = await accounts.register(
        payload.username, payload.email, payload.password,
        first_name=payload.first_name, last_name=payload.last_name, grade_level=payload.grade_level,
        user_agent=user_agent, ip_address=ip_address,
    )
    return AuthResponse(user=user, tokens=tokens)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, request: Request,
                accounts: AccountService = Depends(get_account_service)):
    user_agent, ip_address = _client(request)
    user, tokens = await accounts.login(payload.username, payload.password,
                                        user_agent=user_agent, ip_address=ip_address)
    return AuthResponse(user=user, tokens=tokens)


@router.post("/refresh", response_model=TokenPair)
async def refresh(payload: RefreshRequest, accounts: AccountService = Depends(get_account_service)):
    return await accounts.refresh(payload.refresh_token)


@router.post("/logout")
async def logout(user: TokenData = Depends(get_current_user),
                 accounts: AccountService = Depends(get_account_service)):
    await accounts.logout(user)
    return {"message": "Logged out successfully"}


@router.get("/profile")
async def profile(user: TokenData = Depends(get_current_user),
                  accounts: AccountService = Depends(get_account_service)):
    return await accounts.get_profile(user.user_id)


@router.get("/verify")
async def verify(user: TokenData = Depends(get_current_user)):
    return {"valid": True, "user_id": user.sub, "username": user.username, "expires_at": user.exp}
