# api/auth.py
"""Accounts, bearer tokens and the caller-identity dependencies"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response

from api.errors import http_error
from api.schemas import LoginRequest, RegisterRequest
from core.domain import User
from core.errors import ApexFlowError, AuthenticationError
from services.auth_service import AuthService
from services.factory import get_auth_service
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter(prefix="/auth")


def _token_from(request: Request) -> Optional[str]:
    """Bearer header first, then the login cookie."""
    header = request.headers.get("authorization")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise http_error(AuthenticationError("Invalid Authorization header. Use: Bearer <token>"))
        return token.strip()
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_optional_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[User]:
    """
    The caller's account, or None for an anonymous caller.

    A token that is present but invalid is always rejected. Anonymous callers
    are rejected only when REQUIRE_AUTHENTICATION is on.
    """
    token = _token_from(request)
    if token is None:
        if settings.REQUIRE_AUTHENTICATION:
            raise http_error(AuthenticationError("Authentication required"))
        return None
    try:
        return await auth_service.authenticate(token)
    except ApexFlowError as e:
        raise http_error(e)


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise http_error(AuthenticationError("Authentication required"))
    return user


def caller_identity(user: Optional[User], claimed: Optional[str]) -> str:
    """Signed-in callers are always their account id; the claimed name only serves anonymous ones."""
    if user is not None:
        return user.id
    return claimed or "anonymous"


def _signed_in(response: Response, user: User, token: str) -> Dict[str, Any]:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        max_age=settings.JWT_EXPIRES_MINUTES * 60,
    )
    return {"user": user.to_profile(), "token": token, "success": True}


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    try:
        user, token = await auth_service.register(request.email, request.password, request.name)
    except ApexFlowError as e:
        raise http_error(e)
    return _signed_in(response, user, token)


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    try:
        user, token = await auth_service.login(request.email, request.password)
    except ApexFlowError as e:
        logger.warning(f"Failed login for {request.email}")
        raise http_error(e)
    return _signed_in(response, user, token)


@router.get("/profile")
async def profile(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user.to_profile()}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    token = _token_from(request)
    try:
        await auth_service.logout(token)
    except ApexFlowError as e:
        raise http_error(e)
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return {"success": True, "message": "Logged out successfully"}
