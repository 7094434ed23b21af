# services/auth_service.py
"""Account registration, login and bearer-token verification"""
import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt

from core.domain import User
from core.errors import AuthenticationError, ValidationError
from core.interfaces import IUserRepository
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """
    Issues HS256 JWTs carrying the user id (sub) and a unique token id (jti).

    Tokens are stateless except for logout, which records the jti in a
    denylist until the token's own expiry.
    """

    def __init__(
        self,
        user_repo: IUserRepository,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ):
        self.user_repo = user_repo
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.expires = timedelta(minutes=expires_minutes or settings.JWT_EXPIRES_MINUTES)

    # ============= Tokens =============

    def issue_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "name": user.name,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + self.expires,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "jti", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected token: {e}")
            raise AuthenticationError("Invalid token")

    async def authenticate(self, token: str) -> User:
        claims = self.decode(token)
        if await self.user_repo.is_token_revoked(claims["jti"]):
            raise AuthenticationError("Token has been revoked")
        user = await self.user_repo.get_by_id(claims["sub"])
        if user is None:
            raise AuthenticationError("Account no longer exists")
        return user

    # ============= Accounts =============

    async def register(self, email: str, password: str, name: str) -> Tuple[User, str]:
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("A valid email address is required")
        if not name:
            raise ValidationError("Name is required")
        if len(password or "") < settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

        password_hash = await asyncio.to_thread(hash_password, password)
        user = await self.user_repo.create(User(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            password_hash=password_hash,
        ))
        return user, self.issue_token(user)

    async def login(self, email: str, password: str) -> Tuple[User, str]:
        user = await self.user_repo.get_by_email((email or "").strip().lower())
        # Same message for unknown email and wrong password
        if user is None or not await asyncio.to_thread(verify_password, password or "", user.password_hash):
            raise AuthenticationError("Invalid email or password")
        logger.info(f"User {user.id} logged in")
        return user, self.issue_token(user)

    async def logout(self, token: str) -> None:
        claims = self.decode(token)
        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        await self.user_repo.revoke_token(claims["jti"], expires_at)
        logger.info(f"User {claims['sub']} logged out")
