"""Tests for account registration, login and token verification."""
from datetime import timedelta

import jwt
import pytest

from config import settings
from core.domain import utc_now
from core.errors import AuthenticationError, EmailInUseError, ValidationError
from infrastructure.repositories import SQLUserRepository
from services.auth_service import AuthService, hash_password, verify_password

SECRET = "test-secret-that-is-at-least-32-bytes"


@pytest.fixture
def auth(session) -> AuthService:
    return AuthService(SQLUserRepository(session), secret=SECRET)


class TestPasswords:

    def test_hash_verifies_only_its_password(self):
        hashed = hash_password("hunter22")

        assert hashed != "hunter22"
        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert not verify_password("hunter22", "not-a-bcrypt-hash")


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_returns_usable_token(self, auth):
        user, token = await auth.register(" Dana@Example.com ", "hunter22", "Dana")

        assert user.email == "dana@example.com"
        assert user.password_hash != "hunter22"
        assert (await auth.authenticate(token)).id == user.id

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, auth):
        await auth.register("dana@example.com", "hunter22", "Dana")

        with pytest.raises(EmailInUseError):
            await auth.register("DANA@example.com", "other-pass", "Other Dana")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password,name,message", [
        ("not-an-email", "hunter22", "Dana", "valid email"),
        ("dana@example.com", "abc", "Dana", "at least"),
        ("dana@example.com", "x" * 73, "Dana", "at most"),
        ("dana@example.com", "hunter22", "  ", "Name is required"),
    ])
    async def test_invalid_registration(self, auth, email, password, name, message):
        with pytest.raises(ValidationError, match=message):
            await auth.register(email, password, name)


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_with_correct_password(self, auth):
        registered, _ = await auth.register("dana@example.com", "hunter22", "Dana")

        user, token = await auth.login("DANA@example.com", "hunter22")

        assert user.id == registered.id
        assert auth.decode(token)["sub"] == registered.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password", [
        ("dana@example.com", "wrong-pass"),
        ("nobody@example.com", "hunter22"),
    ])
    async def test_bad_credentials_share_one_message(self, auth, email, password):
        await auth.register("dana@example.com", "hunter22", "Dana")

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth.login(email, password)


class TestTokens:

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, auth):
        _, token = await auth.register("dana@example.com", "hunter22", "Dana")

        await auth.logout(token)

        with pytest.raises(AuthenticationError, match="revoked"):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_other_sessions_survive_logout(self, auth):
        _, first = await auth.register("dana@example.com", "hunter22", "Dana")
        _, second = await auth.login("dana@example.com", "hunter22")

        await auth.logout(first)

        assert (await auth.authenticate(second)).email == "dana@example.com"

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, auth):
        user, _ = await auth.register("dana@example.com", "hunter22", "Dana")
        past = utc_now() - timedelta(hours=2)
        token = jwt.encode(
            {"sub": user.id, "jti": "old", "iat": past, "exp": past + timedelta(hours=1)},
            SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(AuthenticationError, match="expired"):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_token_signed_with_other_secret_rejected(self, auth):
        user, _ = await auth.register("dana@example.com", "hunter22", "Dana")
        forged = AuthService(auth.user_repo, secret="someone-else-entirely-different-key").issue_token(user)

        with pytest.raises(AuthenticationError, match="Invalid token"):
            await auth.authenticate(forged)

    @pytest.mark.asyncio
    async def test_token_without_jti_rejected(self, auth):
        token = jwt.encode({"sub": "u1", "exp": utc_now() + timedelta(hours=1)}, SECRET)

        with pytest.raises(AuthenticationError, match="Invalid token"):
            await auth.authenticate(token)
