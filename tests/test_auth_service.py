"""
Tests for AuthService and the token helpers.
"""

from datetime import timedelta

import pytest

from app.core.errors import AuthenticationError, ConflictError
from app.core.security import get_password_hash, verify_password
from app.core.token import create_access_token, verify_token
from app.services.auth_service import AuthService
from app.services.crud import UserCRUD
from tests.conftest import TEST_PASSWORD


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("hunter22")
        assert hashed != "hunter22"
        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)

    def test_garbage_hash_is_rejected(self):
        assert not verify_password("hunter22", "not-a-bcrypt-hash")


class TestRegister:
    async def test_register(self, db):
        user = await AuthService(db).register("dave", "Dave", "hunter22")

        stored = await UserCRUD.get_by_username(db, "dave")
        assert stored.id == user.id
        assert stored.display_name == "Dave"
        assert stored.hashed_password != "hunter22"

    async def test_username_taken(self, db, alice):
        with pytest.raises(ConflictError) as exc:
            await AuthService(db).register("alice", "Another Alice", "hunter22")
        assert exc.value.code == "USERNAME_TAKEN"


class TestAuthenticate:
    async def test_login_issues_token_for_user(self, db, alice):
        user, token = await AuthService(db).authenticate("alice", TEST_PASSWORD)

        assert user.id == alice.id
        assert user.last_login is not None
        assert verify_token(token) == alice.id
        assert await AuthService(db).verify_credential(token) == alice.id

    @pytest.mark.parametrize("username, password", [("alice", "wrong"), ("nobody", TEST_PASSWORD)])
    async def test_bad_credentials(self, db, alice, username, password):
        with pytest.raises(AuthenticationError):
            await AuthService(db).authenticate(username, password)


class TestVerifyCredential:
    @pytest.mark.parametrize("token", [None, "", "not.a.jwt"])
    async def test_missing_or_malformed(self, db, token):
        with pytest.raises(AuthenticationError):
            await AuthService(db).verify_credential(token)

    async def test_expired(self, db, alice):
        token = create_access_token(alice.id, expires_delta=timedelta(seconds=-10))
        with pytest.raises(AuthenticationError):
            await AuthService(db).verify_credential(token)

    async def test_unknown_user(self, db):
        token = create_access_token("deleted-user")
        with pytest.raises(AuthenticationError):
            await AuthService(db).verify_credential(token)
