"""Unit tests for JWT authentication."""

import json
from collections.abc import Generator
from unittest.mock import patch
from uuid import UUID

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, get_signing_key
from src.schemas.auth import TokenPayload, UserContext
from tests.conftest import TEST_PRIVATE_KEY, USER_ID, create_test_token


@pytest.fixture(autouse=True)
def fresh_signing_key(test_settings) -> Generator[None, None, None]:
    get_signing_key.cache_clear()
    yield
    get_signing_key.cache_clear()


class TestDecodeJWT:
    """Tests for decode_jwt."""

    def test_decode_valid_token(self) -> None:
        payload = decode_jwt(create_test_token(app_role="admin"))

        assert payload.sub == USER_ID
        assert payload.email == "test@example.com"
        assert payload.role == "authenticated"
        assert payload.app_role == "admin"

    def test_decode_expired_token(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-60))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED

    def test_decode_token_signed_by_other_key(self) -> None:
        other_key = ec.generate_private_key(ec.SECP256R1())

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(private_key=other_key))

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_decode_malformed_token(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-jwt")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_decode_token_missing_sub(self) -> None:
        token = jwt.encode({"exp": 9999999999, "iat": 1700000000}, TEST_PRIVATE_KEY, algorithm="ES256")

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_hs256_token_rejected(self) -> None:
        token = jwt.encode({"sub": USER_ID, "exp": 9999999999, "iat": 1700000000}, "shared", algorithm="HS256")

        with pytest.raises(AuthError):
            decode_jwt(token)


class TestSigningKey:
    """Tests for get_signing_key."""

    def test_invalid_jwk_json(self) -> None:
        with patch("src.api.middleware.auth.get_settings") as mock_settings:
            mock_settings.return_value.supabase_signing_key_jwk = "{broken"

            with pytest.raises(AuthError, match="Invalid signing key"):
                get_signing_key()

    def test_missing_jwk(self) -> None:
        with patch("src.api.middleware.auth.get_settings") as mock_settings:
            mock_settings.return_value.supabase_signing_key_jwk = ""

            with pytest.raises(AuthError, match="not configured"):
                get_signing_key()

    def test_loads_ec_public_key(self, test_settings) -> None:
        key = get_signing_key()

        assert json.loads(test_settings.supabase_signing_key_jwk)["kty"] == "EC"
        assert isinstance(key, ec.EllipticCurvePublicKey)


class TestUserContext:
    """Tests for token payload conversion."""

    def test_app_metadata_role_wins(self) -> None:
        payload = TokenPayload(
            sub=USER_ID, role="authenticated", app_metadata={"role": "admin"}, exp=2, iat=1
        )

        context = payload.to_user_context()

        assert context.user_id == UUID(USER_ID)
        assert context.role == "admin"

    def test_falls_back_to_role_claim(self) -> None:
        payload = TokenPayload(sub=USER_ID, role="authenticated", exp=2, iat=1)

        assert payload.to_user_context().role == "authenticated"

    def test_has_role_is_case_insensitive(self) -> None:
        context = UserContext(user_id=UUID(USER_ID), role="Admin")

        assert context.has_role("admin") is True
        assert UserContext(user_id=UUID(USER_ID)).has_role("admin") is False
