"""Tests for bearer token handling."""

from datetime import timedelta

import pytest
from jose import jwt

from violet_fhir.core.exceptions import UnauthorizedError
from violet_fhir.core.security import Principal, create_access_token, decode_access_token


class TestAccessTokens:
    """Token issue and verification."""

    def test_round_trip(self, settings):
        """A signed token decodes to its principal."""
        token = create_access_token(settings, "user-1", "practitioner", email="a@b.c")
        assert decode_access_token(settings, token) == Principal(
            user_id="user-1", role="practitioner", email="a@b.c"
        )

    def test_expired(self, settings):
        """Expired tokens are rejected."""
        token = create_access_token(
            settings, "user-1", "admin", expires_delta=timedelta(seconds=-1)
        )
        with pytest.raises(UnauthorizedError, match="expired"):
            decode_access_token(settings, token)

    def test_wrong_key(self, settings):
        """Tokens signed with another key are rejected."""
        token = jwt.encode(
            {"sub": "user-1", "role": "admin"}, "another-key", algorithm="HS256"
        )
        with pytest.raises(UnauthorizedError):
            decode_access_token(settings, token)

    def test_missing_role(self, settings):
        """Tokens must carry a role."""
        token = jwt.encode(
            {"sub": "user-1"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
        )
        with pytest.raises(UnauthorizedError):
            decode_access_token(settings, token)

    def test_user_id_claim(self, settings):
        """Tokens naming the user in ``userId`` are accepted."""
        token = jwt.encode(
            {"userId": "user-9", "role": "patient"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(settings, token).user_id == "user-9"
