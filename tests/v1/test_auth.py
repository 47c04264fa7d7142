# tests/v1/test_auth.py
"""Tests for bearer token validation."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import status
from jose import jwt

from chatroom_stage.core.security import InvalidTokenError, create_access_token, decode_access_token
from chatroom_stage.core.settings import settings
from tests.conftest import ALICE


class TestTokenHelpers:
    def test_round_trip_subject(self):
        assert decode_access_token(create_access_token(ALICE)) == ALICE

    def test_expired_token_is_rejected(self):
        token = jwt.encode(
            {"sub": ALICE, "exp": datetime.now(UTC) - timedelta(minutes=1)},
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_token_without_subject_is_rejected(self):
        token = jwt.encode({"scope": "chat"}, settings.secret_key, algorithm=settings.jwt_algorithm)
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_token_signed_with_other_key_is_rejected(self):
        token = jwt.encode({"sub": ALICE}, "not-the-secret", algorithm=settings.jwt_algorithm)
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)


class TestEndpointAuthentication:
    def test_missing_header_is_rejected(self, client):
        response = client.get("/api/v1/rooms")
        assert response.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}

    def test_malformed_token_is_rejected(self, client):
        response = client.get("/api/v1/rooms", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Could not validate credentials"
