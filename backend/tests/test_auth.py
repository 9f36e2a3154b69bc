"""Tests for optional bearer-token identity checks."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from fitness_tracker.config import settings
from fitness_tracker.services.auth_service import AuthenticationError, verify_token

SECRET = "super-secret-jwt-token-for-tests"
USER = "0b7c1f7e-5d1a-4c8e-9a59-3f1f3c2d9e11"
OTHER_USER = "7d2e4c1a-9b3f-4f6e-8a21-5c6d7e8f9a00"


def _token(sub=USER, audience="authenticated", expires_in=timedelta(hours=1), secret=SECRET):
    claims = {
        "sub": sub,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + expires_in,
        "role": "authenticated",
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def _headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def identity_checks(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", SECRET)


class TestVerifyToken:
    def test_valid_token(self, identity_checks):
        assert verify_token(_token()) == USER

    @pytest.mark.parametrize(
        "token",
        [
            _token(expires_in=timedelta(minutes=-5)),
            _token(audience="anon"),
            _token(secret="some-other-secret"),
            "not-a-jwt",
        ],
    )
    def test_rejected(self, identity_checks, token):
        with pytest.raises(AuthenticationError):
            verify_token(token)


class TestProtectedEndpoints:
    def test_checks_disabled_by_default(self, client):
        assert client.get(f"/api/workouts/{USER}").status_code == 200

    def test_missing_token(self, client, identity_checks):
        response = client.get(f"/api/workouts/{USER}")

        assert response.status_code == 401
        assert response.json() == {"error": "Could not validate credentials"}

    def test_matching_token(self, client, identity_checks):
        response = client.get(f"/api/workouts/{USER}", headers=_headers(_token()))
        assert response.status_code == 200

    def test_token_for_other_user(self, client, identity_checks):
        response = client.post(
            "/api/workouts",
            json={"user_id": USER, "type": "run", "duration": 30, "calories": 300},
            headers=_headers(_token(sub=OTHER_USER)),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized: token does not belong to user"
        assert client.get(f"/api/workouts/{USER}", headers=_headers(_token())).json() == []

    def test_expired_token(self, client, identity_checks):
        token = _token(expires_in=timedelta(minutes=-5))
        response = client.get(f"/api/workouts/{USER}", headers=_headers(token))
        assert response.status_code == 401

    def test_cancel_reports_failure_shape(self, client, identity_checks, fake_stripe):
        customer_id = fake_stripe.add_customer("runner@example.com", user_id=USER)

        response = client.post(
            f"/cancel-subscription/{customer_id}/{USER}",
            headers=_headers(_token(sub=OTHER_USER)),
        )

        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_legacy_routes_stay_open(self, client, identity_checks, fake_stripe):
        customer_id = fake_stripe.add_customer("runner@example.com")

        response = client.get(f"/check-subscription/{customer_id}")

        assert response.status_code == 200
        assert response.json() == {"isSubscribed": False}
