"""
Tests for the Python API client.

Most tests drive the real application through ``httpx.ASGITransport``;
failure modes the server cannot produce are simulated with
``httpx.MockTransport``.
"""

import httpx
import pytest

from fitness_tracker.client import BillingIdentityMap, TrackerClient, TrackerClientError
from fitness_tracker.main import app
from fitness_tracker.schemas.billing import SubscriptionState

from conftest import PRICE_ID

USER = "0b7c1f7e-5d1a-4c8e-9a59-3f1f3c2d9e11"
EMAIL = "runner@example.com"


@pytest.fixture
def identity():
    return BillingIdentityMap()


@pytest.fixture
def api(client, identity):
    """Client wired to the app; depends on ``client`` for the service fakes."""
    return TrackerClient(
        "http://testserver",
        identity_map=identity,
        transport=httpx.ASGITransport(app=app),
    )


def _mock_client(handler, identity):
    return TrackerClient("http://testserver", identity_map=identity, transport=httpx.MockTransport(handler))


@pytest.fixture
def subscriber(fake_stripe, identity):
    customer_id = fake_stripe.add_customer(EMAIL, user_id=USER)
    fake_stripe.add_subscription(customer_id)
    identity.set(USER, customer_id)
    return customer_id


class TestWorkouts:
    @pytest.mark.asyncio
    async def test_crud_round(self, api):
        created = await api.create_workout(USER, "run", 30, 300, notes="easy")
        assert created["id"] > 0

        updated = await api.update_workout(created["id"], USER, calories=320)
        assert updated["calories"] == 320

        workouts = await api.list_workouts(USER)
        assert [w["id"] for w in workouts] == [created["id"]]

        assert (await api.delete_workout(created["id"], USER))["success"] is True
        assert await api.list_workouts(USER) == []

    @pytest.mark.asyncio
    async def test_error_carries_server_message(self, api):
        with pytest.raises(TrackerClientError) as exc_info:
            await api.update_workout(9999, USER, calories=1)

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Workout not found"

    @pytest.mark.asyncio
    async def test_health(self, api):
        health = await api.health()
        assert health["status"] == "ok"


class TestLogWorkout:
    @pytest.mark.asyncio
    async def test_without_analysis(self, api, analysis_requests):
        workout = await api.log_workout(USER, "run", 30, 300)

        assert workout["ai_analysis"] is None
        assert analysis_requests == []

    @pytest.mark.asyncio
    async def test_non_subscriber_gets_no_analysis(self, api, analysis_requests):
        workout = await api.log_workout(USER, "run", 30, 300, notes="Felt strong", analyze=True)

        assert workout["notes"] == "Felt strong"
        assert workout["ai_analysis"] is None
        assert analysis_requests == []

    @pytest.mark.asyncio
    async def test_subscriber_gets_analysis(self, api, subscriber, analysis_requests):
        workout = await api.log_workout(USER, "run", 30, 300, notes="Felt strong", analyze=True)

        assert workout["ai_analysis"] == "Solid aerobic session."
        assert analysis_requests == [{"notes": "Felt strong"}]

    @pytest.mark.asyncio
    async def test_analysis_failure_still_saves(self, api, subscriber, analysis_reply):
        analysis_reply["error"] = True

        workout = await api.log_workout(USER, "run", 30, 300, notes="Felt strong", analyze=True)

        assert workout["id"] > 0
        assert workout["ai_analysis"] is None
        assert len(await api.list_workouts(USER)) == 1


class TestSubscriptionStatus:
    @pytest.mark.asyncio
    async def test_no_mapping(self, api):
        status = await api.check_subscription_status(USER)

        assert status.is_subscribed is False
        assert status.state == SubscriptionState.NO_MAPPING

    @pytest.mark.asyncio
    async def test_subscribed(self, api, subscriber):
        status = await api.check_subscription_status(USER)

        assert status.is_subscribed is True
        assert status.state == SubscriptionState.SUBSCRIBED
        assert status.subscription_details["priceId"] == PRICE_ID
        assert status.customer_id == subscriber

    @pytest.mark.asyncio
    async def test_recovers_lost_mapping_by_email(self, api, fake_stripe, identity):
        customer_id = fake_stripe.add_customer(EMAIL, user_id=USER)
        fake_stripe.add_subscription(customer_id)

        status = await api.check_subscription_status(USER, email=EMAIL)

        assert status.is_subscribed is True
        assert identity.get(USER) == customer_id

    @pytest.mark.asyncio
    async def test_stale_mapping_is_cleared(self, api, identity):
        identity.set(USER, "cus_deleted")

        status = await api.check_subscription_status(USER)

        assert status.state == SubscriptionState.CUSTOMER_NOT_FOUND
        assert identity.get(USER) is None

    @pytest.mark.asyncio
    async def test_falls_back_to_legacy_endpoint(self, identity):
        identity.set(USER, "cus_legacy")
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith(f"/{USER}"):
                return httpx.Response(404, json={"error": "Not Found"})
            return httpx.Response(200, json={"isSubscribed": True})

        status = await _mock_client(handler, identity).check_subscription_status(USER)

        assert status.is_subscribed is True
        assert paths == [f"/check-subscription/cus_legacy/{USER}", "/check-subscription/cus_legacy"]

    @pytest.mark.asyncio
    async def test_network_failure_degrades_to_not_subscribed(self, identity):
        identity.set(USER, "cus_1")

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        status = await _mock_client(handler, identity).check_subscription_status(USER)

        assert status.is_subscribed is False
        assert identity.get(USER) == "cus_1"


class TestCheckoutAndCancel:
    @pytest.mark.asyncio
    async def test_checkout_remembers_customer(self, api, identity, fake_stripe):
        session = await api.create_checkout_session(PRICE_ID, USER, EMAIL)

        assert session["id"].startswith("cs_test_")
        assert identity.get(USER) == session["customerId"]
        assert session["customerId"] in fake_stripe.customers

    @pytest.mark.asyncio
    async def test_cancel(self, api, subscriber, fake_stripe):
        result = await api.cancel_subscription(USER)

        assert result == {"success": True, "message": "Subscription cancelled successfully"}
        assert len(fake_stripe.cancel_calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_without_customer(self, api):
        result = await api.cancel_subscription(USER)

        assert result["success"] is False
        assert "No Stripe customer ID found" in result["error"]

    @pytest.mark.asyncio
    async def test_cancel_with_stale_customer_clears_it(self, api, identity):
        identity.set(USER, "cus_deleted")

        result = await api.cancel_subscription(USER)

        assert result["success"] is False
        assert identity.get(USER) is None

    @pytest.mark.asyncio
    async def test_cancel_network_error(self, identity):
        identity.set(USER, "cus_1")

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _mock_client(handler, identity).cancel_subscription(USER)

        assert result["success"] is False
        assert result["error"].startswith("Network error")
