"""
HTTP client for the Fitness Tracker API.

Composes the server endpoints the way the browser application does:
subscription lookups go through the stored customer id (recovering it by
email when lost), the owner-validated status endpoint is tried before the
legacy one, and notes analysis is only requested for subscribed users.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from fitness_tracker.client.identity_map import BillingIdentityMap
from fitness_tracker.schemas.billing import SubscriptionState

logger = logging.getLogger(__name__)

CUSTOMER_NOT_FOUND = "Customer not found"


class TrackerClientError(Exception):
    """Exception raised when the API answers with an error status."""

    def __init__(self, message: str, status_code: int = None, response_body: Any = None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)


@dataclass
class SubscriptionStatus:
    """Subscription status as seen by the client."""
    is_subscribed: bool
    state: SubscriptionState
    subscription_details: Optional[Dict[str, Any]] = None
    customer_id: Optional[str] = None


class TrackerClient:
    """
    Client for the workout, analysis and subscription endpoints.

    Attributes:
        base_url: API root, e.g. ``http://localhost:3001``
        identity_map: Where customer ids are remembered between calls
        transport: Optional httpx transport (tests mount the app directly)
        access_token: Bearer token sent when identity checks are enabled
    """

    def __init__(
        self,
        base_url: str,
        identity_map: Optional[BillingIdentityMap] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        access_token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.identity_map = identity_map if identity_map is not None else BillingIdentityMap()
        self.transport = transport
        self.timeout = timeout
        self.access_token = access_token

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict = None,
    ) -> httpx.Response:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            timeout=self.timeout,
        ) as client:
            return await client.request(method, path, json=json, params=params, headers=headers)

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def _call(self, method: str, path: str, json: Any = None, params: dict = None) -> Any:
        """
        Make a request and return the parsed JSON body.

        Raises:
            TrackerClientError: If the server answers with a non-2xx status
            httpx.HTTPError: If the server cannot be reached
        """
        response = await self._request(method, path, json=json, params=params)
        body = self._body(response)

        if not response.is_success:
            message = body.get("error") if isinstance(body, dict) else None
            raise TrackerClientError(
                message or f"Server error ({response.status_code})",
                status_code=response.status_code,
                response_body=body,
            )
        return body

    async def health(self) -> Dict[str, Any]:
        return await self._call("GET", "/health")

    # Workouts

    async def list_workouts(self, user_id: str) -> List[Dict[str, Any]]:
        return await self._call("GET", f"/api/workouts/{user_id}")

    async def create_workout(
        self,
        user_id: str,
        workout_type: str,
        duration: int,
        calories: int,
        notes: Optional[str] = None,
        ai_analysis: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "user_id": user_id,
            "type": workout_type,
            "duration": duration,
            "calories": calories,
            "notes": notes,
            "ai_analysis": ai_analysis,
        }
        return await self._call("POST", "/api/workouts", json=payload)

    async def update_workout(self, workout_id: int, user_id: str, **fields: Any) -> Dict[str, Any]:
        """Send a partial update; only the given fields change."""
        return await self._call("PUT", f"/api/workouts/{workout_id}", json={"user_id": user_id, **fields})

    async def delete_workout(self, workout_id: int, user_id: str) -> Dict[str, Any]:
        return await self._call("DELETE", f"/api/workouts/{workout_id}", params={"user_id": user_id})

    # Analysis

    async def request_analysis(self, notes: str, user_id: str) -> str:
        body = await self._call("POST", "/api/ai-analysis", json={"notes": notes, "userId": user_id})
        return body["analysis"]

    # Subscriptions

    async def create_checkout_session(self, price_id: str, user_id: str, email: str) -> Dict[str, Any]:
        """
        Start a checkout and remember the customer it was created for.

        Returns:
            dict: ``{"id": session_id, "customerId": customer_id}``
        """
        body = await self._call(
            "POST",
            "/create-checkout-session",
            json={"priceId": price_id, "userId": user_id, "email": email},
        )
        if body.get("customerId"):
            self.identity_map.set(user_id, body["customerId"])
        return body

    async def find_customer_id_by_email(self, email: str, user_id: str) -> Optional[str]:
        """Ask the server to recover a lost customer id. Failures yield None."""
        try:
            body = await self._call(
                "POST", "/find-customer-by-email", json={"email": email, "userId": user_id}
            )
        except (TrackerClientError, httpx.HTTPError) as e:
            logger.warning(f"Customer recovery failed for user {user_id}: {e}")
            return None

        customer_id = body.get("customerId") if isinstance(body, dict) else None
        if customer_id:
            logger.info(f"Recovered customer {customer_id} for user {user_id}")
            self.identity_map.set(user_id, customer_id)
        return customer_id

    async def _resolve_customer_id(self, user_id: str, email: Optional[str]) -> Optional[str]:
        customer_id = self.identity_map.get(user_id)
        if not customer_id and email:
            customer_id = await self.find_customer_id_by_email(email, user_id)
        return customer_id

    async def check_subscription_status(self, user_id: str, email: Optional[str] = None) -> SubscriptionStatus:
        """
        Determine whether ``user_id`` has an active subscription.

        Never raises: any failure is reported as not subscribed.
        """
        try:
            customer_id = await self._resolve_customer_id(user_id, email)
            if not customer_id:
                return SubscriptionStatus(False, SubscriptionState.NO_MAPPING)

            response = await self._request("GET", f"/check-subscription/{customer_id}/{user_id}")
            if not response.is_success:
                logger.info(
                    f"Owner-validated check returned {response.status_code}; trying legacy endpoint"
                )
                response = await self._request("GET", f"/check-subscription/{customer_id}")
                if not response.is_success:
                    logger.warning(f"Subscription check failed with {response.status_code}")
                    return SubscriptionStatus(
                        False, SubscriptionState.NOT_SUBSCRIBED, customer_id=customer_id
                    )

            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error checking subscription status for user {user_id}: {e}")
            return SubscriptionStatus(False, SubscriptionState.NOT_SUBSCRIBED)

        if not isinstance(data, dict):
            logger.error(f"Unexpected subscription status body: {data!r}")
            return SubscriptionStatus(False, SubscriptionState.NOT_SUBSCRIBED, customer_id=customer_id)

        if data.get("clearData"):
            logger.info(f"Server reported stale customer id for user {user_id}: {data.get('error')}")
            self.identity_map.clear(user_id)
            state = (
                SubscriptionState.CUSTOMER_NOT_FOUND
                if data.get("error") == CUSTOMER_NOT_FOUND
                else SubscriptionState.MAPPING_INVALID
            )
            return SubscriptionStatus(False, state)

        if data.get("isSubscribed"):
            return SubscriptionStatus(
                True,
                SubscriptionState.SUBSCRIBED,
                subscription_details=data.get("subscriptionDetails"),
                customer_id=customer_id,
            )
        return SubscriptionStatus(False, SubscriptionState.NOT_SUBSCRIBED, customer_id=customer_id)

    async def cancel_subscription(self, user_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel the user's subscriptions.

        Returns:
            dict: ``{"success": True, "message": ...}`` or ``{"success": False, "error": ...}``
        """
        customer_id = await self._resolve_customer_id(user_id, email)
        if not customer_id:
            return {
                "success": False,
                "error": "No Stripe customer ID found. Please try logging out and back in.",
            }

        try:
            response = await self._request("POST", f"/cancel-subscription/{customer_id}/{user_id}")
        except httpx.HTTPError as e:
            logger.error(f"Network error cancelling subscription for user {user_id}: {e}")
            return {"success": False, "error": "Network error. Please check your connection and try again."}

        data = self._body(response)
        if not isinstance(data, dict):
            return {"success": False, "error": "Invalid response format from server. Please try again."}

        if response.status_code == 404 and CUSTOMER_NOT_FOUND in (data.get("error") or ""):
            self.identity_map.clear(user_id)
            return {
                "success": False,
                "error": "Your subscription data was outdated and has been cleared. Please refresh the page.",
            }

        if not response.is_success:
            return {
                "success": False,
                "error": data.get("error") or f"Server error ({response.status_code}). Please try again.",
            }

        return {"success": True, "message": data.get("message")}

    # Composition

    async def log_workout(
        self,
        user_id: str,
        workout_type: str,
        duration: int,
        calories: int,
        notes: Optional[str] = None,
        analyze: bool = False,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Save a workout, attaching an analysis of its notes for subscribers.

        The workout is saved even when the analysis cannot be produced.
        """
        ai_analysis = None
        if analyze and notes:
            status = await self.check_subscription_status(user_id, email)
            if status.is_subscribed:
                try:
                    ai_analysis = await self.request_analysis(notes, user_id)
                except (TrackerClientError, httpx.HTTPError) as e:
                    logger.warning(f"Analysis unavailable, saving workout without it: {e}")
            else:
                logger.info(f"Skipping analysis for user {user_id}: {status.state.value}")

        return await self.create_workout(
            user_id=user_id,
            workout_type=workout_type,
            duration=duration,
            calories=calories,
            notes=notes,
            ai_analysis=ai_analysis,
        )
