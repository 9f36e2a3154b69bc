"""
Stripe billing gateway.

Handles checkout sessions, live subscription status, cancellation, customer
recovery by email, and webhook signature verification. Subscription status
is never cached: every check reads it from Stripe.

Customers are tagged with the owning application user in
``metadata.userId``. Status and cancel calls take an optional owner id:
when given, a customer tagged with a different user is treated as foreign
(the authorization boundary); when omitted, the call serves legacy records
created before tagging existed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, NewType, Optional

import stripe

from fitness_tracker.config import settings
from fitness_tracker.exceptions import (
    AuthorizationError,
    NotFoundError,
    SignatureError,
    SubscriptionExistsError,
    UpstreamError,
)
from fitness_tracker.schemas.billing import SubscriptionState

logger = logging.getLogger(__name__)

CustomerId = NewType("CustomerId", str)

CUSTOMER_ID_PREFIX = "cus_"
OWNER_METADATA_KEY = "userId"

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})

# States that mean the caller's stored customer id is useless
STALE_STATES = frozenset({SubscriptionState.MAPPING_INVALID, SubscriptionState.CUSTOMER_NOT_FOUND})

STATE_ERRORS = {
    SubscriptionState.MAPPING_INVALID: "Invalid customer ID format",
    SubscriptionState.CUSTOMER_NOT_FOUND: "Customer not found",
}

CUSTOMER_GONE_MESSAGE = (
    "Customer not found. Your stored subscription data is invalid and needs to be cleared."
)
SUBSCRIPTION_EXISTS_MESSAGE = (
    "You already have an active subscription. "
    "Please cancel your current subscription before creating a new one."
)


@dataclass
class SubscriptionDetails:
    """Plan details of an active subscription."""
    price_id: Optional[str]
    interval: Optional[str]
    current_period_end: Optional[datetime]


@dataclass
class SubscriptionCheck:
    """Result of a subscription check."""
    state: SubscriptionState
    details: Optional[SubscriptionDetails] = None

    @property
    def is_subscribed(self) -> bool:
        return self.state == SubscriptionState.SUBSCRIBED

    @property
    def clear_data(self) -> bool:
        return self.state in STALE_STATES

    @property
    def error(self) -> Optional[str]:
        return STATE_ERRORS.get(self.state)


@dataclass
class CheckoutSession:
    """Hosted checkout handle."""
    session_id: str
    customer_id: str
    url: Optional[str] = None


@dataclass
class CancelResult:
    """Subscriptions cancelled by a cancel call (possibly none)."""
    cancelled: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.cancelled:
            return "No active subscription found"
        return "Subscription cancelled successfully"


def parse_customer_id(value: Optional[str], owner_id: Optional[str] = None) -> Optional[CustomerId]:
    """
    Parse a Stripe customer id received at the API boundary.

    Returns None for anything that is not a ``cus_`` id, including a user id
    passed in by mistake.
    """
    if not value or not value.startswith(CUSTOMER_ID_PREFIX):
        return None
    if owner_id is not None and value == owner_id:
        return None
    return CustomerId(value)


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a Stripe object or plain dict, with a default."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _owner_of(customer: Any) -> Optional[str]:
    return _field(_field(customer, "metadata"), OWNER_METADATA_KEY)


def _subscription_details(subscription: Any) -> SubscriptionDetails:
    items = _field(_field(subscription, "items"), "data", [])
    item = items[0] if items else None
    price = _field(item, "price")

    # Newer API versions report the billing period on the item
    period_end = _field(item, "current_period_end") or _field(subscription, "current_period_end")

    return SubscriptionDetails(
        price_id=_field(price, "id"),
        interval=_field(_field(price, "recurring"), "interval"),
        current_period_end=(
            datetime.fromtimestamp(period_end, tz=timezone.utc) if period_end else None
        ),
    )


class BillingService:
    """
    Service for the Stripe billing operations used by the application.

    Attributes:
        api: The Stripe SDK module (or a stand-in exposing the same resources)
        webhook_secret: Signing secret for inbound webhooks
        client_url: Frontend base URL for checkout redirects
    """

    RECOVERY_SCAN_LIMIT = 10
    SUBSCRIPTION_LIST_LIMIT = 100

    def __init__(
        self,
        api: Any = None,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        client_url: Optional[str] = None,
    ):
        self.api = api if api is not None else stripe
        self.api.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = (
            settings.STRIPE_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        )
        self.client_url = (client_url or settings.CLIENT_URL).rstrip("/")

    @staticmethod
    def _upstream(action: str, error: stripe.StripeError, message: Optional[str] = None) -> UpstreamError:
        logger.error(f"Stripe error during {action}: {error}")
        return UpstreamError(message or getattr(error, "user_message", None) or str(error))

    def _retrieve_customer(self, customer_id: CustomerId) -> Optional[Any]:
        """Fetch a customer, returning None if it is missing or deleted."""
        try:
            customer = self.api.Customer.retrieve(customer_id)
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                return None
            raise

        if _field(customer, "deleted", False):
            return None
        return customer

    def _list_active_subscriptions(self, customer_id: str, limit: int) -> List[Any]:
        result = self.api.Subscription.list(customer=customer_id, status="active", limit=limit)
        return list(_field(result, "data", []))

    def check_connection(self) -> bool:
        """Make one cheap API call to confirm the secret key works."""
        try:
            self.api.Customer.list(limit=1)
        except stripe.StripeError as e:
            logger.error(f"Stripe connection failed: {e}")
            return False

        logger.info("Stripe connection successful")
        return True

    def _find_or_create_customer(self, user_id: str, email: str) -> Any:
        existing = _field(self.api.Customer.list(email=email, limit=1), "data", [])

        if existing:
            customer = existing[0]
            owner = _owner_of(customer)
            logger.info(f"Found existing customer {customer['id']} for {email}")
            if owner != user_id:
                logger.info(f"Re-tagging customer {customer['id']} owner from {owner} to {user_id}")
                customer = self.api.Customer.modify(
                    customer["id"], metadata={OWNER_METADATA_KEY: user_id}
                )
            return customer

        customer = self.api.Customer.create(email=email, metadata={OWNER_METADATA_KEY: user_id})
        logger.info(f"Created customer {customer['id']} for user {user_id}")
        return customer

    def create_checkout_session(self, price_id: str, user_id: str, email: str) -> CheckoutSession:
        """
        Start a hosted subscription checkout.

        Reuses the customer registered under ``email`` (re-tagging its owner
        when stale) or creates one.

        Raises:
            SubscriptionExistsError: If the customer already has an active subscription
            UpstreamError: If a Stripe call fails
        """
        try:
            customer = self._find_or_create_customer(user_id, email)
            customer_id = customer["id"]

            if self._list_active_subscriptions(customer_id, limit=1):
                logger.warning(f"Customer {customer_id} already has an active subscription")
                raise SubscriptionExistsError(SUBSCRIPTION_EXISTS_MESSAGE)

            session = self.api.checkout.Session.create(
                mode="subscription",
                payment_method_types=["card"],
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{self.client_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.client_url}/",
                metadata={OWNER_METADATA_KEY: user_id},
                subscription_data={"metadata": {OWNER_METADATA_KEY: user_id}},
            )
        except stripe.StripeError as e:
            raise self._upstream("checkout", e) from e

        logger.info(f"Checkout session {session['id']} created for customer {customer_id}")
        return CheckoutSession(
            session_id=session["id"],
            customer_id=customer_id,
            url=_field(session, "url"),
        )

    def check_subscription(self, customer_id: str, owner_id: Optional[str] = None) -> SubscriptionCheck:
        """
        Derive the live subscription status of a customer.

        Args:
            customer_id: Stripe customer id held by the caller
            owner_id: Requesting user; None for legacy untagged records

        Returns:
            SubscriptionCheck: A foreign customer reports CUSTOMER_NOT_OWNED,
            never its real status

        Raises:
            UpstreamError: If a Stripe call fails
        """
        mode = "legacy" if owner_id is None else "owner-validated"
        parsed = parse_customer_id(customer_id, owner_id)
        if parsed is None:
            logger.warning(f"[{mode}] Rejected malformed customer id {customer_id!r}")
            return SubscriptionCheck(SubscriptionState.MAPPING_INVALID)

        try:
            customer = self._retrieve_customer(parsed)
            if customer is None:
                logger.info(f"[{mode}] Customer {parsed} not found")
                return SubscriptionCheck(SubscriptionState.CUSTOMER_NOT_FOUND)

            if owner_id is not None and _owner_of(customer) != owner_id:
                logger.warning(
                    f"Customer {parsed} belongs to {_owner_of(customer)}, not {owner_id}"
                )
                return SubscriptionCheck(SubscriptionState.CUSTOMER_NOT_OWNED)

            active = self._list_active_subscriptions(parsed, limit=self.SUBSCRIPTION_LIST_LIMIT)
        except stripe.StripeError as e:
            raise self._upstream("subscription check", e) from e

        logger.info(f"[{mode}] Customer {parsed} has {len(active)} active subscriptions")
        if not active:
            return SubscriptionCheck(SubscriptionState.NOT_SUBSCRIBED)
        return SubscriptionCheck(SubscriptionState.SUBSCRIBED, _subscription_details(active[0]))

    def cancel_subscriptions(self, customer_id: str, owner_id: Optional[str] = None) -> CancelResult:
        """
        Cancel every active subscription of a customer.

        Succeeds with an empty result when nothing is active, so repeating
        the call is harmless.

        Raises:
            NotFoundError: If the customer id is malformed or unknown (clear_data set)
            AuthorizationError: If the customer belongs to another user
            UpstreamError: If a Stripe call fails
        """
        parsed = parse_customer_id(customer_id, owner_id)
        if parsed is None:
            raise NotFoundError(CUSTOMER_GONE_MESSAGE, clear_data=True)

        result = CancelResult()
        try:
            customer = self._retrieve_customer(parsed)
            if customer is None:
                raise NotFoundError(CUSTOMER_GONE_MESSAGE, clear_data=True)

            if owner_id is not None and _owner_of(customer) != owner_id:
                logger.warning(
                    f"Refusing cancel: customer {parsed} belongs to {_owner_of(customer)}, not {owner_id}"
                )
                raise AuthorizationError("Unauthorized: Customer does not belong to user")

            for subscription in self._list_active_subscriptions(parsed, limit=self.SUBSCRIPTION_LIST_LIMIT):
                try:
                    self.api.Subscription.cancel(subscription["id"])
                except stripe.InvalidRequestError as e:
                    # Cancelled concurrently by another request
                    if e.code != "resource_missing":
                        raise
                    logger.warning(f"Subscription {subscription['id']} already gone: {e}")
                    continue
                logger.info(f"Cancelled subscription {subscription['id']} for customer {parsed}")
                result.cancelled.append(subscription["id"])
        except stripe.StripeError as e:
            raise self._upstream(
                "cancellation", e,
                "Failed to cancel subscription. Please try again or contact support.",
            ) from e

        return result

    def find_customer_by_email(self, email: str, user_id: str) -> Optional[str]:
        """
        Recover a customer id for a user who lost it.

        Prefers a customer already tagged with ``user_id``; otherwise takes
        the first customer with an active subscription and re-tags it.

        Returns:
            The customer id, or None when nothing matches
        """
        try:
            customers = _field(
                self.api.Customer.list(email=email, limit=self.RECOVERY_SCAN_LIMIT), "data", []
            )
            logger.info(f"Found {len(customers)} customers with email {email}")

            for customer in customers:
                if _owner_of(customer) == user_id:
                    logger.info(f"Matched customer {customer['id']} by owner tag")
                    return customer["id"]

            for customer in customers:
                if self._list_active_subscriptions(customer["id"], limit=1):
                    logger.info(f"Re-tagging subscribed customer {customer['id']} to user {user_id}")
                    self.api.Customer.modify(customer["id"], metadata={OWNER_METADATA_KEY: user_id})
                    return customer["id"]
        except stripe.StripeError as e:
            raise self._upstream("customer recovery", e, "Failed to find customer") from e

        logger.info(f"No matching customer for email {email}")
        return None

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify a webhook payload and return the parsed event.

        Raises:
            SignatureError: If the header is missing or verification fails
        """
        if not signature:
            raise SignatureError("Missing stripe-signature header")
        if not self.webhook_secret:
            logger.error("Received webhook but STRIPE_WEBHOOK_SECRET is not configured")
            raise SignatureError("Webhook signing secret is not configured")

        try:
            return self.api.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            raise SignatureError(f"Webhook Error: invalid payload ({e})") from e
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid webhook signature: {e}")
            raise SignatureError(f"Webhook Error: {e}") from e

    def record_event(self, event: Any) -> bool:
        """
        Log a verified webhook event.

        Status is always read live, so events are observed only.

        Returns:
            True if the event type is one of the subscription events
        """
        event_type = _field(event, "type")
        if event_type not in SUBSCRIPTION_EVENTS:
            logger.info(f"Unhandled event type {event_type}")
            return False

        subscription = _field(_field(event, "data"), "object")
        logger.info(
            f"Subscription event {event_type}: id={_field(subscription, 'id')} "
            f"customer={_field(subscription, 'customer')} status={_field(subscription, 'status')}"
        )
        return True


# Singleton instance for use across the application
billing_service = BillingService()


def get_billing_service() -> BillingService:
    """Dependency returning the shared billing service."""
    return billing_service
