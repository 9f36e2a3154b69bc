"""
Subscription router: checkout, status, cancellation, recovery and webhooks.

Status and cancel each have two routes. The ``/{customer_id}/{user_id}``
form validates that the customer belongs to the user; the bare
``/{customer_id}`` form serves records created before customers were
tagged with their owner. Both run the same service code, the owner id
being the only difference.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fitness_tracker.database import get_db
from fitness_tracker.exceptions import TrackerError
from fitness_tracker.schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    FindCustomerRequest,
    FindCustomerResponse,
    SubscriptionDetailsSchema,
    SubscriptionStatusResponse,
    WebhookAck,
)
from fitness_tracker.services.auth_service import ensure_user_access, get_token_subject
from fitness_tracker.services.billing_service import (
    BillingService,
    SubscriptionCheck,
    SubscriptionState,
    get_billing_service,
)
from fitness_tracker.services.customer_registry import CustomerRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_response(check: SubscriptionCheck) -> SubscriptionStatusResponse:
    details = None
    if check.details is not None:
        details = SubscriptionDetailsSchema(
            price_id=check.details.price_id,
            interval=check.details.interval,
            current_period_end=check.details.current_period_end,
        )

    return SubscriptionStatusResponse(
        is_subscribed=check.is_subscribed,
        subscription_details=details,
        clear_data=True if check.clear_data else None,
        error=check.error,
    )


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    request: CheckoutSessionRequest,
    subject: Optional[str] = Depends(get_token_subject),
    billing: BillingService = Depends(get_billing_service),
    db: Session = Depends(get_db),
) -> CheckoutSessionResponse:
    """
    Start a hosted subscription checkout.

    Raises:
        SubscriptionExistsError: 400 if the customer already has an active subscription
        UpstreamError: 500 if Stripe fails
    """
    ensure_user_access(subject, request.user_id)
    logger.info(f"Creating checkout session for price {request.price_id}, user {request.user_id}")

    session = billing.create_checkout_session(request.price_id, request.user_id, request.email)
    CustomerRegistry(db).set(request.user_id, session.customer_id, request.email)

    return CheckoutSessionResponse(id=session.session_id, customer_id=session.customer_id)


@router.get(
    "/check-subscription/{customer_id}/{user_id}",
    response_model=SubscriptionStatusResponse,
    response_model_exclude_none=True,
)
def check_subscription(
    customer_id: str,
    user_id: str,
    subject: Optional[str] = Depends(get_token_subject),
    billing: BillingService = Depends(get_billing_service),
    db: Session = Depends(get_db),
) -> SubscriptionStatusResponse:
    """
    Check a customer's subscription on behalf of ``user_id``.

    A customer belonging to someone else reports not subscribed. Stale or
    malformed ids come back with ``clearData``.
    """
    ensure_user_access(subject, user_id)

    check = billing.check_subscription(customer_id, owner_id=user_id)

    registry = CustomerRegistry(db)
    if check.clear_data:
        registry.clear(user_id, customer_id)
    elif check.state in (SubscriptionState.SUBSCRIBED, SubscriptionState.NOT_SUBSCRIBED):
        registry.set(user_id, customer_id)

    return _status_response(check)


@router.get(
    "/check-subscription/{customer_id}",
    response_model=SubscriptionStatusResponse,
    response_model_exclude_none=True,
)
def check_subscription_legacy(
    customer_id: str,
    billing: BillingService = Depends(get_billing_service),
) -> SubscriptionStatusResponse:
    """Check a subscription without ownership validation (untagged records)."""
    return _status_response(billing.check_subscription(customer_id))


@router.post(
    "/cancel-subscription/{customer_id}/{user_id}",
    response_model=CancelSubscriptionResponse,
    response_model_exclude_none=True,
)
def cancel_subscription(
    customer_id: str,
    user_id: str,
    subject: Optional[str] = Depends(get_token_subject),
    billing: BillingService = Depends(get_billing_service),
    db: Session = Depends(get_db),
) -> CancelSubscriptionResponse:
    """
    Cancel every active subscription of a customer owned by ``user_id``.

    Raises:
        AuthorizationError: 403 if the customer belongs to another user
        NotFoundError: 404 with ``clearData`` if the customer no longer exists
    """
    try:
        ensure_user_access(subject, user_id)
        result = billing.cancel_subscriptions(customer_id, owner_id=user_id)
    except TrackerError as e:
        if e.clear_data:
            CustomerRegistry(db).clear(user_id, customer_id)
        e.extra.setdefault("success", False)
        raise

    return CancelSubscriptionResponse(success=True, message=result.message)


@router.post(
    "/cancel-subscription/{customer_id}",
    response_model=CancelSubscriptionResponse,
    response_model_exclude_none=True,
)
def cancel_subscription_legacy(
    customer_id: str,
    billing: BillingService = Depends(get_billing_service),
) -> CancelSubscriptionResponse:
    """Cancel subscriptions without ownership validation (untagged records)."""
    try:
        result = billing.cancel_subscriptions(customer_id)
    except TrackerError as e:
        e.extra.setdefault("success", False)
        raise

    return CancelSubscriptionResponse(success=True, message=result.message)


@router.post("/find-customer-by-email", response_model=FindCustomerResponse)
def find_customer_by_email(
    request: FindCustomerRequest,
    subject: Optional[str] = Depends(get_token_subject),
    billing: BillingService = Depends(get_billing_service),
    db: Session = Depends(get_db),
) -> FindCustomerResponse:
    """
    Recover a user's customer id after the client lost it.

    The server-side registry is consulted before searching Stripe.
    """
    ensure_user_access(subject, request.user_id)

    registry = CustomerRegistry(db)
    record = registry.get(request.user_id)
    if record is not None and record.email and record.email.lower() == request.email.lower():
        logger.info(f"Recovered customer {record.customer_id} for user {request.user_id} from registry")
        return FindCustomerResponse(customer_id=record.customer_id)

    customer_id = billing.find_customer_by_email(request.email, request.user_id)
    if customer_id:
        registry.set(request.user_id, customer_id, request.email)

    return FindCustomerResponse(customer_id=customer_id)


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    billing: BillingService = Depends(get_billing_service),
) -> WebhookAck:
    """
    Receive Stripe events.

    The signature is verified against the raw body before anything in the
    payload is trusted; events are logged only.

    Raises:
        SignatureError: 400 if the header is missing or verification fails
    """
    payload = await request.body()
    event = billing.construct_event(payload, request.headers.get("stripe-signature"))
    billing.record_event(event)
    return WebhookAck()
