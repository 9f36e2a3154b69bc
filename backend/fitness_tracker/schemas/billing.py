"""
Subscription and billing schemas.

These models are serialized with camelCase aliases (``priceId``,
``isSubscribed``, ``clearData``) to match the browser client.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SubscriptionState(str, Enum):
    """Outcome of a single subscription check."""
    NO_MAPPING = "no_mapping"
    MAPPING_INVALID = "mapping_invalid"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    CUSTOMER_NOT_OWNED = "customer_not_owned"
    SUBSCRIBED = "subscribed"
    NOT_SUBSCRIBED = "not_subscribed"


class CheckoutSessionRequest(CamelModel):
    """Request body for starting a hosted checkout."""

    price_id: str = Field(..., min_length=1, description="Stripe price ID of the plan")
    user_id: str = Field(..., min_length=1, description="Application user ID")
    email: EmailStr = Field(..., description="User email, used to find or create the customer")


class CheckoutSessionResponse(CamelModel):
    """Checkout session handle plus the customer it was created for."""

    id: str = Field(..., description="Stripe checkout session ID")
    customer_id: str = Field(..., description="Stripe customer ID")


class SubscriptionDetailsSchema(CamelModel):
    """Plan details of the active subscription."""

    price_id: Optional[str] = None
    interval: Optional[str] = Field(None, description="Billing interval: month or year")
    current_period_end: Optional[datetime] = None


class SubscriptionStatusResponse(CamelModel):
    """Result of a subscription status check."""

    is_subscribed: bool
    subscription_details: Optional[SubscriptionDetailsSchema] = None
    clear_data: Optional[bool] = Field(
        None, description="Client should drop its stored customer ID"
    )
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "isSubscribed": True,
                "subscriptionDetails": {
                    "priceId": "price_monthly",
                    "interval": "month",
                    "currentPeriodEnd": "2024-02-10T10:00:00Z",
                },
            }
        }


class CancelSubscriptionResponse(CamelModel):
    """Result of a cancellation request."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    clear_data: Optional[bool] = None


class FindCustomerRequest(CamelModel):
    """Request body for recovering a customer ID by email."""

    email: EmailStr
    user_id: str = Field(..., min_length=1)


class FindCustomerResponse(CamelModel):
    """Recovered customer ID, or null when none matches."""

    customer_id: Optional[str] = None


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool = True
