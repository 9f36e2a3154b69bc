"""Pydantic schemas package for API request/response models."""

from fitness_tracker.schemas.analysis import AnalysisRequest, AnalysisResponse
from fitness_tracker.schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    FindCustomerRequest,
    FindCustomerResponse,
    SubscriptionDetailsSchema,
    SubscriptionState,
    SubscriptionStatusResponse,
    WebhookAck,
)
from fitness_tracker.schemas.workout import (
    WorkoutCreate,
    WorkoutDeleteResponse,
    WorkoutResponse,
    WorkoutUpdate,
)

__all__ = [
    # Workout schemas
    "WorkoutCreate",
    "WorkoutDeleteResponse",
    "WorkoutResponse",
    "WorkoutUpdate",
    # Billing schemas
    "CancelSubscriptionResponse",
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "FindCustomerRequest",
    "FindCustomerResponse",
    "SubscriptionDetailsSchema",
    "SubscriptionState",
    "SubscriptionStatusResponse",
    "WebhookAck",
    # Analysis schemas
    "AnalysisRequest",
    "AnalysisResponse",
]
