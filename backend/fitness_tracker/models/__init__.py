"""Database models for the fitness tracker."""

from fitness_tracker.models.base import Base
from fitness_tracker.models.billing_customer import BillingCustomer
from fitness_tracker.models.workout import Workout

__all__ = [
    "Base",
    "BillingCustomer",
    "Workout",
]
