"""Services package for business logic."""

from fitness_tracker.services.analysis_service import AnalysisService, analysis_service
from fitness_tracker.services.billing_service import BillingService, billing_service
from fitness_tracker.services.customer_registry import CustomerRegistry
from fitness_tracker.services.workout_store import (
    DatabaseWorkoutStore,
    FileWorkoutStore,
    WorkoutStore,
)

__all__ = [
    "AnalysisService",
    "analysis_service",
    "BillingService",
    "billing_service",
    "CustomerRegistry",
    "DatabaseWorkoutStore",
    "FileWorkoutStore",
    "WorkoutStore",
]
