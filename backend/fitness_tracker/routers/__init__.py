"""API routers package."""

from fitness_tracker.routers import analysis, billing, workouts

__all__ = ["analysis", "billing", "workouts"]
