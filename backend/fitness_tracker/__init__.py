"""Fitness tracker backend: workouts, subscriptions and notes analysis."""

__version__ = "1.0.0"
