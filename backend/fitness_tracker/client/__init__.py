"""Python client for the Fitness Tracker API."""

from fitness_tracker.client.identity_map import BillingIdentityMap, JsonFileStorage
from fitness_tracker.client.tracker_client import (
    SubscriptionStatus,
    TrackerClient,
    TrackerClientError,
)

__all__ = [
    "BillingIdentityMap",
    "JsonFileStorage",
    "SubscriptionStatus",
    "TrackerClient",
    "TrackerClientError",
]
