"""
Error taxonomy shared by the stores, services and routers.

Every error carries the HTTP status it maps to and renders to a JSON body
with at least an ``error`` field. ``clear_data`` tells the client to drop
its cached billing customer id.
"""

from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base class for errors that are reported to the caller."""

    status_code = 500

    def __init__(
        self,
        message: str,
        clear_data: bool = False,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.clear_data = clear_data
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = dict(self.extra)
        body["error"] = self.message
        if self.clear_data:
            body["clearData"] = True
        return body


class ValidationError(TrackerError):
    """Missing or malformed request fields."""

    status_code = 400


class SubscriptionExistsError(ValidationError):
    """The billing customer already holds an active subscription."""


class AuthorizationError(TrackerError):
    """The requested resource belongs to a different user."""

    status_code = 403


class NotFoundError(TrackerError):
    """Workout or billing customer does not exist (for this user)."""

    status_code = 404


class UpstreamError(TrackerError):
    """Stripe or the analysis webhook failed."""

    status_code = 500


class SignatureError(TrackerError):
    """Webhook payload failed signature verification."""

    status_code = 400
