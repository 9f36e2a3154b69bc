"""
Workout notes analysis relay.

Forwards notes to an external workflow webhook (n8n) and reduces its
response, whose shape this service does not control, to a single string.
The relay performs no authorization: callers gate it on an active
subscription.
"""

import json
import logging
from typing import Any, Optional

import httpx

from fitness_tracker.config import settings
from fitness_tracker.exceptions import UpstreamError

logger = logging.getLogger(__name__)

# Checked in order after the top-level ``data`` field
CANDIDATE_FIELDS = ("output", "result", "response", "message", "analysis")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def extract_analysis(payload: Any) -> str:
    """
    Normalize a webhook response into analysis text.

    Args:
        payload: Parsed JSON response (or raw text)

    Returns:
        str: The bare string; else the ``data`` field; else the first
        present candidate field; else the whole payload as compact JSON

    Example:
        >>> extract_analysis({"output": "Solid tempo run"})
        'Solid tempo run'
        >>> extract_analysis({"unrelated": 1})
        '{"unrelated":1}'
    """
    if isinstance(payload, str):
        return payload

    if isinstance(payload, dict):
        if payload.get("data"):
            return _as_text(payload["data"])
        for name in CANDIDATE_FIELDS:
            if payload.get(name):
                return _as_text(payload[name])

    return _as_text(payload)


class AnalysisService:
    """
    Client for the external analysis webhook.

    Attributes:
        webhook_url: Endpoint receiving ``{"notes": ...}``
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.ANALYSIS_WEBHOOK_URL
        self.timeout = timeout or settings.ANALYSIS_TIMEOUT_SECONDS
        self.transport = transport

    async def analyze(self, notes: str) -> str:
        """
        Send notes to the webhook and return the normalized analysis.

        No retries: a failure is reported to the caller.

        Raises:
            UpstreamError: If the webhook is unreachable, times out, or
                answers with a non-success status
        """
        logger.info(f"Requesting analysis of {len(notes)} characters of notes")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json={"notes": notes})
        except httpx.TimeoutException as e:
            logger.error(f"Analysis webhook timed out: {e}")
            raise UpstreamError("Failed to generate AI analysis: webhook timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Analysis webhook request error: {e}")
            raise UpstreamError(f"Failed to generate AI analysis: {e}") from e

        if not response.is_success:
            logger.error(f"Analysis webhook failed: {response.status_code} {response.reason_phrase}")
            raise UpstreamError(
                f"Failed to generate AI analysis: webhook failed: {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        analysis = extract_analysis(payload)
        logger.info("Analysis generated")
        return analysis


# Singleton instance for use across the application
analysis_service = AnalysisService()


def get_analysis_service() -> AnalysisService:
    """Dependency returning the shared analysis service."""
    return analysis_service
