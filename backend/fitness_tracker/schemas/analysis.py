"""Schemas for the workout notes analysis relay."""

from pydantic import BaseModel, Field

from fitness_tracker.schemas.billing import CamelModel


class AnalysisRequest(CamelModel):
    """Notes to analyze and the requesting user."""

    notes: str = Field(..., min_length=1, description="Free-text workout notes")
    user_id: str = Field(..., min_length=1, description="Requesting user ID")


class AnalysisResponse(BaseModel):
    """Normalized analysis text."""

    analysis: str
