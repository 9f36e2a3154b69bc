"""Pydantic schemas for workout-related API operations."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class WorkoutBase(BaseModel):
    """Fields shared by workout requests and responses."""

    user_id: str = Field(..., min_length=1, description="Owning user ID")
    type: str = Field(..., min_length=1, max_length=100, description="Workout type, e.g. run")
    duration: int = Field(..., gt=0, description="Duration in minutes")
    calories: int = Field(..., ge=0, description="Calories burned")
    notes: Optional[str] = Field(None, description="Free-text notes")
    ai_analysis: Optional[str] = Field(None, description="Analysis of the notes")


class WorkoutCreate(WorkoutBase):
    """Schema for logging a new workout."""
    pass


class WorkoutUpdate(BaseModel):
    """
    Schema for a partial workout update.

    ``user_id`` is required and must own the workout. Explicit nulls are
    ignored for ``type``, ``duration`` and ``calories`` but clear ``notes``
    and ``ai_analysis``.
    """

    user_id: str = Field(..., min_length=1, description="Owning user ID")
    type: Optional[str] = Field(None, min_length=1, max_length=100)
    duration: Optional[int] = Field(None, gt=0)
    calories: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    ai_analysis: Optional[str] = None


class WorkoutResponse(WorkoutBase):
    """Schema for workout API responses."""

    id: int = Field(..., description="Unique workout ID")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "user_id": "0b7c1f7e-5d1a-4c8e-9a59-3f1f3c2d9e11",
                "type": "run",
                "duration": 30,
                "calories": 300,
                "notes": "Easy pace, felt good",
                "ai_analysis": None,
                "created_at": "2024-01-10T10:00:00Z",
                "updated_at": None,
            }
        }


class WorkoutDeleteResponse(BaseModel):
    """Schema for a successful delete."""

    success: bool = True
    message: str = "Workout deleted successfully"
