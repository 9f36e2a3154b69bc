"""Workouts API router for logging and managing a user's workouts."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from fitness_tracker.exceptions import ValidationError
from fitness_tracker.schemas.workout import (
    WorkoutCreate,
    WorkoutDeleteResponse,
    WorkoutResponse,
    WorkoutUpdate,
)
from fitness_tracker.services.auth_service import ensure_user_access, get_token_subject
from fitness_tracker.services.workout_store import WorkoutStore, get_workout_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{user_id}", response_model=List[WorkoutResponse])
async def list_workouts(
    user_id: str,
    subject: Optional[str] = Depends(get_token_subject),
    store: WorkoutStore = Depends(get_workout_store),
) -> List[WorkoutResponse]:
    """
    List all workouts of a user, newest first.

    Never returns another user's workouts.
    """
    ensure_user_access(subject, user_id)

    workouts = store.list(user_id)
    logger.info(f"Found {len(workouts)} workouts for user {user_id}")
    return workouts


@router.post("", response_model=WorkoutResponse, status_code=status.HTTP_201_CREATED)
async def create_workout(
    request: WorkoutCreate,
    subject: Optional[str] = Depends(get_token_subject),
    store: WorkoutStore = Depends(get_workout_store),
) -> WorkoutResponse:
    """
    Log a new workout.

    Args:
        request: Workout fields; ``notes`` and ``ai_analysis`` are optional
        subject: Authenticated user, if identity checks are enabled
        store: Configured workout store

    Returns:
        The stored workout with its id and creation timestamp

    Raises:
        ValidationError: 400 if a required field is missing or invalid
    """
    ensure_user_access(subject, request.user_id)

    return store.create(
        user_id=request.user_id,
        workout_type=request.type,
        duration=request.duration,
        calories=request.calories,
        notes=request.notes,
        ai_analysis=request.ai_analysis,
    )


@router.put("/{workout_id}", response_model=WorkoutResponse)
async def update_workout(
    workout_id: int,
    request: WorkoutUpdate,
    subject: Optional[str] = Depends(get_token_subject),
    store: WorkoutStore = Depends(get_workout_store),
) -> WorkoutResponse:
    """
    Apply a partial update to a workout owned by ``request.user_id``.

    Raises:
        NotFoundError: 404 if no workout matches both id and owner
    """
    ensure_user_access(subject, request.user_id)

    fields = request.model_dump(exclude_unset=True, exclude={"user_id"})
    return store.update(workout_id, request.user_id, fields)


@router.delete("/{workout_id}", response_model=WorkoutDeleteResponse)
async def delete_workout(
    workout_id: int,
    user_id: Optional[str] = Query(None, description="Owner of the workout"),
    subject: Optional[str] = Depends(get_token_subject),
    store: WorkoutStore = Depends(get_workout_store),
) -> WorkoutDeleteResponse:
    """
    Delete a workout owned by ``user_id``.

    Raises:
        ValidationError: 400 if ``user_id`` is missing
        NotFoundError: 404 if no workout matches both id and owner
    """
    if not user_id:
        raise ValidationError("Missing required query parameter: user_id")
    ensure_user_access(subject, user_id)

    store.delete(workout_id, user_id)
    return WorkoutDeleteResponse()
