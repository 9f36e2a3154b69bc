"""
Workout storage backends.

Two interchangeable stores implement the same contract:

- DatabaseWorkoutStore: the ``workouts`` table. Every statement filters on
  the owning user, so ownership is enforced by the store itself. Use this
  backend for anything that runs more than one server process.
- FileWorkoutStore: an in-process list mirrored to a JSON document
  (``{"workouts": [...], "nextWorkoutId": n}``) after every mutation. Writes
  are serialized with a lock inside one process, but the file is rewritten
  whole, so two processes sharing the file lose each other's updates and a
  crash mid-write can corrupt it.
"""

import json
import logging
import shutil
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from fitness_tracker.config import settings
from fitness_tracker.database import get_db
from fitness_tracker.exceptions import NotFoundError, ValidationError
from fitness_tracker.models.base import utcnow
from fitness_tracker.models.workout import Workout
from fitness_tracker.schemas.workout import WorkoutResponse

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: user_id, type, duration, calories"
WORKOUT_NOT_FOUND_MESSAGE = "Workout not found"

UPDATABLE_FIELDS = ("type", "duration", "calories", "notes", "ai_analysis")
# Only these may be cleared with an explicit null
NULLABLE_FIELDS = ("notes", "ai_analysis")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_numbers(duration: Optional[int], calories: Optional[int]) -> None:
    if duration is not None and (not _is_int(duration) or duration <= 0):
        raise ValidationError("duration must be a positive integer (minutes)")
    if calories is not None and (not _is_int(calories) or calories < 0):
        raise ValidationError("calories must be a non-negative integer")


def validate_new_workout(
    user_id: Optional[str],
    workout_type: Optional[str],
    duration: Optional[int],
    calories: Optional[int],
) -> None:
    """
    Validate the fields required to log a workout.

    Raises:
        ValidationError: If a required field is missing or out of range
    """
    if not user_id or not workout_type or duration is None or calories is None:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    _check_numbers(duration, calories)


def collect_changes(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pick the updatable fields out of a partial update.

    Unknown keys are dropped. Explicit nulls are ignored except for the
    nullable text fields, which they clear.
    """
    changes: Dict[str, Any] = {}
    for name in UPDATABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if value is None and name not in NULLABLE_FIELDS:
            continue
        changes[name] = value

    if "type" in changes and not changes["type"]:
        raise ValidationError("type must not be empty")
    _check_numbers(changes.get("duration"), changes.get("calories"))
    return changes


class WorkoutStore(ABC):
    """Owner-scoped workout persistence."""

    @abstractmethod
    def list(self, user_id: str) -> List[WorkoutResponse]:
        """Return every workout owned by ``user_id``, newest first."""

    @abstractmethod
    def create(
        self,
        user_id: str,
        workout_type: str,
        duration: int,
        calories: int,
        notes: Optional[str] = None,
        ai_analysis: Optional[str] = None,
    ) -> WorkoutResponse:
        """Store a new workout and return it with its id and timestamps."""

    @abstractmethod
    def update(self, workout_id: int, user_id: str, fields: Dict[str, Any]) -> WorkoutResponse:
        """Merge ``fields`` into the workout if ``user_id`` owns it."""

    @abstractmethod
    def delete(self, workout_id: int, user_id: str) -> None:
        """Remove the workout if ``user_id`` owns it."""


class DatabaseWorkoutStore(WorkoutStore):
    """Workout store backed by the relational ``workouts`` table."""

    def __init__(self, db: Session):
        self.db = db

    def _get_owned(self, workout_id: int, user_id: str) -> Workout:
        workout = self.db.query(Workout).filter(
            Workout.id == workout_id,
            Workout.user_id == user_id,
        ).first()

        if workout is None:
            raise NotFoundError(WORKOUT_NOT_FOUND_MESSAGE)
        return workout

    def list(self, user_id: str) -> List[WorkoutResponse]:
        workouts = (
            self.db.query(Workout)
            .filter(Workout.user_id == user_id)
            .order_by(Workout.created_at.desc(), Workout.id.desc())
            .all()
        )
        return [WorkoutResponse.model_validate(workout) for workout in workouts]

    def create(
        self,
        user_id: str,
        workout_type: str,
        duration: int,
        calories: int,
        notes: Optional[str] = None,
        ai_analysis: Optional[str] = None,
    ) -> WorkoutResponse:
        validate_new_workout(user_id, workout_type, duration, calories)

        workout = Workout(
            user_id=user_id,
            type=workout_type,
            duration=duration,
            calories=calories,
            notes=notes or None,
            ai_analysis=ai_analysis or None,
        )
        self.db.add(workout)
        self.db.commit()
        self.db.refresh(workout)

        logger.info(f"Created workout {workout.id} for user {user_id}")
        return WorkoutResponse.model_validate(workout)

    def update(self, workout_id: int, user_id: str, fields: Dict[str, Any]) -> WorkoutResponse:
        workout = self._get_owned(workout_id, user_id)
        changes = collect_changes(fields)

        for name, value in changes.items():
            setattr(workout, name, value)
        workout.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(workout)

        logger.info(f"Updated workout {workout_id} for user {user_id}: {sorted(changes)}")
        return WorkoutResponse.model_validate(workout)

    def delete(self, workout_id: int, user_id: str) -> None:
        workout = self._get_owned(workout_id, user_id)
        self.db.delete(workout)
        self.db.commit()
        logger.info(f"Deleted workout {workout_id} for user {user_id}")


class FileWorkoutStore(WorkoutStore):
    """
    Workout store mirrored to a local JSON file.

    Single-instance deployments only: the lock serializes writers inside
    this process, nothing coordinates separate processes.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._workouts: List[Dict[str, Any]] = []
        self._next_id = 1
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.info(f"No workouts file at {self.path}, starting with empty storage")
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            workouts = list(data.get("workouts") or [])
            next_id = int(data.get("nextWorkoutId") or 1)
            highest_id = max((int(w["id"]) for w in workouts), default=0)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            backup = self.path.with_name(self.path.name + ".corrupt")
            shutil.copyfile(self.path, backup)
            logger.error(
                f"Could not parse workouts file {self.path}: {e}. "
                f"Copied it to {backup} and starting with empty storage"
            )
            return

        self._workouts = workouts
        self._next_id = max(next_id, highest_id + 1)
        logger.info(f"Loaded {len(self._workouts)} workouts from {self.path}")

    def _write(self, workouts: List[Dict[str, Any]], next_id: int) -> None:
        """Overwrite the whole file with the given state."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {"workouts": workouts, "nextWorkoutId": next_id}
        self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        logger.debug(f"Saved {len(workouts)} workouts to {self.path}")

    def _index_of(self, workout_id: int, user_id: str) -> int:
        for index, workout in enumerate(self._workouts):
            if workout["id"] == workout_id and workout["user_id"] == user_id:
                return index
        raise NotFoundError(WORKOUT_NOT_FOUND_MESSAGE)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def list(self, user_id: str) -> List[WorkoutResponse]:
        with self._lock:
            owned = [w for w in self._workouts if w["user_id"] == user_id]
        owned.sort(key=lambda w: w["id"], reverse=True)
        return [WorkoutResponse.model_validate(w) for w in owned]

    def create(
        self,
        user_id: str,
        workout_type: str,
        duration: int,
        calories: int,
        notes: Optional[str] = None,
        ai_analysis: Optional[str] = None,
    ) -> WorkoutResponse:
        validate_new_workout(user_id, workout_type, duration, calories)

        with self._lock:
            record = {
                "id": self._next_id,
                "user_id": user_id,
                "type": workout_type,
                "duration": duration,
                "calories": calories,
                "notes": notes or None,
                "ai_analysis": ai_analysis or None,
                "created_at": self._now(),
                "updated_at": None,
            }
            workouts = self._workouts + [record]
            self._write(workouts, self._next_id + 1)
            self._workouts = workouts
            self._next_id += 1

        logger.info(f"Created workout {record['id']} for user {user_id}")
        return WorkoutResponse.model_validate(record)

    def update(self, workout_id: int, user_id: str, fields: Dict[str, Any]) -> WorkoutResponse:
        changes = collect_changes(fields)

        with self._lock:
            index = self._index_of(workout_id, user_id)
            record = {**self._workouts[index], **changes, "updated_at": self._now()}
            workouts = list(self._workouts)
            workouts[index] = record
            self._write(workouts, self._next_id)
            self._workouts = workouts

        logger.info(f"Updated workout {workout_id} for user {user_id}: {sorted(changes)}")
        return WorkoutResponse.model_validate(record)

    def delete(self, workout_id: int, user_id: str) -> None:
        with self._lock:
            index = self._index_of(workout_id, user_id)
            workouts = self._workouts[:index] + self._workouts[index + 1:]
            self._write(workouts, self._next_id)
            self._workouts = workouts

        logger.info(f"Deleted workout {workout_id} for user {user_id}")


@lru_cache()
def get_file_workout_store(path: str) -> FileWorkoutStore:
    """One file store per path for the lifetime of the process."""
    return FileWorkoutStore(path)


def get_workout_store(db: Session = Depends(get_db)) -> WorkoutStore:
    """Dependency returning the configured workout store."""
    if settings.WORKOUT_STORE_BACKEND == "file":
        return get_file_workout_store(settings.WORKOUTS_FILE)
    return DatabaseWorkoutStore(db)
