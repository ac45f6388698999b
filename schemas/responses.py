"""Pydantic response models for API docs (routes may still return dicts)."""
from typing import List, Optional

from pydantic import BaseModel


class ExerciseResponse(BaseModel):
	id: str
	name: str
	type: str
	icon_name: str
	description: str


class WorkoutSessionResponse(BaseModel):
	exercise: str
	started_at: float
	ended_at: Optional[float] = None
	repetitions: int
	duration_s: int
	completed: bool


class WorkoutEndResponse(BaseModel):
	"""Response from POST /workout/end."""

	detail: str
	session: WorkoutSessionResponse


class HistoryResponse(BaseModel):
	sessions: List[WorkoutSessionResponse]
