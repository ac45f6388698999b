"""Pydantic request body models."""
from pydantic import BaseModel, Field


class WorkoutStartPayload(BaseModel):
	"""Request body for POST /workout/start. Selects the exercise and starts a session."""

	exercise: str = Field(..., description="Exercise type: pullups, skipping or squats")
