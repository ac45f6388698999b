"""Pydantic request/response models for API validation and docs."""
from schemas.requests import WorkoutStartPayload
from schemas.responses import (
	ExerciseResponse,
	HistoryResponse,
	WorkoutEndResponse,
	WorkoutSessionResponse,
)

__all__ = [
	"WorkoutStartPayload",
	"ExerciseResponse",
	"HistoryResponse",
	"WorkoutEndResponse",
	"WorkoutSessionResponse",
]
