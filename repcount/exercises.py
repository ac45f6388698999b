from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class ExerciseType(str, Enum):
	PULLUPS = "pullups"
	SKIPPING = "skipping"
	SQUATS = "squats"

	@classmethod
	def parse(cls, value: object) -> Optional["ExerciseType"]:
		if isinstance(value, ExerciseType):
			return value
		try:
			return cls(str(value).strip().lower())
		except ValueError:
			return None


@dataclass(frozen=True)
class Exercise:
	id: str
	name: str
	type: ExerciseType
	icon_name: str
	description: str

	def to_dict(self) -> Dict[str, str]:
		return {
			"id": self.id,
			"name": self.name,
			"type": self.type.value,
			"icon_name": self.icon_name,
			"description": self.description,
		}


EXERCISES: List[Exercise] = [
	Exercise(
		id="1",
		name="Pull-ups",
		type=ExerciseType.PULLUPS,
		icon_name="dumbbell",
		description="Upper body exercise that targets the back and biceps",
	),
	Exercise(
		id="2",
		name="Skipping",
		type=ExerciseType.SKIPPING,
		icon_name="timer",
		description="Cardio exercise that improves coordination and endurance",
	),
	Exercise(
		id="3",
		name="Squats",
		type=ExerciseType.SQUATS,
		icon_name="dumbbell",
		description="Lower body exercise that targets the quadriceps and glutes",
	),
]


def get_exercise(exercise_type: ExerciseType) -> Exercise:
	for ex in EXERCISES:
		if ex.type == exercise_type:
			return ex
	raise KeyError(exercise_type)
