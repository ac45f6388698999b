from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from repcount.detector import RepCompleted
from repcount.errors import WorkoutStateError
from repcount.exercises import ExerciseType


def format_elapsed(seconds: float) -> str:
	"""MM:SS timer display."""
	total = max(0, int(seconds))
	minutes, secs = divmod(total, 60)
	return f"{minutes:02d}:{secs:02d}"


@dataclass
class WorkoutSession:
	exercise: ExerciseType
	started_at: float
	ended_at: Optional[float] = None
	repetitions: int = 0
	duration_s: int = 0
	completed: bool = False

	def to_dict(self) -> Dict[str, Any]:
		return {
			"exercise": self.exercise.value,
			"started_at": self.started_at,
			"ended_at": self.ended_at,
			"repetitions": int(self.repetitions),
			"duration_s": int(self.duration_s),
			"completed": bool(self.completed),
		}


class SessionAccumulator:
	"""
	In-memory workout record: the current session plus the history of completed ones.

	Consumes RepCompleted events and manual rep increments. The timer excludes time
	spent paused.
	"""

	def __init__(self, clock: Callable[[], float] = time.time) -> None:
		self._clock = clock
		self.current: Optional[WorkoutSession] = None
		self.history: List[WorkoutSession] = []
		self._paused_at: Optional[float] = None
		self._paused_total = 0.0

	def start(self, exercise: ExerciseType) -> WorkoutSession:
		if self.current is not None:
			raise WorkoutStateError("a workout is already running")
		self.current = WorkoutSession(exercise=exercise, started_at=self._clock())
		self._paused_at = None
		self._paused_total = 0.0
		return self.current

	def _require(self) -> WorkoutSession:
		if self.current is None:
			raise WorkoutStateError("no workout in progress")
		return self.current

	def on_rep(self, ev: RepCompleted) -> int:
		sess = self._require()
		if ev.exercise != sess.exercise:
			return sess.repetitions
		sess.repetitions += 1
		return sess.repetitions

	def add_rep(self) -> int:
		sess = self._require()
		sess.repetitions += 1
		return sess.repetitions

	@property
	def paused(self) -> bool:
		return self._paused_at is not None

	def pause(self) -> None:
		self._require()
		if self._paused_at is None:
			self._paused_at = self._clock()

	def resume(self) -> None:
		self._require()
		if self._paused_at is not None:
			self._paused_total += self._clock() - self._paused_at
			self._paused_at = None

	def elapsed_seconds(self) -> float:
		sess = self.current
		if sess is None:
			return 0.0
		now = self._paused_at if self._paused_at is not None else self._clock()
		return max(0.0, now - sess.started_at - self._paused_total)

	def end(self) -> WorkoutSession:
		sess = self._require()
		sess.duration_s = int(self.elapsed_seconds())
		sess.ended_at = self._clock()
		sess.completed = True
		self.history.append(sess)
		self.current = None
		self._paused_at = None
		self._paused_total = 0.0
		return sess
