from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from repcount.config import DetectionConfig
from repcount.exercises import ExerciseType
from repcount.pose.types import Keypoint, PoseFrame

logger = logging.getLogger(__name__)

# Joint triples (A, vertex B, C) for the angle-driven exercises.
ANGLE_JOINTS: Dict[ExerciseType, Tuple[str, str, str]] = {
	ExerciseType.SQUATS: ("left_hip", "left_knee", "left_ankle"),
	ExerciseType.PULLUPS: ("left_shoulder", "left_elbow", "left_wrist"),
}

REST_ANGLE_DEG = 180.0


class Phase(str, Enum):
	AT_REST = "at_rest"
	ENGAGED = "engaged"


@dataclass
class DetectorState:
	"""
	Debounce state for one exercise type in one session.

	stable_candidate is the last per-frame candidate (True = engaged-like) and
	stable_count how many consecutive frames produced it. Create a fresh instance
	per session; never share one between exercise types.
	"""

	phase: Phase = Phase.AT_REST
	stable_candidate: bool = False
	stable_count: int = 0
	last_emitted_at: Optional[float] = None


@dataclass(frozen=True)
class RepCompleted:
	exercise: ExerciseType
	t: float


def calculate_angle(
	a: Optional[Keypoint],
	b: Optional[Keypoint],
	c: Optional[Keypoint],
	confidence_floor: float = 0.5,
) -> float:
	"""
	Angle at vertex b between (a - b) and (c - b), in degrees within [0, 180].

	Missing or low-confidence keypoints yield 180 (fully at rest) so that occlusion
	never triggers an engaged phase.
	"""
	if a is None or b is None or c is None:
		return REST_ANGLE_DEG
	if not (a.is_reliable(confidence_floor) and b.is_reliable(confidence_floor) and c.is_reliable(confidence_floor)):
		return REST_ANGLE_DEG

	radians = math.atan2(c.y - b.y, c.x - b.x) - math.atan2(a.y - b.y, a.x - b.x)
	deg = abs(math.degrees(radians))
	if deg > 180.0:
		deg = 360.0 - deg
	return deg


def exercise_signal(frame: PoseFrame, exercise: ExerciseType, cfg: DetectionConfig) -> Optional[float]:
	"""
	Scalar signal the engaged predicate is evaluated on.

	squats/pullups: left-side joint angle (degrees).
	skipping: mean y of both ankles (pixels), None if either ankle is unusable.
	"""
	if exercise in ANGLE_JOINTS:
		a, b, c = ANGLE_JOINTS[exercise]
		return calculate_angle(frame.get(a), frame.get(b), frame.get(c), cfg.confidence_floor)

	if exercise == ExerciseType.SKIPPING:
		la = frame.get("left_ankle")
		ra = frame.get("right_ankle")
		if la is None or ra is None:
			return None
		if not (la.is_reliable(cfg.confidence_floor) and ra.is_reliable(cfg.confidence_floor)):
			return None
		return (float(la.y) + float(ra.y)) / 2.0

	return None


def is_engaged(frame: PoseFrame, exercise: ExerciseType, cfg: DetectionConfig) -> bool:
	value = exercise_signal(frame, exercise, cfg)
	if value is None:
		return False
	if exercise == ExerciseType.SQUATS:
		return value < cfg.squat_angle_deg
	if exercise == ExerciseType.PULLUPS:
		return value < cfg.pullup_angle_deg
	if exercise == ExerciseType.SKIPPING:
		if frame.height <= 0:
			return False
		return value < cfg.skipping_threshold_ratio * float(frame.height)
	return False


def update_detector(
	frame: PoseFrame,
	exercise: ExerciseType,
	state: DetectorState,
	now: float,
	cfg: Optional[DetectionConfig] = None,
) -> Optional[RepCompleted]:
	"""
	Advance `state` by one frame. Returns a RepCompleted when a rep is counted.

	`now` is in seconds. A committed engaged -> rest transition always updates the
	phase; the event is suppressed if the previous one for this state is younger
	than the cooldown.
	"""
	cfg = cfg or DetectionConfig()
	candidate = is_engaged(frame, exercise, cfg)

	if candidate != state.stable_candidate:
		state.stable_candidate = candidate
		state.stable_count = 0
	state.stable_count += 1

	if state.stable_count < int(cfg.debounce_frames):
		return None

	if candidate and state.phase == Phase.AT_REST:
		state.phase = Phase.ENGAGED
		logger.debug("[Detector] %s engaged", exercise.value)
		return None

	if not candidate and state.phase == Phase.ENGAGED:
		state.phase = Phase.AT_REST
		last = state.last_emitted_at
		if last is not None and (float(now) - float(last)) * 1000.0 < float(cfg.rep_cooldown_ms):
			logger.debug("[Detector] %s rep suppressed by cooldown (%.0f ms)", exercise.value, (now - last) * 1000.0)
			return None
		state.last_emitted_at = float(now)
		return RepCompleted(exercise=exercise, t=float(now))

	return None


class RepetitionDetector:
	"""
	Debounced two-state machine (AtRest <-> Engaged) for one exercise type.

	Owns its DetectorState; everything else may read `state` but not mutate it.
	"""

	def __init__(
		self,
		exercise: ExerciseType,
		cfg: Optional[DetectionConfig] = None,
		logger: Optional[Callable[[str], None]] = None,
	) -> None:
		self.exercise = exercise
		self.cfg = cfg or DetectionConfig()
		self.logger: Callable[[str], None] = logger or (lambda _msg: None)
		self._state = DetectorState()
		self.reps_emitted = 0
		self.reps_suppressed = 0

	@property
	def state(self) -> DetectorState:
		return self._state

	@property
	def phase(self) -> Phase:
		return self._state.phase

	def update(self, frame: PoseFrame, now: Optional[float] = None) -> Optional[RepCompleted]:
		t = float(now) if now is not None else time.monotonic()
		before = self._state.phase
		ev = update_detector(frame, self.exercise, self._state, t, self.cfg)
		if ev is not None:
			self.reps_emitted += 1
			self.logger(f"[Rep] {self.exercise.value} #{self.reps_emitted} at t={t:.3f}")
		elif before == Phase.ENGAGED and self._state.phase == Phase.AT_REST:
			self.reps_suppressed += 1
			self.logger(f"[Rep] {self.exercise.value} suppressed (cooldown {self.cfg.rep_cooldown_ms:.0f} ms)")
		return ev

	def reset(self) -> None:
		"""Start over with a fresh state (new session)."""
		self._state = DetectorState()
		self.reps_emitted = 0
		self.reps_suppressed = 0

	def get_status(self) -> Dict[str, object]:
		return {
			"exercise": self.exercise.value,
			"phase": self._state.phase.value,
			"stable_candidate": bool(self._state.stable_candidate),
			"stable_count": int(self._state.stable_count),
			"reps_emitted": int(self.reps_emitted),
			"reps_suppressed": int(self.reps_suppressed),
		}
