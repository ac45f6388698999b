from __future__ import annotations

import random
import time
from typing import Callable, Dict, List, Optional, Tuple

from repcount.capture import CaptureFrame
from repcount.config import SyntheticConfig
from repcount.detector import Phase
from repcount.exercises import ExerciseType
from repcount.pose.base import PoseSource
from repcount.pose.types import Keypoint, PoseFrame

# Reference frame the templates are drawn in; scaled to the active frame height.
_REF_HEIGHT = 480.0

_Template = List[Tuple[str, float, float]]

# (rest-like, engaged-like) keypoint templates per exercise.
# Rest poses are straight limbs (180 deg); engaged poses clear the detection thresholds.
_TEMPLATES: Dict[ExerciseType, Tuple[_Template, _Template]] = {
	ExerciseType.SQUATS: (
		[
			("left_hip", 300, 200),
			("left_knee", 300, 300),
			("left_ankle", 300, 400),
			("right_hip", 340, 200),
			("right_knee", 340, 300),
			("right_ankle", 340, 400),
		],
		[
			# knee angle ~108 deg
			("left_hip", 360, 320),
			("left_knee", 300, 340),
			("left_ankle", 300, 400),
			("right_hip", 400, 320),
			("right_knee", 340, 340),
			("right_ankle", 340, 400),
		],
	),
	ExerciseType.PULLUPS: (
		[
			("left_shoulder", 300, 200),
			("left_elbow", 300, 140),
			("left_wrist", 300, 80),
			("right_shoulder", 340, 200),
			("right_elbow", 340, 140),
			("right_wrist", 340, 80),
		],
		[
			# elbow angle ~40 deg
			("left_shoulder", 300, 150),
			("left_elbow", 330, 170),
			("left_wrist", 310, 100),
			("right_shoulder", 340, 150),
			("right_elbow", 310, 170),
			("right_wrist", 330, 100),
		],
	),
	ExerciseType.SKIPPING: (
		[
			("left_ankle", 300, 400),
			("right_ankle", 340, 400),
			("left_knee", 300, 300),
			("right_knee", 340, 300),
		],
		[
			# ankles above 0.7 * height
			("left_ankle", 300, 300),
			("right_ankle", 340, 300),
			("left_knee", 300, 200),
			("right_knee", 340, 200),
		],
	),
}


class SyntheticGenerator(PoseSource):
	"""
	Scripted pose source used while the live estimator is unavailable.

	It reads (never mutates) the detector phase through `phase_provider` and is
	biased toward completing the pending transition: from Engaged it emits a
	rest-like pose with probability `release_probability`, from AtRest an
	engaged-like pose with probability `engage_probability`. Results are delivered
	synchronously through the result handler.
	"""

	def __init__(
		self,
		exercise: ExerciseType,
		phase_provider: Callable[[], Phase],
		cfg: Optional[SyntheticConfig] = None,
		width: int = 640,
		height: int = 480,
		clock: Callable[[], float] = time.time,
	) -> None:
		super().__init__()
		self.exercise = exercise
		self._phase_provider = phase_provider
		self._cfg = cfg or SyntheticConfig()
		self._rng = random.Random(self._cfg.seed)
		self._default_size = (int(width), int(height))
		self._clock = clock
		self.generated = 0

	def name(self) -> str:
		return "synthetic"

	async def initialize(self) -> None:
		return

	def next_pose_is_engaged(self) -> bool:
		r = self._rng.random()
		if self._phase_provider() == Phase.ENGAGED:
			return not (r < float(self._cfg.release_probability))
		return r < float(self._cfg.engage_probability)

	def generate(self, width: int, height: int, t_host: Optional[float] = None) -> PoseFrame:
		engaged = self.next_pose_is_engaged()
		rest_tpl, engaged_tpl = _TEMPLATES[self.exercise]
		tpl = engaged_tpl if engaged else rest_tpl
		s = float(height) / _REF_HEIGHT if height > 0 else 1.0
		frame = PoseFrame(backend=self.name(), width=int(width), height=int(height), t_host=t_host)
		for name, x, y in tpl:
			frame.keypoints[name] = Keypoint(name=name, x=float(x) * s, y=float(y) * s)
		self.generated += 1
		return frame

	def submit(self, frame: Optional[CaptureFrame]) -> None:
		if frame is not None:
			w, h, t = frame.width, frame.height, frame.t_host
		else:
			w, h = self._default_size
			t = self._clock()
		self._deliver(self.generate(w, h, t_host=t))

	def dispose(self) -> None:
		return
