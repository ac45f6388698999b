"""Test doubles for pose sources and capture devices."""
import math
import time
from typing import List, Optional

from repcount.capture import CaptureDevice, CaptureFrame
from repcount.errors import CaptureDeviceFailure, EstimatorInitFailure, FrameInferenceFailure
from repcount.pose.base import PoseSource
from repcount.pose.types import Keypoint, PoseFrame


def squat_frame(knee_angle_deg: float, confidence: Optional[float] = 0.9, height: int = 480) -> PoseFrame:
	"""Left leg with the given knee angle (shin pointing straight down)."""
	t = math.radians(knee_angle_deg)
	knee = (100.0, 300.0)
	hip = (knee[0] - 100.0 * math.sin(t), knee[1] + 100.0 * math.cos(t))
	ankle = (knee[0], knee[1] + 100.0)
	return PoseFrame(
		backend="test",
		width=640,
		height=height,
		keypoints={
			"left_hip": Keypoint("left_hip", hip[0], hip[1], 0.9),
			"left_knee": Keypoint("left_knee", knee[0], knee[1], confidence),
			"left_ankle": Keypoint("left_ankle", ankle[0], ankle[1], 0.9),
		},
	)


def skipping_frame(ankle_y: float, height: int = 480, confidence: Optional[float] = 0.9) -> PoseFrame:
	return PoseFrame(
		backend="test",
		width=640,
		height=height,
		keypoints={
			"left_ankle": Keypoint("left_ankle", 300.0, ankle_y, confidence),
			"right_ankle": Keypoint("right_ankle", 340.0, ankle_y, confidence),
		},
	)


class FakeCapture(CaptureDevice):
	"""Camera that hands out a new frame on every get_latest_frame() call."""

	def __init__(self, events: Optional[List[str]] = None, fail: bool = False, width: int = 640, height: int = 480) -> None:
		self.events = events if events is not None else []
		self.fail = fail
		self.width = width
		self.height = height
		self.running = False
		self.error: Optional[str] = None
		self.frame_idx = 0
		self.stopped = 0

	def name(self) -> str:
		return "fake"

	@property
	def paces_loop(self) -> bool:
		return True

	def start(self) -> None:
		self.events.append("camera_start")
		if self.fail:
			raise CaptureDeviceFailure("permission denied")
		self.running = True

	def stop(self) -> None:
		self.stopped += 1
		self.running = False

	def get_status(self):
		return {"label": "fake", "running": self.running, "error": self.error}

	def get_latest_frame(self) -> Optional[CaptureFrame]:
		if not self.running:
			return None
		self.frame_idx += 1
		return CaptureFrame(width=self.width, height=self.height, t_host=time.time(), frame_idx=self.frame_idx, rgb=None)


class FakeEstimator(PoseSource):
	"""
	Live-estimator stand-in. Submissions are parked until deliver() / fail_pending()
	is called by the test.
	"""

	def __init__(self, events: Optional[List[str]] = None, fail_init: bool = False, fail_submit: bool = False) -> None:
		super().__init__()
		self.events = events if events is not None else []
		self.fail_init = fail_init
		self.fail_submit = fail_submit
		self.submitted: List[Optional[CaptureFrame]] = []
		self.disposed = False

	def name(self) -> str:
		return "fake_estimator"

	async def initialize(self) -> None:
		self.events.append("estimator_init")
		if self.fail_init:
			raise EstimatorInitFailure("model download failed")
		self.events.append("estimator_ready")

	def submit(self, frame: Optional[CaptureFrame]) -> None:
		if self.fail_submit:
			raise FrameInferenceFailure("backend crashed")
		self.submitted.append(frame)

	def deliver(self, pose: PoseFrame) -> None:
		self._deliver(pose)

	def fail_pending(self, exc: BaseException) -> None:
		self._fail(exc)

	def dispose(self) -> None:
		self.disposed = True
