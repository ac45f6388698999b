from __future__ import annotations

import asyncio
import logging
from typing import Optional

from repcount.capture import CaptureFrame
from repcount.config import EstimatorConfig
from repcount.errors import EstimatorInitFailure, FrameInferenceFailure
from repcount.pose.base import PoseSource
from repcount.pose.types import Keypoint, PoseFrame

logger = logging.getLogger(__name__)


# MediaPipe Pose landmark order; index i of pose_landmarks is BLAZEPOSE33_NAMES[i].
BLAZEPOSE33_NAMES = [
	"nose",
	"left_eye_inner",
	"left_eye",
	"left_eye_outer",
	"right_eye_inner",
	"right_eye",
	"right_eye_outer",
	"left_ear",
	"right_ear",
	"mouth_left",
	"mouth_right",
	"left_shoulder",
	"right_shoulder",
	"left_elbow",
	"right_elbow",
	"left_wrist",
	"right_wrist",
	"left_pinky",
	"right_pinky",
	"left_index",
	"right_index",
	"left_thumb",
	"right_thumb",
	"left_hip",
	"right_hip",
	"left_knee",
	"right_knee",
	"left_ankle",
	"right_ankle",
	"left_heel",
	"right_heel",
	"left_foot_index",
	"right_foot_index",
]


def landmarks_to_pose_frame(landmarks, width: int, height: int, t_host: Optional[float] = None, backend: str = "mediapipe_pose") -> PoseFrame:
	"""
	Map 33 normalized landmarks to named pixel-space keypoints by position.

	`landmarks` is any sequence of objects with x, y and (optionally) visibility.
	"""
	out = PoseFrame(backend=backend, width=int(width), height=int(height), t_host=t_host)
	if not landmarks:
		return out
	for idx, name in enumerate(BLAZEPOSE33_NAMES):
		if idx >= len(landmarks):
			break
		p = landmarks[idx]
		vis = getattr(p, "visibility", None)
		out.keypoints[name] = Keypoint(
			name=name,
			x=float(p.x) * float(width),
			y=float(p.y) * float(height),
			confidence=float(vis) if vis is not None else None,
		)
	return out


class LiveEstimator(PoseSource):
	"""
	MediaPipe Pose as a PoseSource.

	Notes:
	- initialize() loads the model off the event loop; it is never retried by this class.
	- submit() is fire-and-forget: inference runs in the default executor and the
	  result re-enters the event loop through the registered result handler.
	- MediaPipe uses normalized coordinates; we convert to pixel space of the frame.
	"""

	def __init__(self, cfg: Optional[EstimatorConfig] = None) -> None:
		super().__init__()
		self._cfg = cfg or EstimatorConfig()
		self._mp = None
		self._pose = None
		# Future of the inference currently running in the executor, if any.
		self._inflight: Optional[asyncio.Future] = None

	def name(self) -> str:
		return "mediapipe_pose"

	@property
	def ready(self) -> bool:
		return self._pose is not None

	async def initialize(self) -> None:
		loop = asyncio.get_running_loop()
		try:
			await loop.run_in_executor(None, self._load)
		except EstimatorInitFailure:
			raise
		except Exception as e:
			raise EstimatorInitFailure(f"MediaPipe Pose initialization failed: {e!r}") from e
		logger.info(
			"[Estimator] MediaPipe Pose ready (complexity=%s, det=%.2f, trk=%.2f)",
			self._cfg.model_complexity,
			self._cfg.min_detection_confidence,
			self._cfg.min_tracking_confidence,
		)

	def _load(self) -> None:
		try:
			import mediapipe as mp  # type: ignore
		except ImportError as e:
			raise EstimatorInitFailure("MediaPipe is not installed (pip install mediapipe)") from e

		self._mp = mp
		self._pose = mp.solutions.pose.Pose(
			static_image_mode=False,
			model_complexity=int(self._cfg.model_complexity),
			smooth_landmarks=bool(self._cfg.smooth_landmarks),
			enable_segmentation=bool(self._cfg.enable_segmentation),
			min_detection_confidence=float(self._cfg.min_detection_confidence),
			min_tracking_confidence=float(self._cfg.min_tracking_confidence),
		)

	def infer_rgb(self, rgb, t_host: Optional[float] = None) -> PoseFrame:
		# rgb: HxWx3
		pose = self._pose
		if pose is None:
			raise FrameInferenceFailure("estimator is not initialized")
		h, w = int(rgb.shape[0]), int(rgb.shape[1])
		res = pose.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return PoseFrame(backend=self.name(), width=w, height=h, t_host=t_host)
		return landmarks_to_pose_frame(res.pose_landmarks.landmark, w, h, t_host=t_host, backend=self.name())

	def submit(self, frame: Optional[CaptureFrame]) -> None:
		if self._pose is None:
			raise FrameInferenceFailure("estimator is not initialized")
		if frame is None or frame.rgb is None:
			raise FrameInferenceFailure("live estimator needs a camera frame")
		loop = asyncio.get_running_loop()
		fut = loop.run_in_executor(None, self.infer_rgb, frame.rgb, frame.t_host)
		self._inflight = fut
		fut.add_done_callback(self._on_inference_done)

	def _on_inference_done(self, fut: "asyncio.Future[PoseFrame]") -> None:
		if fut.cancelled():
			self._fail(FrameInferenceFailure("inference cancelled"))
			return
		exc = fut.exception()
		if exc is not None:
			if not isinstance(exc, FrameInferenceFailure):
				wrapped = FrameInferenceFailure(f"inference raised: {exc!r}")
				wrapped.__cause__ = exc
				exc = wrapped
			self._fail(exc)
			return
		self._deliver(fut.result())

	def dispose(self) -> None:
		"""
		Release the model. If an inference is still running in the executor, the
		model is closed once process() has returned, never underneath it.
		"""
		pose = self._pose
		self._pose = None
		if pose is None:
			return
		fut = self._inflight
		self._inflight = None
		if fut is not None and not fut.done():
			fut.add_done_callback(lambda _f: self._close_model(pose))
			return
		self._close_model(pose)

	@staticmethod
	def _close_model(pose) -> None:
		try:
			pose.close()
		except Exception as e:
			logger.debug("[Estimator] close failed: %r", e)


def probe_mediapipe(cfg: Optional[EstimatorConfig] = None) -> list[dict]:
	"""
	Blocking self-check: can mediapipe be imported, and can a Pose model be built
	with the configured options? Returns one result dict per check.
	"""
	cfg = cfg or EstimatorConfig()
	results: list[dict] = []
	try:
		import mediapipe as mp  # type: ignore
	except Exception as e:
		results.append({"check": "import", "ok": False, "error": repr(e)})
		return results
	results.append({"check": "import", "ok": True, "version": getattr(mp, "__version__", None)})

	est = LiveEstimator(cfg)
	try:
		est._load()
		results.append({"check": "initialize", "ok": True, "model_complexity": int(cfg.model_complexity)})
	except Exception as e:
		results.append({"check": "initialize", "ok": False, "error": repr(e)})
	finally:
		est.dispose()
	return results
