from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from repcount.capture import CaptureDevice, get_capture_device
from repcount.config import AppConfig, get_config
from repcount.detector import RepCompleted, RepetitionDetector
from repcount.errors import WorkoutStateError
from repcount.exercises import ExerciseType, get_exercise
from repcount.frame_loop import FrameLoop
from repcount.orchestrator import SourceOrchestrator, SourceState
from repcount.pose.base import PoseSource
from repcount.pose.mediapipe_provider import LiveEstimator
from repcount.pose.overlay import pose_payload, render_overlay_jpeg
from repcount.pose.synthetic import SyntheticGenerator
from repcount.pose.types import PoseFrame
from repcount.session import SessionAccumulator, WorkoutSession, format_elapsed

logger = logging.getLogger(__name__)

_NOT_SET = object()


class WorkoutEngine:
	"""
	One workout at a time: session record, detector, orchestrator and frame loop.

	A fresh RepetitionDetector (and so a fresh DetectorState) is created for every
	workout; pause/resume keeps it. Events are handed to `emit` as JSON-ready dicts:
	  {"type": "rep", ...}, {"type": "pose", ...}, {"type": "status", ...}
	"""

	def __init__(
		self,
		cfg: Optional[AppConfig] = None,
		*,
		estimator_factory: Any = _NOT_SET,
		capture_factory: Optional[Callable[[], CaptureDevice]] = None,
		emit: Optional[Callable[[Dict[str, Any]], None]] = None,
		logger: Optional[Callable[[str], None]] = None,
		clock: Callable[[], float] = time.monotonic,
		wall_clock: Callable[[], float] = time.time,
	) -> None:
		self.cfg = cfg or get_config()
		if estimator_factory is _NOT_SET:
			estimator_factory = lambda: LiveEstimator(self.cfg.estimator)
		self._estimator_factory: Optional[Callable[[], PoseSource]] = estimator_factory
		self._capture_factory = capture_factory or (lambda: get_capture_device(self.cfg))
		self._emit = emit or (lambda _ev: None)
		self._log: Callable[[str], None] = logger or (lambda _msg: None)
		self._clock = clock

		self.sessions = SessionAccumulator(clock=wall_clock)
		self.detector: Optional[RepetitionDetector] = None
		self.orchestrator: Optional[SourceOrchestrator] = None
		self.loop: Optional[FrameLoop] = None
		self.last_pose: Optional[PoseFrame] = None
		self._last_pose_emit: Optional[float] = None
		self._lock = asyncio.Lock()

	@property
	def exercise(self) -> Optional[ExerciseType]:
		sess = self.sessions.current
		return sess.exercise if sess else None

	def _build(self, exercise: ExerciseType) -> None:
		detector = RepetitionDetector(exercise, self.cfg.detection, logger=self._log)

		def _synthetic() -> PoseSource:
			return SyntheticGenerator(
				exercise,
				phase_provider=lambda: detector.phase,
				cfg=self.cfg.synthetic,
				width=self.cfg.capture.width,
				height=self.cfg.capture.height,
			)

		orch = SourceOrchestrator(
			estimator_factory=self._estimator_factory,
			synthetic_factory=_synthetic,
			capture_factory=self._capture_factory,
			logger=self._log,
			on_state_change=self._on_sources_changed,
		)
		self.detector = detector
		self.orchestrator = orch
		self.loop = FrameLoop(
			orch,
			detector,
			on_rep=self._on_rep,
			on_pose=self._on_pose,
			cfg=self.cfg.loop,
			clock=self._clock,
		)
		self.last_pose = None
		self._last_pose_emit = None

	async def start_workout(self, exercise: ExerciseType) -> Dict[str, Any]:
		"""
		Start a session for `exercise` and begin analysis.

		Raises WorkoutStateError if a workout is already running and
		CaptureDeviceFailure if the camera cannot be opened (the session stays open
		so the user can restart() or end it).
		"""
		async with self._lock:
			if self.sessions.current is not None:
				raise WorkoutStateError("a workout is already running; end it first")
			self.sessions.start(exercise)
			self._build(exercise)
			logger.info("[Engine] workout started: %s", get_exercise(exercise).name)
			# CaptureDeviceFailure propagates; the session stays open.
			await self.orchestrator.start()
			self.loop.start()
			self._emit_status()
			return self.get_status()

	def pause(self) -> Dict[str, Any]:
		self.sessions.pause()
		if self.loop is not None:
			self.loop.stop()
		self._emit_status()
		return self.get_status()

	def resume(self) -> Dict[str, Any]:
		orch = self.orchestrator
		if orch is None or orch.state not in (SourceState.READY, SourceState.FALLBACK_READY):
			raise WorkoutStateError("pose sources are not ready; restart the camera first")
		self.sessions.resume()
		self.loop.start()
		self._emit_status()
		return self.get_status()

	async def restart(self) -> Dict[str, Any]:
		"""Explicit restart of the source sequence after a camera failure."""
		async with self._lock:
			if self.sessions.current is None or self.orchestrator is None:
				raise WorkoutStateError("no workout in progress")
			self.loop.stop()
			await self.orchestrator.restart()
			if not self.sessions.paused:
				self.loop.start()
			self._emit_status()
			return self.get_status()

	def add_manual_rep(self) -> int:
		count = self.sessions.add_rep()
		self._emit({"type": "rep", "exercise": self.exercise.value, "count": count, "manual": True})
		return count

	async def end_workout(self) -> WorkoutSession:
		async with self._lock:
			if self.sessions.current is None:
				raise WorkoutStateError("no workout in progress")
			if self.loop is not None:
				self.loop.stop()
			if self.orchestrator is not None:
				await self.orchestrator.close()
			sess = self.sessions.end()
			logger.info("[Engine] workout ended: %s, %d reps in %s", sess.exercise.value, sess.repetitions, format_elapsed(sess.duration_s))
			self.loop = None
			self.orchestrator = None
			self.detector = None
			self._emit({"type": "workout_end", "session": sess.to_dict()})
			return sess

	async def close(self) -> None:
		"""Server shutdown: end any running workout."""
		if self.sessions.current is not None:
			await self.end_workout()

	def _on_rep(self, ev: RepCompleted) -> None:
		count = self.sessions.on_rep(ev)
		src = self.orchestrator.active_source if self.orchestrator else None
		self._emit({
			"type": "rep",
			"exercise": ev.exercise.value,
			"count": count,
			"t": ev.t,
			"source": src.name() if src else None,
		})

	def _on_pose(self, pose: PoseFrame) -> None:
		self.last_pose = pose
		now = self._clock()
		min_gap = 1.0 / float(self.cfg.loop.pose_broadcast_hz)
		if self._last_pose_emit is not None and now - self._last_pose_emit < min_gap:
			return
		self._last_pose_emit = now
		self._emit({"type": "pose", "pose": pose_payload(pose, self.cfg.detection.confidence_floor)})

	def _on_sources_changed(self, _state: SourceState) -> None:
		# Also fires for runtime fallback and camera failure seen by the frame loop.
		self._emit_status()

	def _emit_status(self) -> None:
		self._emit({"type": "status", "status": self.get_status()})

	def overlay_jpeg(self) -> Optional[bytes]:
		pose = self.last_pose
		if pose is None:
			return None
		rgb = None
		cap = self.orchestrator.capture if self.orchestrator else None
		if cap is not None:
			frame = cap.get_latest_frame()
			if frame is not None and frame.rgb is not None and (frame.width, frame.height) == (pose.width, pose.height):
				rgb = frame.rgb
		return render_overlay_jpeg(pose, rgb=rgb, floor=self.cfg.detection.confidence_floor)

	def get_status(self) -> Dict[str, Any]:
		sess = self.sessions.current
		elapsed = self.sessions.elapsed_seconds()
		return {
			"exercise": sess.exercise.value if sess else None,
			"session": sess.to_dict() if sess else None,
			"paused": bool(self.sessions.paused) if sess else False,
			"elapsed_s": round(elapsed, 1),
			"timer": format_elapsed(elapsed),
			"sources": self.orchestrator.get_status() if self.orchestrator else None,
			"detector": self.detector.get_status() if self.detector else None,
			"loop": self.loop.get_status() if self.loop else None,
		}
