from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from repcount.capture import CaptureFrame
from repcount.config import LoopConfig
from repcount.detector import RepCompleted, RepetitionDetector
from repcount.orchestrator import SourceOrchestrator, SourceState
from repcount.pose.base import PoseSource
from repcount.pose.types import PoseFrame

logger = logging.getLogger(__name__)


class FrameLoop:
	"""
	Cooperative frame loop on the asyncio event loop.

	- Paced by a refresh timer (loop.refresh_hz) while the camera delivers frames,
	  or by a fixed interval (loop.synthetic_interval_ms) for the standalone
	  synthetic source.
	- At most one submission is outstanding. While a result is pending, new
	  frames are dropped, never queued.
	- stop() cancels the scheduled tick at once; results that arrive afterwards
	  are discarded. start() again resumes with the same detector state.
	"""

	def __init__(
		self,
		orchestrator: SourceOrchestrator,
		detector: RepetitionDetector,
		on_rep: Callable[[RepCompleted], None],
		on_pose: Optional[Callable[[PoseFrame], None]] = None,
		cfg: Optional[LoopConfig] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._orch = orchestrator
		self._detector = detector
		self._on_rep = on_rep
		self._on_pose = on_pose
		self._cfg = cfg or LoopConfig()
		self._clock = clock

		self._running = False
		self._handle: Optional[asyncio.TimerHandle] = None
		# Single pending slot: epoch of the outstanding submission, or None.
		self._pending: Optional[int] = None
		self._pending_source: Optional[PoseSource] = None
		self._epoch = 0
		self._last_frame_idx: Optional[int] = None

		self.frames_submitted = 0
		self.frames_dropped = 0
		self.results_processed = 0
		self.results_discarded = 0

	@property
	def running(self) -> bool:
		return self._running

	@property
	def pending(self) -> bool:
		return self._pending is not None

	def interval_seconds(self) -> float:
		cap = self._orch.capture
		if cap is not None and cap.paces_loop:
			return 1.0 / float(self._cfg.refresh_hz)
		return float(self._cfg.synthetic_interval_ms) / 1000.0

	def start(self) -> None:
		if self._running:
			return
		if self._orch.state not in (SourceState.READY, SourceState.FALLBACK_READY):
			raise RuntimeError(f"pose sources not ready (state={self._orch.state.value})")
		if self._pending_source is not None and self._pending_source not in (self._orch.estimator, self._orch.synthetic):
			# The source that owed us a result was disposed (restart); it will never answer.
			self._pending = None
			self._pending_source = None
		self._last_frame_idx = None
		self._wire(self._orch.estimator)
		self._wire(self._orch.synthetic)
		self._running = True
		loop = asyncio.get_running_loop()
		self._handle = loop.call_soon(self._tick)
		logger.debug("[Loop] started (interval=%.3fs)", self.interval_seconds())

	def stop(self) -> None:
		if not self._running and self._handle is None:
			return
		self._running = False
		handle = self._handle
		self._handle = None
		if handle is not None:
			handle.cancel()
		# Anything still in flight belongs to the previous run.
		self._epoch += 1
		logger.debug("[Loop] stopped")

	def _wire(self, source: Optional[PoseSource]) -> None:
		if source is None:
			return
		source.set_result_handler(self._on_result)
		source.set_error_handler(self._on_error)

	def _schedule_next(self) -> None:
		loop = asyncio.get_running_loop()
		self._handle = loop.call_later(self.interval_seconds(), self._tick)

	def _tick(self) -> None:
		self._handle = None
		if not self._running:
			return
		try:
			self._step()
		except Exception:
			logger.exception("[Loop] tick failed")
		if self._running:
			self._schedule_next()

	def _step(self) -> None:
		orch = self._orch
		if orch.state == SourceState.FAILED:
			self.stop()
			return

		cap = orch.capture
		frame: Optional[CaptureFrame] = None
		if cap is not None and cap.paces_loop:
			st = cap.get_status()
			if not st.get("running") and st.get("error"):
				orch.handle_capture_failure(str(st.get("error")))
				self.stop()
				return
			frame = cap.get_latest_frame()
			if frame is None or frame.frame_idx == self._last_frame_idx:
				return

		if self._pending is not None:
			self.frames_dropped += 1
			return

		if frame is not None:
			self._last_frame_idx = frame.frame_idx
		self._submit(frame)

	def _submit(self, frame: Optional[CaptureFrame]) -> None:
		source = self._orch.active_source
		if source is None:
			return
		self._pending = self._epoch
		self._pending_source = source
		try:
			source.submit(frame)
			self.frames_submitted += 1
		except Exception as e:
			self._pending = None
			self._pending_source = None
			if source is not self._orch.estimator:
				logger.exception("[Loop] %s source failed to produce a frame", source.name())
				return
			self._orch.handle_inference_failure(e)
			fallback = self._orch.active_source
			if fallback is not None and fallback is not source:
				self._wire(fallback)
				self._submit(frame)

	def _on_result(self, pose: PoseFrame) -> None:
		submitted_epoch = self._pending
		self._pending = None
		self._pending_source = None
		if not self._running or submitted_epoch != self._epoch:
			self.results_discarded += 1
			return
		self.results_processed += 1
		now = self._clock()
		ev = self._detector.update(pose, now)
		if self._on_pose is not None:
			try:
				self._on_pose(pose)
			except Exception:
				logger.exception("[Loop] pose consumer failed")
		if ev is not None:
			try:
				self._on_rep(ev)
			except Exception:
				logger.exception("[Loop] rep consumer failed")

	def _on_error(self, exc: BaseException) -> None:
		submitted_epoch = self._pending
		self._pending = None
		self._pending_source = None
		if submitted_epoch != self._epoch:
			logger.debug("[Loop] inference error for a frame from a previous run: %r", exc)
		# The estimator is broken regardless of which run the frame belonged to.
		self._orch.handle_inference_failure(exc)

	def get_status(self) -> Dict[str, Any]:
		return {
			"running": bool(self._running),
			"pending": self._pending is not None,
			"interval_s": round(self.interval_seconds(), 4),
			"frames_submitted": int(self.frames_submitted),
			"frames_dropped": int(self.frames_dropped),
			"results_processed": int(self.results_processed),
			"results_discarded": int(self.results_discarded),
		}
