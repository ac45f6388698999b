from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from repcount.capture import CaptureDevice
from repcount.errors import CaptureDeviceFailure
from repcount.pose.base import PoseSource

logger = logging.getLogger(__name__)


class SourceState(str, Enum):
	IDLE = "idle"
	INITIALIZING_ESTIMATOR = "initializing_estimator"
	INITIALIZING_CAMERA = "initializing_camera"
	READY = "ready"
	FALLBACK_READY = "fallback_ready"
	FAILED = "failed"


@dataclass(frozen=True)
class SourceStatus:
	estimator_ready: bool = False
	camera_ready: bool = False
	using_fallback: bool = False

	def to_dict(self) -> Dict[str, bool]:
		return asdict(self)


class SourceOrchestrator:
	"""
	Decides which pose source is active for one exercise session.

	Sequence on start():
	  idle -> initializing_estimator -> initializing_camera -> ready
	                                                        -> fallback_ready (estimator failed)
	                                                        -> failed (camera failed, terminal)

	- The camera is only requested after estimator initialization has settled.
	- Once using_fallback is set it stays set for the session; the live estimator
	  is never re-initialized except through an explicit restart().
	- Pose sources and the capture device come from injected factories. A None
	  estimator_factory means synthetic-only.
	- on_state_change is called after every transition (including runtime
	  fallback and camera failure).
	"""

	def __init__(
		self,
		estimator_factory: Optional[Callable[[], PoseSource]],
		synthetic_factory: Callable[[], PoseSource],
		capture_factory: Callable[[], CaptureDevice],
		logger: Optional[Callable[[str], None]] = None,
		on_state_change: Optional[Callable[[SourceState], None]] = None,
	) -> None:
		self._estimator_factory = estimator_factory
		self._synthetic_factory = synthetic_factory
		self._capture_factory = capture_factory
		self._log: Callable[[str], None] = logger or (lambda _msg: None)
		self._on_state_change = on_state_change

		self._state = SourceState.IDLE
		self._status = SourceStatus()
		self._error: Optional[str] = None

		self._estimator: Optional[PoseSource] = None
		self._synthetic: Optional[PoseSource] = None
		self._capture: Optional[CaptureDevice] = None

	@property
	def state(self) -> SourceState:
		return self._state

	@property
	def status(self) -> SourceStatus:
		return self._status

	@property
	def error(self) -> Optional[str]:
		return self._error

	@property
	def capture(self) -> Optional[CaptureDevice]:
		return self._capture

	@property
	def estimator(self) -> Optional[PoseSource]:
		return self._estimator

	@property
	def synthetic(self) -> Optional[PoseSource]:
		return self._synthetic

	@property
	def active_source(self) -> Optional[PoseSource]:
		if self._state == SourceState.READY:
			return self._estimator
		if self._state == SourceState.FALLBACK_READY:
			return self._synthetic
		return None

	def _set_state(self, new: SourceState) -> None:
		old = self._state
		self._state = new
		if old != new:
			msg = f"[Orchestrator] {old.value} -> {new.value}"
			logger.info(msg)
			self._log(msg)
			if self._on_state_change is not None:
				self._on_state_change(new)

	def _set_status(self, **changes: bool) -> None:
		# using_fallback is monotonic within a session
		if self._status.using_fallback:
			changes["using_fallback"] = True
		self._status = replace(self._status, **changes)

	async def start(self) -> SourceState:
		"""
		Run the initialization sequence. Returns the resulting state.

		Raises CaptureDeviceFailure (after entering `failed`) when the camera cannot
		be opened. Estimator failures never raise; they switch to the fallback.
		"""
		if self._state != SourceState.IDLE:
			if self._state == SourceState.FAILED:
				raise CaptureDeviceFailure(self._error or "capture device failed; restart required")
			return self._state

		self._set_state(SourceState.INITIALIZING_ESTIMATOR)
		if self._status.using_fallback:
			logger.info("[Orchestrator] fallback already active this session; estimator not retried")
		else:
			await self._init_estimator()

		self._set_state(SourceState.INITIALIZING_CAMERA)
		capture = self._capture_factory()
		self._capture = capture
		loop = asyncio.get_running_loop()
		try:
			await loop.run_in_executor(None, capture.start)
		except Exception as e:
			self._enter_failed(f"Failed to access camera: {e}")
			if isinstance(e, CaptureDeviceFailure):
				raise
			raise CaptureDeviceFailure(str(e)) from e
		self._set_status(camera_ready=True)

		self._synthetic = self._synthetic_factory()
		await self._synthetic.initialize()

		if self._estimator is not None and not capture.paces_loop:
			# No live frames to run inference on.
			logger.warning("[Orchestrator] capture %r delivers no frames; live estimator unused", capture.name())
			self._drop_estimator()
			self._set_status(using_fallback=True)

		if self._status.using_fallback:
			self._set_state(SourceState.FALLBACK_READY)
		else:
			self._set_state(SourceState.READY)
		return self._state

	async def _init_estimator(self) -> None:
		if self._estimator_factory is None:
			logger.info("[Orchestrator] no live estimator configured; synthetic only")
			self._set_status(estimator_ready=False, using_fallback=True)
			return
		estimator = self._estimator_factory()
		try:
			await estimator.initialize()
		except Exception as e:
			logger.warning("[Orchestrator] estimator init failed, using synthetic fallback: %r", e)
			self._log(f"[Orchestrator] estimator unavailable ({e}); synthetic fallback")
			estimator.dispose()
			self._set_status(estimator_ready=False, using_fallback=True)
			return
		self._estimator = estimator
		self._set_status(estimator_ready=True)

	def handle_inference_failure(self, exc: BaseException) -> None:
		"""
		Runtime inference error from the live estimator: downgrade to the synthetic
		source for the rest of the session. No-op unless currently `ready`.
		"""
		if self._state != SourceState.READY:
			return
		logger.error("[Orchestrator] frame inference failed, switching to synthetic fallback: %r", exc)
		self._log(f"[Orchestrator] inference failed ({exc}); synthetic fallback")
		self._drop_estimator()
		self._set_status(using_fallback=True)
		self._set_state(SourceState.FALLBACK_READY)

	def handle_capture_failure(self, reason: str) -> None:
		"""The camera died while running. Terminal until restart()."""
		if self._state == SourceState.FAILED:
			return
		self._enter_failed(reason)

	def _enter_failed(self, reason: str) -> None:
		self._error = str(reason)
		logger.error("[Orchestrator] capture device failure: %s", reason)
		self._log(f"[Orchestrator] {reason}")
		self._set_status(camera_ready=False)
		self._set_state(SourceState.FAILED)

	def _drop_estimator(self) -> None:
		est = self._estimator
		self._estimator = None
		self._set_status(estimator_ready=False)
		if est is not None:
			est.set_result_handler(None)
			est.set_error_handler(None)
			est.dispose()

	async def close(self) -> None:
		"""Dispose sources and release the capture device. Safe to call more than once."""
		self._drop_estimator()
		syn = self._synthetic
		self._synthetic = None
		if syn is not None:
			syn.dispose()
		cap = self._capture
		self._capture = None
		if cap is not None:
			loop = asyncio.get_running_loop()
			try:
				await loop.run_in_executor(None, cap.stop)
			except Exception as e:
				logger.warning("[Orchestrator] capture stop failed: %r", e)

	async def restart(self) -> SourceState:
		"""
		User-initiated restart of the whole sequence (e.g. after a camera failure).
		A fallback that was already active stays active.
		"""
		await self.close()
		self._state = SourceState.IDLE
		self._status = SourceStatus(using_fallback=self._status.using_fallback)
		self._error = None
		self._log("[Orchestrator] restart requested")
		return await self.start()

	def get_status(self) -> Dict[str, Any]:
		cap = self._capture
		return {
			"state": self._state.value,
			"status": self._status.to_dict(),
			"active_source": self.active_source.name() if self.active_source else None,
			"capture": cap.get_status() if cap else None,
			"error": self._error,
		}
