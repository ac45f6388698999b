from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from repcount.config import AppConfig, get_config
from repcount.errors import CaptureDeviceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureFrame:
	"""
	Latest camera frame plus timing metadata.

	`rgb` is an HxWx3 uint8 array (RGB order) or None for devices that only pace the loop.
	"""

	width: int
	height: int
	t_host: float
	frame_idx: int = 0
	rgb: Any = None


class CaptureDevice(ABC):
	@abstractmethod
	def name(self) -> str: ...

	@property
	@abstractmethod
	def paces_loop(self) -> bool:
		"""True when the device delivers live frames that should drive the refresh cadence."""
		...

	@abstractmethod
	def start(self) -> None:
		"""Open the device. Blocking; raises CaptureDeviceFailure."""
		...

	@abstractmethod
	def stop(self) -> None: ...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]: ...

	@abstractmethod
	def get_latest_frame(self) -> Optional[CaptureFrame]: ...


class NullCapture(CaptureDevice):
	"""
	No camera at all. Used when the synthetic generator runs standalone on its own timer.
	"""

	def __init__(self, width: int = 640, height: int = 480) -> None:
		self._width = int(width)
		self._height = int(height)
		self._running = False

	def name(self) -> str:
		return "none"

	@property
	def paces_loop(self) -> bool:
		return False

	def start(self) -> None:
		self._running = True

	def stop(self) -> None:
		self._running = False

	def get_status(self) -> Dict[str, Any]:
		return {
			"label": self.name(),
			"running": bool(self._running),
			"has_frame": False,
			"size": [self._width, self._height],
			"error": None,
		}

	def get_latest_frame(self) -> Optional[CaptureFrame]:
		return None


class OpenCVCapture(CaptureDevice):
	"""
	OpenCV VideoCapture camera with a background reader thread.

	Notes:
	- Requests the ideal resolution (640x480, 4:3); drivers may pick something else,
	  the delivered frame size is what PoseFrames are scaled to.
	- The reader thread keeps only the latest frame; the frame loop never queues frames.
	"""

	def __init__(self, device_index: int = 0, width: int = 640, height: int = 480) -> None:
		self._lock = threading.Lock()
		self._device_index = int(device_index)
		self._req_size = (int(width), int(height))

		self._running = False
		self._last_error: Optional[str] = None
		self._latest: Optional[CaptureFrame] = None
		self._frame_idx = 0

		self._cap = None
		self._thread: Optional[threading.Thread] = None

	def name(self) -> str:
		return "opencv"

	@property
	def paces_loop(self) -> bool:
		return True

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"label": self.name(),
				"device_index": self._device_index,
				"running": bool(self._running),
				"has_frame": self._latest is not None,
				"t_last_frame": self._latest.t_host if self._latest else None,
				"frame_idx": self._latest.frame_idx if self._latest else None,
				"requested_size": list(self._req_size),
				"size": [self._latest.width, self._latest.height] if self._latest else None,
				"error": self._last_error,
			}

	def get_latest_frame(self) -> Optional[CaptureFrame]:
		with self._lock:
			return self._latest

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
		try:
			import cv2  # type: ignore
		except ImportError as e:
			raise CaptureDeviceFailure("OpenCV is not installed (pip install opencv-python)") from e

		cap = cv2.VideoCapture(self._device_index)
		if not cap or not cap.isOpened():
			with self._lock:
				self._last_error = f"camera {self._device_index} could not be opened"
			raise CaptureDeviceFailure(f"Failed to access camera {self._device_index}. Please check permissions.")
		cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._req_size[0])
		cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._req_size[1])

		ok, bgr = cap.read()
		if not ok or bgr is None:
			cap.release()
			with self._lock:
				self._last_error = "camera opened but delivered no frame"
			raise CaptureDeviceFailure(f"Camera {self._device_index} delivered no frames.")

		with self._lock:
			self._cap = cap
			self._running = True
			self._last_error = None
			self._store_frame(cv2, bgr)
		logger.info("[Capture] camera %s open at %sx%s", self._device_index, bgr.shape[1], bgr.shape[0])

		t = threading.Thread(target=self._run_capture_loop, name="opencv-capture", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		with self._lock:
			self._running = False

		t = self._thread
		if t and t.is_alive():
			t.join(timeout=3.0)
		self._thread = None
		with self._lock:
			cap = self._cap
			self._cap = None
			self._latest = None
		if cap is not None:
			cap.release()

	def _store_frame(self, cv2, bgr) -> None:
		# caller holds self._lock
		self._frame_idx += 1
		rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
		self._latest = CaptureFrame(
			width=int(rgb.shape[1]),
			height=int(rgb.shape[0]),
			t_host=time.time(),
			frame_idx=self._frame_idx,
			rgb=rgb,
		)

	def _run_capture_loop(self) -> None:
		import cv2  # type: ignore

		while True:
			with self._lock:
				if not self._running:
					return
				cap = self._cap
			ok, bgr = cap.read()
			with self._lock:
				if not self._running:
					return
				if not ok or bgr is None:
					self._running = False
					self._last_error = "camera stopped delivering frames"
					logger.error("[Capture] %s", self._last_error)
					return
				self._store_frame(cv2, bgr)


def get_capture_device(cfg: Optional[AppConfig] = None, *, backend_override: Optional[str] = None) -> CaptureDevice:
	cfg = cfg or get_config()
	backend = (backend_override or cfg.capture.backend or "opencv").strip().lower()
	if backend in ("none", "null", "synthetic"):
		return NullCapture(width=cfg.capture.width, height=cfg.capture.height)
	if backend != "opencv":
		logger.warning("[Capture] unknown backend %r, using opencv", backend)
	return OpenCVCapture(
		device_index=int(cfg.capture.device_index),
		width=int(cfg.capture.width),
		height=int(cfg.capture.height),
	)
