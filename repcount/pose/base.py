from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from repcount.capture import CaptureFrame
from repcount.pose.types import PoseFrame

ResultHandler = Callable[[PoseFrame], None]
ErrorHandler = Callable[[BaseException], None]


class PoseSource(ABC):
	"""
	Pose source capability.

	Results are never returned from submit(); they arrive through the single
	registered result handler. Asynchronous inference errors go to the error
	handler. Implementations must deliver at most one result (or one error) per
	submitted frame.
	"""

	def __init__(self) -> None:
		self._on_result: Optional[ResultHandler] = None
		self._on_error: Optional[ErrorHandler] = None

	def set_result_handler(self, handler: Optional[ResultHandler]) -> None:
		self._on_result = handler

	def set_error_handler(self, handler: Optional[ErrorHandler]) -> None:
		self._on_error = handler

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	async def initialize(self) -> None: ...

	@abstractmethod
	def submit(self, frame: Optional[CaptureFrame]) -> None: ...

	@abstractmethod
	def dispose(self) -> None: ...

	def _deliver(self, pose: PoseFrame) -> None:
		if self._on_result is not None:
			self._on_result(pose)

	def _fail(self, exc: BaseException) -> None:
		if self._on_error is not None:
			self._on_error(exc)
