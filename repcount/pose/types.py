from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class Keypoint:
	"""
	A single named 2D keypoint in pixel coordinates.
	"""

	name: str
	x: float
	y: float
	confidence: Optional[float] = None  # visibility [0..1]; None when the source has no score

	def is_reliable(self, floor: float) -> bool:
		"""True unless a confidence is present and below `floor`."""
		return self.confidence is None or float(self.confidence) >= float(floor)


@dataclass(frozen=True)
class PoseFrame:
	"""
	Model-agnostic pose output for a single observation instant.

	- Coordinates are in pixel space of the frame that was analysed (width x height).
	- Keypoint names are unique within a frame; order is irrelevant.
	- t_host is the host clock (seconds) at which the frame was captured, if known.
	"""

	backend: str
	width: int
	height: int
	t_host: Optional[float] = None
	keypoints: Dict[str, Keypoint] = field(default_factory=dict)

	def get(self, name: str) -> Optional[Keypoint]:
		if not self.keypoints:
			return None
		return self.keypoints.get(name)
