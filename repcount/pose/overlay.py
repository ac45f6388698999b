from __future__ import annotations

from io import BytesIO
from typing import List, Optional, Tuple

from repcount.pose.types import Keypoint, PoseFrame

SKELETON_SEGMENTS: List[Tuple[str, str]] = [
	("left_hip", "left_knee"),
	("left_knee", "left_ankle"),
	("right_hip", "right_knee"),
	("right_knee", "right_ankle"),
	("left_shoulder", "left_elbow"),
	("left_elbow", "left_wrist"),
	("right_shoulder", "right_elbow"),
	("right_elbow", "right_wrist"),
]

_Point = Tuple[float, float]


def visible_keypoints(frame: PoseFrame, floor: float = 0.5) -> List[Keypoint]:
	"""Keypoints worth drawing: confidence >= floor, or no confidence at all (synthetic)."""
	return [k for k in frame.keypoints.values() if k.is_reliable(floor)]


def visible_segments(frame: PoseFrame, floor: float = 0.5) -> List[Tuple[_Point, _Point]]:
	out: List[Tuple[_Point, _Point]] = []
	for a_name, b_name in SKELETON_SEGMENTS:
		a = frame.get(a_name)
		b = frame.get(b_name)
		if a is None or b is None:
			continue
		if not (a.is_reliable(floor) and b.is_reliable(floor)):
			continue
		out.append(((a.x, a.y), (b.x, b.y)))
	return out


def render_overlay_jpeg(frame: PoseFrame, rgb=None, floor: float = 0.5, quality: int = 80) -> bytes:
	"""
	Draw the skeleton of `frame` onto `rgb` (HxWx3 uint8) or onto a black canvas of
	the frame size, and return JPEG bytes.
	"""
	from PIL import Image, ImageDraw  # type: ignore

	if rgb is not None:
		im = Image.fromarray(rgb).convert("RGB")
	else:
		im = Image.new("RGB", (max(1, int(frame.width)), max(1, int(frame.height))), (0, 0, 0))
	draw = ImageDraw.Draw(im)
	for (x1, y1), (x2, y2) in visible_segments(frame, floor):
		draw.line([(x1, y1), (x2, y2)], fill=(0, 255, 0), width=3)
	r = 4
	for k in visible_keypoints(frame, floor):
		draw.ellipse([k.x - r, k.y - r, k.x + r, k.y + r], fill=(255, 0, 0))

	buf = BytesIO()
	im.save(buf, format="JPEG", quality=int(quality), optimize=True)
	return buf.getvalue()


def pose_payload(frame: Optional[PoseFrame], floor: float = 0.5) -> Optional[dict]:
	"""Compact pose message for WebSocket clients (only drawable points and segments)."""
	if frame is None:
		return None
	return {
		"width": int(frame.width),
		"height": int(frame.height),
		"backend": frame.backend,
		"points": [{"name": k.name, "x": round(k.x, 1), "y": round(k.y, 1)} for k in visible_keypoints(frame, floor)],
		"segments": [[round(a[0], 1), round(a[1], 1), round(b[0], 1), round(b[1], 1)] for a, b in visible_segments(frame, floor)],
	}
