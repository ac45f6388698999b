from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionConfig:
	# Consecutive identical candidates needed before a phase change is committed.
	debounce_frames: int = 3
	# Minimum spacing between two emitted reps of the same exercise.
	rep_cooldown_ms: float = 1000.0
	# Keypoints with a confidence below this are treated as missing.
	confidence_floor: float = 0.5
	# Skipping is "engaged" when the mean ankle y is above ratio * frame height.
	skipping_threshold_ratio: float = 0.7
	squat_angle_deg: float = 120.0
	pullup_angle_deg: float = 130.0


@dataclass(frozen=True)
class EstimatorConfig:
	# Passed through to mediapipe.solutions.pose.Pose
	model_complexity: int = 1
	smooth_landmarks: bool = True
	enable_segmentation: bool = False
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class CaptureConfig:
	backend: str = "opencv"  # opencv / none
	device_index: int = 0
	# Ideal resolution (4:3). The camera may deliver something else.
	width: int = 640
	height: int = 480


@dataclass(frozen=True)
class LoopConfig:
	# Cadence while a camera paces the loop.
	refresh_hz: float = 30.0
	# Fixed period when the synthetic generator runs standalone (no camera).
	synthetic_interval_ms: float = 100.0
	# Max rate of pose broadcasts to WebSocket clients.
	pose_broadcast_hz: float = 10.0


@dataclass(frozen=True)
class SyntheticConfig:
	engage_probability: float = 0.7
	release_probability: float = 0.8
	seed: Optional[int] = None


@dataclass(frozen=True)
class AppConfig:
	detection: DetectionConfig = field(default_factory=DetectionConfig)
	estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
	capture: CaptureConfig = field(default_factory=CaptureConfig)
	loop: LoopConfig = field(default_factory=LoopConfig)
	synthetic: SyntheticConfig = field(default_factory=SyntheticConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# repcount/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	Intended for the CLI and tests; the server normally uses the default path.
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_bool(v: Any, default: bool) -> bool:
	if isinstance(v, bool):
		return v
	if isinstance(v, (int, float)):
		return bool(v)
	if isinstance(v, str):
		return v.strip().lower() in ("1", "true", "yes", "on")
	return bool(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _as_probability(v: Any, default: float) -> float:
	p = _as_float(v, default)
	return p if 0.0 <= p <= 1.0 else float(default)


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError) as e:
		logger.warning("[Config] %s unreadable (%s); using defaults.", p, e)
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	debounce = _as_int(_deep_get(raw, ["detection", "debounce_frames"], 3), 3)
	cooldown_ms = _as_float(_deep_get(raw, ["detection", "rep_cooldown_ms"], 1000.0), 1000.0)
	floor = _as_probability(_deep_get(raw, ["detection", "confidence_floor"], 0.5), 0.5)
	skip_ratio = _as_float(_deep_get(raw, ["detection", "skipping_threshold_ratio"], 0.7), 0.7)
	squat_deg = _as_float(_deep_get(raw, ["detection", "squat_angle_deg"], 120.0), 120.0)
	pullup_deg = _as_float(_deep_get(raw, ["detection", "pullup_angle_deg"], 130.0), 130.0)

	complexity = _as_int(_deep_get(raw, ["estimator", "model_complexity"], 1), 1)
	smooth = _as_bool(_deep_get(raw, ["estimator", "smooth_landmarks"], True), True)
	segmentation = _as_bool(_deep_get(raw, ["estimator", "enable_segmentation"], False), False)
	min_det = _as_probability(_deep_get(raw, ["estimator", "min_detection_confidence"], 0.5), 0.5)
	min_trk = _as_probability(_deep_get(raw, ["estimator", "min_tracking_confidence"], 0.5), 0.5)

	capture_backend = _as_str(_deep_get(raw, ["capture", "backend"], "opencv"), "opencv").strip().lower()
	device_index = _as_int(_deep_get(raw, ["capture", "device_index"], 0), 0)
	cap_w = _as_int(_deep_get(raw, ["capture", "width"], 640), 640)
	cap_h = _as_int(_deep_get(raw, ["capture", "height"], 480), 480)

	refresh_hz = _as_float(_deep_get(raw, ["loop", "refresh_hz"], 30.0), 30.0)
	synth_ms = _as_float(_deep_get(raw, ["loop", "synthetic_interval_ms"], 100.0), 100.0)
	pose_hz = _as_float(_deep_get(raw, ["loop", "pose_broadcast_hz"], 10.0), 10.0)

	engage_p = _as_probability(_deep_get(raw, ["synthetic", "engage_probability"], 0.7), 0.7)
	release_p = _as_probability(_deep_get(raw, ["synthetic", "release_probability"], 0.8), 0.8)
	seed_raw = _deep_get(raw, ["synthetic", "seed"], None)
	seed = _as_int(seed_raw, 0) if seed_raw is not None else None

	return AppConfig(
		detection=DetectionConfig(
			debounce_frames=int(debounce) if int(debounce) > 0 else 3,
			rep_cooldown_ms=float(cooldown_ms) if float(cooldown_ms) >= 0.0 else 1000.0,
			confidence_floor=float(floor),
			skipping_threshold_ratio=float(skip_ratio) if 0.0 < float(skip_ratio) <= 1.0 else 0.7,
			squat_angle_deg=float(squat_deg) if 0.0 < float(squat_deg) < 180.0 else 120.0,
			pullup_angle_deg=float(pullup_deg) if 0.0 < float(pullup_deg) < 180.0 else 130.0,
		),
		estimator=EstimatorConfig(
			model_complexity=int(complexity) if int(complexity) in (0, 1, 2) else 1,
			smooth_landmarks=smooth,
			enable_segmentation=segmentation,
			min_detection_confidence=float(min_det),
			min_tracking_confidence=float(min_trk),
		),
		capture=CaptureConfig(
			backend=capture_backend or "opencv",
			# NOTE: do not use `or 0` style defaults; index 0 is the usual webcam.
			device_index=int(device_index) if int(device_index) >= 0 else 0,
			width=int(cap_w) if int(cap_w) > 0 else 640,
			height=int(cap_h) if int(cap_h) > 0 else 480,
		),
		loop=LoopConfig(
			refresh_hz=float(refresh_hz) if float(refresh_hz) > 0.0 else 30.0,
			synthetic_interval_ms=float(synth_ms) if float(synth_ms) > 0.0 else 100.0,
			pose_broadcast_hz=float(pose_hz) if float(pose_hz) > 0.0 else 10.0,
		),
		synthetic=SyntheticConfig(
			engage_probability=float(engage_p),
			release_probability=float(release_p),
			seed=seed,
		),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
