"""
repcount application package.

Realtime repetition counting from pose keypoints (MediaPipe or synthetic fallback).
"""

from importlib import metadata
from pathlib import Path

_VERSION_FILE = Path(__file__).resolve().parents[1] / "VERSION"


def _read_version() -> str:
	# Source checkout: VERSION at the repo root. Installed wheel: package metadata.
	if _VERSION_FILE.is_file():
		val = _VERSION_FILE.read_text(encoding="utf-8").strip()
		if val:
			return val
	try:
		return metadata.version("repcount")
	except metadata.PackageNotFoundError:
		return "0.0.0"


__version__ = _read_version()
