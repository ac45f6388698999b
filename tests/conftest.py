import os
import sys

import pytest

# Make the repo root importable when running `pytest` without installing the package.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
	sys.path.insert(0, ROOT)

from repcount.config import AppConfig, DetectionConfig, LoopConfig, SyntheticConfig  # noqa: E402


@pytest.fixture
def fast_cfg():
	"""Config with a short synthetic interval and no rep cooldown, seeded for repeatability."""
	return AppConfig(
		detection=DetectionConfig(rep_cooldown_ms=0.0),
		loop=LoopConfig(refresh_hz=200.0, synthetic_interval_ms=5.0, pose_broadcast_hz=1000.0),
		synthetic=SyntheticConfig(seed=7),
	)
