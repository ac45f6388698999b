"""
Headless rep counter: run one workout from the terminal and print reps as they happen.

Usage:
  python -m repcount.headless --exercise squats --seconds 30
  python -m repcount.headless --exercise skipping --synthetic --no-camera
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from repcount.capture import get_capture_device
from repcount.config import get_config, set_config_path
from repcount.engine import WorkoutEngine
from repcount.errors import CaptureDeviceFailure
from repcount.exercises import ExerciseType
from repcount.session import format_elapsed


def _print_event(ev: Dict[str, Any]) -> None:
	if ev.get("type") == "rep":
		print(f"[REP] {ev.get('exercise')} #{ev.get('count')} (source={ev.get('source')})")
	elif ev.get("type") == "status":
		st = ev.get("status") or {}
		src = st.get("sources") or {}
		print(f"[STATUS] sources={src.get('state')} {src.get('status')}")


async def _run(exercise: ExerciseType, seconds: float, synthetic: bool, no_camera: bool) -> int:
	cfg = get_config()
	kwargs: Dict[str, Any] = {}
	if synthetic:
		kwargs["estimator_factory"] = None
	if no_camera:
		kwargs["capture_factory"] = lambda: get_capture_device(cfg, backend_override="none")
	engine = WorkoutEngine(cfg, emit=_print_event, logger=lambda msg: logging.getLogger("repcount").info(msg), **kwargs)
	try:
		await engine.start_workout(exercise)
	except CaptureDeviceFailure as e:
		print(f"[ERROR] {e}", file=sys.stderr)
		await engine.end_workout()
		return 2
	try:
		await asyncio.sleep(float(seconds))
	finally:
		sess = await engine.end_workout()
	print(f"[DONE] {sess.exercise.value}: {sess.repetitions} reps in {format_elapsed(sess.duration_s)}")
	return 0


def main(argv: Optional[list] = None) -> int:
	parser = argparse.ArgumentParser(description="Count exercise reps from the camera (or synthetic poses).")
	parser.add_argument("--exercise", required=True, choices=[e.value for e in ExerciseType])
	parser.add_argument("--seconds", type=float, default=30.0, help="How long to run before ending the workout.")
	parser.add_argument("--synthetic", action="store_true", help="Skip the live estimator and use synthetic poses.")
	parser.add_argument("--no-camera", action="store_true", help="No capture device; synthetic poses on a fixed timer.")
	parser.add_argument("--config", default=None, help="Path to config.json (optional)")
	parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
	args = parser.parse_args(argv)

	if args.debug:
		logging.basicConfig(level=logging.DEBUG, format="%(levelname)s:%(name)s:%(message)s")
	else:
		logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
	if args.config:
		set_config_path(args.config)

	try:
		return asyncio.run(_run(ExerciseType(args.exercise), args.seconds, args.synthetic, args.no_camera))
	except KeyboardInterrupt:
		print("\nInterrupted by user.")
		return 130


if __name__ == "__main__":
	raise SystemExit(main())
