import asyncio

import pytest

from repcount.capture import NullCapture
from repcount.engine import WorkoutEngine
from repcount.errors import CaptureDeviceFailure, WorkoutStateError
from repcount.exercises import ExerciseType
from repcount.orchestrator import SourceState
from tests.fakes import FakeCapture, FakeEstimator


def _synthetic_engine(cfg, events):
	return WorkoutEngine(cfg, estimator_factory=None, capture_factory=NullCapture, emit=events.append)


async def _wait_for(cond, timeout=3.0):
	deadline = asyncio.get_running_loop().time() + timeout
	while not cond():
		if asyncio.get_running_loop().time() > deadline:
			raise AssertionError("condition not met in time")
		await asyncio.sleep(0.01)


def test_synthetic_workout_counts_reps(fast_cfg):
	events = []
	engine = _synthetic_engine(fast_cfg, events)

	async def main():
		status = await engine.start_workout(ExerciseType.SKIPPING)
		assert status["sources"]["state"] == "fallback_ready"
		assert status["sources"]["active_source"] == "synthetic"
		await _wait_for(lambda: engine.sessions.current.repetitions >= 2)
		return await engine.end_workout()

	sess = asyncio.run(main())
	assert sess.completed
	assert sess.repetitions >= 2
	assert engine.sessions.history == [sess]
	types = [e["type"] for e in events]
	assert "rep" in types
	assert "pose" in types
	assert types[-1] == "workout_end"
	rep = next(e for e in events if e["type"] == "rep")
	assert rep["exercise"] == "skipping"
	assert rep["source"] == "synthetic"


def test_each_workout_gets_a_fresh_detector(fast_cfg):
	engine = _synthetic_engine(fast_cfg, [])

	async def main():
		await engine.start_workout(ExerciseType.SQUATS)
		first = engine.detector
		await asyncio.sleep(0.05)
		await engine.end_workout()
		await engine.start_workout(ExerciseType.SQUATS)
		second = engine.detector
		await engine.end_workout()
		return first, second

	first, second = asyncio.run(main())
	assert first is not second
	assert first.state is not second.state


def test_second_start_is_rejected(fast_cfg):
	engine = _synthetic_engine(fast_cfg, [])

	async def main():
		await engine.start_workout(ExerciseType.SQUATS)
		with pytest.raises(WorkoutStateError):
			await engine.start_workout(ExerciseType.PULLUPS)
		await engine.end_workout()
		with pytest.raises(WorkoutStateError):
			await engine.end_workout()

	asyncio.run(main())


def test_pause_stops_analysis_and_keeps_state(fast_cfg):
	engine = _synthetic_engine(fast_cfg, [])

	async def main():
		await engine.start_workout(ExerciseType.PULLUPS)
		await asyncio.sleep(0.05)
		st = engine.pause()
		assert st["paused"]
		assert not engine.loop.running
		state = engine.detector.state
		processed = engine.loop.results_processed
		await asyncio.sleep(0.05)
		assert engine.loop.results_processed == processed
		engine.resume()
		assert engine.detector.state is state
		await asyncio.sleep(0.05)
		assert engine.loop.results_processed > processed
		await engine.close()

	asyncio.run(main())
	assert engine.sessions.current is None


def test_manual_rep(fast_cfg):
	events = []
	engine = _synthetic_engine(fast_cfg, events)

	async def main():
		with pytest.raises(WorkoutStateError):
			engine.add_manual_rep()
		await engine.start_workout(ExerciseType.SQUATS)
		engine.pause()
		assert engine.add_manual_rep() == 1
		await engine.end_workout()

	asyncio.run(main())
	assert {"type": "rep", "exercise": "squats", "count": 1, "manual": True} in events


def test_camera_failure_keeps_session_until_restart(fast_cfg):
	caps = iter([FakeCapture(fail=True), FakeCapture()])
	engine = WorkoutEngine(
		fast_cfg,
		estimator_factory=FakeEstimator,
		capture_factory=lambda: next(caps),
	)

	async def main():
		with pytest.raises(CaptureDeviceFailure):
			await engine.start_workout(ExerciseType.SQUATS)
		assert engine.sessions.current is not None
		assert engine.orchestrator.state == SourceState.FAILED
		with pytest.raises(WorkoutStateError):
			engine.resume()

		st = await engine.restart()
		assert st["sources"]["state"] == "ready"
		assert engine.loop.running
		await engine.end_workout()

	asyncio.run(main())


def test_overlay_needs_a_pose(fast_cfg):
	engine = _synthetic_engine(fast_cfg, [])

	async def main():
		assert engine.overlay_jpeg() is None
		await engine.start_workout(ExerciseType.SQUATS)
		await _wait_for(lambda: engine.last_pose is not None)
		data = engine.overlay_jpeg()
		await engine.end_workout()
		return data

	assert asyncio.run(main())[:2] == b"\xff\xd8"


def test_runtime_source_changes_are_broadcast(fast_cfg):
	cap = FakeCapture()
	events = []
	engine = WorkoutEngine(
		fast_cfg,
		estimator_factory=lambda: FakeEstimator(fail_submit=True),
		capture_factory=lambda: cap,
		emit=events.append,
	)

	def states():
		return [e["status"]["sources"]["state"] for e in events if e["type"] == "status"]

	async def main():
		await engine.start_workout(ExerciseType.SQUATS)
		await _wait_for(lambda: "fallback_ready" in states())
		cap.running = False
		cap.error = "camera stopped delivering frames"
		await _wait_for(lambda: engine.orchestrator.state == SourceState.FAILED)
		await engine.end_workout()

	asyncio.run(main())
	seen = states()
	# start ends in ready; the downgrade and the camera loss happen at runtime
	assert seen.index("ready") < seen.index("fallback_ready") < seen.index("failed")
