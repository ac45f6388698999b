import asyncio

import pytest

from repcount.capture import NullCapture
from repcount.config import DetectionConfig, LoopConfig
from repcount.detector import Phase, RepetitionDetector
from repcount.errors import FrameInferenceFailure
from repcount.exercises import ExerciseType
from repcount.frame_loop import FrameLoop
from repcount.orchestrator import SourceOrchestrator, SourceState
from repcount.pose.synthetic import SyntheticGenerator
from tests.fakes import FakeCapture, FakeEstimator, squat_frame

LOOP_CFG = LoopConfig(refresh_hz=200.0, synthetic_interval_ms=5.0)


def _build(estimator=None, capture=None):
	det = RepetitionDetector(ExerciseType.SQUATS, DetectionConfig(rep_cooldown_ms=0.0))
	orch = SourceOrchestrator(
		estimator_factory=(lambda: estimator) if estimator is not None else None,
		synthetic_factory=lambda: SyntheticGenerator(ExerciseType.SQUATS, lambda: det.phase),
		capture_factory=lambda: capture or NullCapture(),
	)
	reps = []
	poses = []
	loop = FrameLoop(orch, det, on_rep=reps.append, on_pose=poses.append, cfg=LOOP_CFG)
	return orch, det, loop, reps, poses


def test_start_requires_ready_sources():
	orch, _, loop, _, _ = _build()

	async def main():
		with pytest.raises(RuntimeError):
			loop.start()

	asyncio.run(main())
	assert orch.state == SourceState.IDLE


def test_interval_follows_capture():
	async def main():
		orch, _, loop, _, _ = _build(FakeEstimator(), FakeCapture())
		await orch.start()
		assert loop.interval_seconds() == pytest.approx(1.0 / 200.0)
		orch2, _, loop2, _, _ = _build()
		await orch2.start()
		assert loop2.interval_seconds() == pytest.approx(0.005)

	asyncio.run(main())


def test_frames_are_dropped_while_result_pending():
	est = FakeEstimator()

	async def main():
		orch, det, loop, _, poses = _build(est, FakeCapture())
		await orch.start()
		loop.start()
		await asyncio.sleep(0.05)
		assert len(est.submitted) == 1
		assert loop.frames_dropped >= 1
		assert loop.pending

		est.deliver(squat_frame(170))
		assert not loop.pending
		assert loop.results_processed == 1
		assert len(poses) == 1

		await asyncio.sleep(0.03)
		assert len(est.submitted) >= 2
		loop.stop()

	asyncio.run(main())


def test_stop_cancels_and_discards_late_results():
	est = FakeEstimator()

	async def main():
		orch, det, loop, _, poses = _build(est, FakeCapture())
		await orch.start()
		loop.start()
		await asyncio.sleep(0.02)
		loop.stop()
		submitted = len(est.submitted)
		await asyncio.sleep(0.03)
		assert len(est.submitted) == submitted
		assert not loop.running

		est.deliver(squat_frame(90))
		assert loop.results_discarded == 1
		assert loop.results_processed == 0
		assert det.state.stable_count == 0
		assert poses == []

	asyncio.run(main())


def test_synthetic_timer_stops_immediately():
	async def main():
		orch, det, loop, _, _ = _build()
		await orch.start()
		loop.start()
		await asyncio.sleep(0.05)
		loop.stop()
		gen = orch.synthetic.generated
		assert gen > 0
		await asyncio.sleep(0.03)
		assert orch.synthetic.generated == gen

	asyncio.run(main())


def test_submit_failure_switches_to_synthetic_mid_session():
	est = FakeEstimator(fail_submit=True)

	async def main():
		orch, det, loop, _, poses = _build(est, FakeCapture())
		await orch.start()
		state_before = det.state
		loop.start()
		await asyncio.sleep(0.03)
		loop.stop()
		assert orch.state == SourceState.FALLBACK_READY
		assert orch.status.using_fallback
		assert est.disposed
		# the frame that failed went to the synthetic source instead
		assert loop.results_processed >= 1
		assert all(p.backend == "synthetic" for p in poses)
		assert det.state is state_before

	asyncio.run(main())


def test_async_inference_error_switches_to_synthetic():
	est = FakeEstimator()

	async def main():
		orch, det, loop, _, _ = _build(est, FakeCapture())
		await orch.start()
		loop.start()
		await asyncio.sleep(0.02)
		est.fail_pending(FrameInferenceFailure("gpu lost"))
		assert orch.state == SourceState.FALLBACK_READY
		await asyncio.sleep(0.03)
		loop.stop()
		assert loop.results_processed >= 1

	asyncio.run(main())


def test_capture_failure_stops_loop():
	cap = FakeCapture()

	async def main():
		orch, _, loop, _, _ = _build(FakeEstimator(), cap)
		await orch.start()
		loop.start()
		await asyncio.sleep(0.01)
		cap.running = False
		cap.error = "camera stopped delivering frames"
		await asyncio.sleep(0.03)
		assert not loop.running
		assert orch.state == SourceState.FAILED

	asyncio.run(main())


def test_pause_and_resume_keep_detector_state():
	async def main():
		orch, det, loop, reps, _ = _build()
		await orch.start()
		loop.start()
		await asyncio.sleep(0.2)
		loop.stop()
		state = det.state
		phase = det.phase
		count = len(reps)
		await asyncio.sleep(0.02)
		assert det.phase == phase
		loop.start()
		assert det.state is state
		await asyncio.sleep(0.2)
		loop.stop()
		assert len(reps) >= count

	asyncio.run(main())


def test_pending_slot_released_when_source_replaced():
	est = FakeEstimator()
	est2 = FakeEstimator()
	caps = iter([FakeCapture(), FakeCapture()])
	ests = iter([est, est2])

	async def main():
		det = RepetitionDetector(ExerciseType.SQUATS)
		orch = SourceOrchestrator(
			estimator_factory=lambda: next(ests),
			synthetic_factory=lambda: SyntheticGenerator(ExerciseType.SQUATS, lambda: Phase.AT_REST),
			capture_factory=lambda: next(caps),
		)
		loop = FrameLoop(orch, det, on_rep=lambda ev: None, cfg=LOOP_CFG)
		await orch.start()
		loop.start()
		await asyncio.sleep(0.02)
		assert loop.pending
		loop.stop()
		await orch.restart()
		loop.start()
		await asyncio.sleep(0.02)
		loop.stop()
		assert len(est2.submitted) == 1

	asyncio.run(main())


def test_inference_error_after_pause_still_falls_back():
	est = FakeEstimator()

	async def main():
		orch, det, loop, _, poses = _build(est, FakeCapture())
		await orch.start()
		loop.start()
		await asyncio.sleep(0.02)
		assert loop.pending
		loop.stop()

		est.fail_pending(FrameInferenceFailure("gpu lost"))
		assert orch.state == SourceState.FALLBACK_READY
		assert orch.status.using_fallback
		assert est.disposed
		assert not loop.pending
		# the failed frame never reaches the detector
		assert det.state.stable_count == 0
		assert poses == []

		loop.start()
		await asyncio.sleep(0.03)
		loop.stop()
		assert loop.results_processed >= 1
		assert all(p.backend == "synthetic" for p in poses)

	asyncio.run(main())
