import pytest

from repcount.detector import RepCompleted
from repcount.errors import WorkoutStateError
from repcount.exercises import EXERCISES, ExerciseType, get_exercise
from repcount.session import SessionAccumulator, format_elapsed


class Clock:
	def __init__(self, t=1000.0):
		self.t = t

	def __call__(self):
		return self.t


@pytest.mark.parametrize("seconds,expected", [(0, "00:00"), (5.9, "00:05"), (65, "01:05"), (3600, "60:00"), (-3, "00:00")])
def test_format_elapsed(seconds, expected):
	assert format_elapsed(seconds) == expected


def test_session_counts_matching_reps_only():
	clock = Clock()
	acc = SessionAccumulator(clock=clock)
	acc.start(ExerciseType.SQUATS)
	assert acc.on_rep(RepCompleted(ExerciseType.SQUATS, 1.0)) == 1
	assert acc.on_rep(RepCompleted(ExerciseType.SKIPPING, 2.0)) == 1
	assert acc.add_rep() == 2

	clock.t += 42.0
	sess = acc.end()
	assert sess.repetitions == 2
	assert sess.duration_s == 42
	assert sess.completed
	assert acc.current is None
	assert acc.history == [sess]
	assert sess.to_dict()["exercise"] == "squats"


def test_paused_time_is_excluded():
	clock = Clock()
	acc = SessionAccumulator(clock=clock)
	acc.start(ExerciseType.PULLUPS)
	clock.t += 10.0
	acc.pause()
	assert acc.paused
	clock.t += 100.0
	assert acc.elapsed_seconds() == pytest.approx(10.0)
	acc.resume()
	clock.t += 5.0
	assert acc.elapsed_seconds() == pytest.approx(15.0)
	assert acc.end().duration_s == 15


def test_state_errors():
	acc = SessionAccumulator(clock=Clock())
	with pytest.raises(WorkoutStateError):
		acc.end()
	with pytest.raises(WorkoutStateError):
		acc.add_rep()
	acc.start(ExerciseType.SKIPPING)
	with pytest.raises(WorkoutStateError):
		acc.start(ExerciseType.SQUATS)


def test_exercise_catalogue():
	assert [e.type for e in EXERCISES] == [ExerciseType.PULLUPS, ExerciseType.SKIPPING, ExerciseType.SQUATS]
	assert ExerciseType.parse(" Squats ") == ExerciseType.SQUATS
	assert ExerciseType.parse("burpees") is None
	assert get_exercise(ExerciseType.SKIPPING).name == "Skipping"
