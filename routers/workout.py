"""Workout routes. Routes: /exercises; /workout/start, pause, resume, rep, restart, end, status; /workouts/history."""
from fastapi import APIRouter, Depends, HTTPException

from deps import get_engine
from repcount.engine import WorkoutEngine
from repcount.errors import CaptureDeviceFailure, WorkoutStateError
from repcount.exercises import EXERCISES, ExerciseType
from schemas.requests import WorkoutStartPayload
from schemas.responses import ExerciseResponse, HistoryResponse, WorkoutEndResponse

router = APIRouter(tags=["workout"])


@router.get("/exercises", response_model=list[ExerciseResponse])
async def list_exercises():
	return [ex.to_dict() for ex in EXERCISES]


@router.post("/workout/start")
async def workout_start(payload: WorkoutStartPayload, engine: WorkoutEngine = Depends(get_engine)):
	"""Select an exercise, start a session and begin pose analysis."""
	exercise = ExerciseType.parse(payload.exercise)
	if exercise is None:
		raise HTTPException(status_code=400, detail=f"Unknown exercise {payload.exercise!r}; expected one of {[e.value for e in ExerciseType]}")
	try:
		status = await engine.start_workout(exercise)
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))
	except CaptureDeviceFailure as e:
		# Session stays open; the client may POST /workout/restart or /workout/end.
		raise HTTPException(status_code=503, detail=f"Camera unavailable: {e}")
	return {"detail": "Workout started", "status": status}


@router.post("/workout/pause")
async def workout_pause(engine: WorkoutEngine = Depends(get_engine)):
	"""Stop analysis without resetting the detector or ending the session."""
	try:
		return {"detail": "Analysis paused", "status": engine.pause()}
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))


@router.post("/workout/resume")
async def workout_resume(engine: WorkoutEngine = Depends(get_engine)):
	try:
		return {"detail": "Analysis resumed", "status": engine.resume()}
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))


@router.post("/workout/rep")
async def workout_manual_rep(engine: WorkoutEngine = Depends(get_engine)):
	"""Count one rep by hand."""
	try:
		count = engine.add_manual_rep()
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))
	return {"detail": "Rep counted", "repetitions": count}


@router.post("/workout/restart")
async def workout_restart(engine: WorkoutEngine = Depends(get_engine)):
	"""Explicit restart of estimator/camera initialization (after a camera failure)."""
	try:
		status = await engine.restart()
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))
	except CaptureDeviceFailure as e:
		raise HTTPException(status_code=503, detail=f"Camera unavailable: {e}")
	return {"detail": "Sources restarted", "status": status}


@router.post("/workout/end", response_model=WorkoutEndResponse)
async def workout_end(engine: WorkoutEngine = Depends(get_engine)):
	try:
		sess = await engine.end_workout()
	except WorkoutStateError as e:
		raise HTTPException(status_code=409, detail=str(e))
	return {"detail": "Workout ended", "session": sess.to_dict()}


@router.get("/workout/status")
async def workout_status(engine: WorkoutEngine = Depends(get_engine)):
	return engine.get_status()


@router.get("/workouts/history", response_model=HistoryResponse)
async def workouts_history(engine: WorkoutEngine = Depends(get_engine)):
	return {"sessions": [s.to_dict() for s in engine.sessions.history]}
