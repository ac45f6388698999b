"""Video/overlay routes. Routes: /video/status, /video/overlay.jpg, /debug/estimator."""
import asyncio

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app_state import AppState
from deps import get_engine, get_state
from repcount.engine import WorkoutEngine
from repcount.pose.mediapipe_provider import probe_mediapipe

router = APIRouter(tags=["video"])


@router.get("/video/status")
async def video_status(engine: WorkoutEngine = Depends(get_engine)):
	orch = engine.orchestrator
	if orch is None or orch.capture is None:
		return {"running": False, "error": orch.error if orch else None}
	return orch.capture.get_status()


@router.get("/video/overlay.jpg")
async def video_overlay(engine: WorkoutEngine = Depends(get_engine)):
	"""Last detected pose drawn over the latest camera frame (or a black canvas)."""
	loop = asyncio.get_running_loop()
	jpeg = await loop.run_in_executor(None, engine.overlay_jpeg)
	if jpeg is None:
		raise HTTPException(status_code=404, detail="No pose detected yet")
	return Response(
		content=jpeg,
		media_type="image/jpeg",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
		},
	)


@router.get("/debug/estimator")
async def debug_estimator(state: AppState = Depends(get_state)):
	"""Check that MediaPipe imports and a Pose model can be built with the configured options."""
	loop = asyncio.get_running_loop()
	results = await loop.run_in_executor(None, probe_mediapipe, state.cfg.estimator if state.cfg else None)
	return {"ok": all(r.get("ok") for r in results), "results": results, "debug": dict(state.dbg)}
