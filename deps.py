"""
FastAPI dependencies. Use Depends(get_state) / Depends(get_engine) in route handlers.
"""
from fastapi import HTTPException, Request

from app_state import AppState
from repcount.engine import WorkoutEngine


def get_state(request: Request) -> AppState:
	"""Return the app state instance attached in lifespan."""
	return request.app.state.state


def get_engine(request: Request) -> WorkoutEngine:
	engine = get_state(request).engine
	if engine is None:
		raise HTTPException(status_code=503, detail="Server not ready")
	return engine
