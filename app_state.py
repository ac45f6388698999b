"""
Explicit app state: single source of truth for runtime lifecycle.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Callable, Optional

from repcount.config import AppConfig
from repcount.engine import WorkoutEngine


class AppState:
	"""
	Holds all runtime state for the app. Replaces module globals.
	Populated in server lifespan.
	"""
	# WebSocket manager (set at app load)
	manager: Any = None

	# Config and the single workout engine
	cfg: Optional[AppConfig] = None
	engine: Optional[WorkoutEngine] = None

	# Helpers (callables set in server after creation)
	log_to_clients: Optional[Callable[[str], None]] = None

	def __init__(self) -> None:
		self.dbg = {"events_broadcast": 0, "events_dropped": 0}
