import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from repcount import __version__
from repcount.config import get_config, set_config_path
from repcount.engine import WorkoutEngine
from routers import video, workout, ws
from routers.ws import manager

logger = logging.getLogger("repcount.server")


def _log_to_clients(message: str) -> None:
	"""
	Send a log line to all connected WebSocket clients.
	Fire-and-forget; safe to call from non-async code.
	"""
	try:
		asyncio.get_running_loop().create_task(manager.broadcast_json({"type": "log", "msg": message}))
	except RuntimeError:
		# No running loop yet; ignore
		pass


def _make_emitter(state: AppState):
	def _emit(event: Dict[str, Any]) -> None:
		if manager.client_count == 0:
			return
		try:
			asyncio.get_running_loop().create_task(manager.broadcast_json(event))
			state.dbg["events_broadcast"] = int(state.dbg.get("events_broadcast", 0)) + 1
		except RuntimeError:
			state.dbg["events_dropped"] = int(state.dbg.get("events_dropped", 0)) + 1

	return _emit


@asynccontextmanager
async def lifespan(app: FastAPI):
	state = AppState()
	state.cfg = get_config()
	state.manager = manager
	state.log_to_clients = _log_to_clients
	state.engine = WorkoutEngine(
		state.cfg,
		emit=_make_emitter(state),
		logger=_log_to_clients,
	)
	app.state.state = state
	logger.info("[Server] repcount %s ready (capture=%s)", __version__, state.cfg.capture.backend)
	try:
		yield
	finally:
		try:
			await state.engine.close()
		except Exception as e:
			logger.warning("[Server] engine shutdown failed: %r", e)


app = FastAPI(title="repcount", version=__version__, lifespan=lifespan)
app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(workout.router)
app.include_router(video.router)
app.include_router(ws.router)


def main(argv: Optional[list] = None) -> int:
	p = argparse.ArgumentParser(description="repcount API server")
	p.add_argument("--config", default=None, help="Path to config.json (optional)")
	p.add_argument("--host", default="127.0.0.1")
	p.add_argument("--port", type=int, default=8000)
	p.add_argument("--debug", action="store_true", help="Enable debug logging.")
	args = p.parse_args(argv)

	logging.basicConfig(
		level=logging.DEBUG if args.debug else logging.INFO,
		format="%(levelname)s:%(name)s:%(message)s",
	)
	if args.config:
		set_config_path(args.config)

	import uvicorn

	uvicorn.run(app, host=args.host, port=int(args.port))
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
