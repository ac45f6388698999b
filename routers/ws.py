"""WebSocket endpoint and ConnectionManager. Route: /ws (rep, pose, status, log and workout_end events)."""
import asyncio
import json
import logging
from typing import Any, Dict, List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["ws"])
logger = logging.getLogger(__name__)


def _dumps(message: Dict[str, Any]) -> str:
	return json.dumps(message, separators=(",", ":"))


class ConnectionManager:
	"""
	Fan-out of workout events to every connected client.

	A client whose send fails is dropped from the set; the next broadcast
	no longer waits on it.
	"""

	def __init__(self) -> None:
		self._clients: Set[WebSocket] = set()
		self._lock = asyncio.Lock()

	@property
	def client_count(self) -> int:
		return len(self._clients)

	async def connect(self, websocket: WebSocket) -> None:
		await websocket.accept()
		async with self._lock:
			self._clients.add(websocket)
		logger.debug("[WS] client connected (%d total)", len(self._clients))

	async def disconnect(self, websocket: WebSocket) -> None:
		async with self._lock:
			self._clients.discard(websocket)

	async def broadcast_json(self, message: Dict[str, Any]) -> None:
		async with self._lock:
			clients = list(self._clients)
		if not clients:
			return
		payload = _dumps(message)
		results = await asyncio.gather(*(c.send_text(payload) for c in clients), return_exceptions=True)
		dead: List[WebSocket] = [c for c, r in zip(clients, results) if isinstance(r, Exception)]
		if not dead:
			return
		async with self._lock:
			for c in dead:
				self._clients.discard(c)
		for c, r in zip(clients, results):
			if c in dead:
				logger.debug("[WS] send failed, dropping client: %r", r)
				try:
					await c.close()
				except RuntimeError:
					# already closed by the peer
					pass


manager = ConnectionManager()


def _status_message(websocket: WebSocket) -> Dict[str, Any]:
	engine = getattr(websocket.app.state.state, "engine", None)
	return {"type": "status", "status": engine.get_status() if engine is not None else None}


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
	"""
	Sends a status snapshot on connect. Clients may send {"type": "status"} at any
	time for a fresh snapshot; anything else is ignored.
	"""
	await manager.connect(websocket)
	try:
		await websocket.send_text(_dumps(_status_message(websocket)))
		while True:
			raw = await websocket.receive_text()
			try:
				msg = json.loads(raw)
			except ValueError:
				continue
			if isinstance(msg, dict) and msg.get("type") == "status":
				await websocket.send_text(_dumps(_status_message(websocket)))
	except WebSocketDisconnect:
		pass
	finally:
		await manager.disconnect(websocket)
