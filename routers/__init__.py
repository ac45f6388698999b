"""FastAPI routers: workout control, video/overlay, WebSocket events."""
