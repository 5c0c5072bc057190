"""FastAPI routers: pages, dance controls, video preview, WebSocket."""
