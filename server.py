import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from modules import __version__
from modules.config import AppConfig, get_config, resolve_repo_path, set_config_path
from modules.motion_loop import MotionLoop
from modules.overlay import OverlayRenderer, PillowSurface
from modules.pose.base import PoseEstimator, get_pose_estimator
from modules.reference_video import ReferenceVideo
from modules.video_backend import CameraBackend, get_video_backend
from routers import dance, pages, ws
from routers import video as video_routes
from routers.ws import ConnectionManager

logger = logging.getLogger("sayaw.server")

# UI directory path
UI_DIR = Path(__file__).parent / "UI"


def load_html_template(filename: str) -> str:
	"""
	Load an HTML template file from the UI directory.

	Args:
		filename: Name of the HTML file (e.g., 'index.html')

	Returns:
		The HTML content as a string

	Raises:
		FileNotFoundError: If the file doesn't exist
	"""
	file_path = UI_DIR / filename
	if not file_path.exists():
		raise FileNotFoundError(f"UI template not found: {file_path}")
	with open(file_path, 'r', encoding='utf-8') as f:
		return f.read()


def create_app(
	cfg: Optional[AppConfig] = None,
	*,
	video: Optional[CameraBackend] = None,
	estimator: Optional[PoseEstimator] = None,
) -> FastAPI:
	"""
	Build the FastAPI app. Camera and pose estimator can be injected (tests use fakes);
	otherwise they come from config. Nothing heavy is opened until /dance/start.
	"""

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		app_cfg = cfg or get_config()
		state = AppState()
		state.cfg = app_cfg
		state.UI_DIR = UI_DIR
		state.get_page_html = load_html_template

		manager = ConnectionManager()
		state.manager = manager

		def _publish(msg: Dict[str, Any]) -> None:
			"""Fire-and-forget broadcast; safe to call from non-async code."""
			try:
				asyncio.create_task(manager.broadcast_json(msg))
			except RuntimeError:
				# No running loop; ignore
				pass

		def _log_to_clients(message: str) -> None:
			logger.info(message)
			_publish({"type": "log", "msg": message})

		state.publish = _publish
		state.log_to_clients = _log_to_clients

		state.video = video if video is not None else get_video_backend(app_cfg)
		state.estimator = estimator if estimator is not None else get_pose_estimator(app_cfg)

		ref_path = app_cfg.reference_video.path
		state.reference = ReferenceVideo(resolve_repo_path(ref_path) if ref_path else None, notify=_publish)
		if not state.reference.available:
			logger.warning("Reference video not found: %s", ref_path or "(not configured)")

		state.surface = PillowSurface(app_cfg.camera.width, app_cfg.camera.height)
		state.overlay = OverlayRenderer(state.surface, app_cfg.overlay)
		state.motion = MotionLoop(
			state.video,
			state.estimator,
			reference=state.reference,
			renderer=state.overlay,
			scoring=app_cfg.scoring,
			camera_cfg=app_cfg.camera,
			notify=_publish,
		)

		app.state.state = state
		state.log_to_clients(f"Server ready (camera={state.video.name()})")
		try:
			yield
		finally:
			try:
				await state.motion.close()
			except Exception as e:
				logger.warning("Motion loop shutdown failed: %r", e)
			try:
				state.estimator.close()
			except Exception as e:
				logger.warning("Pose estimator shutdown failed: %r", e)
			app.state.state = None

	app = FastAPI(title="Sayaw", version=__version__, lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(pages.router)
	app.include_router(dance.router)
	app.include_router(video_routes.router)
	app.include_router(ws.router)
	return app


app = create_app()


def main(argv: Optional[list[str]] = None) -> None:
	parser = argparse.ArgumentParser(description="Sayaw dance challenge server")
	parser.add_argument("--host", default=None, help="Bind host (default: config server.host)")
	parser.add_argument("--port", type=int, default=None, help="Bind port (default: config server.port)")
	parser.add_argument("--config", default=None, help="Path to config.json (default: $SAYAW_CONFIG or ./config.json)")
	parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
	args = parser.parse_args(argv)

	if args.config:
		set_config_path(args.config)
	cfg = get_config()

	level = (args.log_level or cfg.logging.level or "INFO").upper()
	logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(levelname)s:%(name)s:%(message)s")

	uvicorn.run(
		create_app(cfg),
		host=args.host or cfg.server.host,
		port=int(args.port or cfg.server.port),
		log_level=level.lower(),
	)


if __name__ == "__main__":
	main()
