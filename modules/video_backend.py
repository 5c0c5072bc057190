from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from modules.config import AppConfig, get_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraFrame:
	"""
	One captured frame handed to the pose estimator.
	rgb is an HxWx3 uint8 array; frame_idx increases by one per captured frame.
	"""

	rgb: Any
	width: int
	height: int
	t_host: float
	frame_idx: int


class CameraBackend(ABC):
	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def start(self) -> None: ...

	@abstractmethod
	def stop(self) -> None:
		"""Stop capture and release the device. Must be safe to call repeatedly."""
		...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]:
		"""
		At least: running (bool), has_frame (bool), error (str|None).
		"""
		...

	@abstractmethod
	def get_latest_frame(self) -> Optional[CameraFrame]: ...

	@abstractmethod
	def get_latest_jpeg(self) -> tuple[Optional[bytes], Optional[float]]: ...

	async def wait_for_frame(
		self,
		after_idx: Optional[int] = None,
		timeout_s: float = 1.0,
		poll_s: float = 0.005,
	) -> Optional[CameraFrame]:
		"""
		Wait for a frame newer than after_idx. Returns None on timeout or when the
		backend stops running.
		"""
		deadline = time.monotonic() + float(timeout_s)
		while True:
			frame = self.get_latest_frame()
			if frame is not None and (after_idx is None or frame.frame_idx > after_idx):
				return frame
			if not self.get_status().get("running"):
				return None
			if time.monotonic() >= deadline:
				return None
			await asyncio.sleep(poll_s)

	async def release(self) -> None:
		"""Run the blocking stop() in a worker thread so the event loop keeps serving."""
		await asyncio.to_thread(self.stop)

	async def mjpeg_stream(self, fps: float) -> AsyncIterator[bytes]:
		async for chunk in mjpeg_from_latest(self.get_latest_jpeg, fps):
			yield chunk

	async def snapshot_jpeg(self) -> Optional[bytes]:
		jpeg, _t = self.get_latest_jpeg()
		return jpeg


def get_video_backend(cfg: Optional[AppConfig] = None, *, backend_override: Optional[str] = None) -> CameraBackend:
	cfg = cfg or get_config()
	backend = (backend_override or cfg.camera.backend or "opencv").strip().lower()
	if backend not in ("opencv", "cv2", "webcam"):
		# Unknown backend: fall back to the webcam instead of refusing to serve.
		logger.warning("Unknown camera backend %r, falling back to opencv", backend)

	from modules.video_backends.opencv_backend import OpenCvCameraBackend

	# NOTE: do not use `or 0` style defaults here; camera index 0 is valid.
	return OpenCvCameraBackend(
		camera_index=int(cfg.camera.index),
		width=int(cfg.camera.width),
		height=int(cfg.camera.height),
		fps=int(cfg.camera.fps),
		preview_fps=int(cfg.camera.preview_fps),
	)


async def mjpeg_from_latest(get_latest_jpeg_fn, fps: float) -> AsyncIterator[bytes]:
	"""
	Reusable MJPEG generator for backends that expose get_latest_jpeg().
	Yields full multipart chunks including boundary and headers.
	"""
	boundary = b"frame"
	last_t = None
	last_sent_mono = 0.0
	try:
		max_fps = float(fps)
	except Exception:
		max_fps = 15.0
	if not (max_fps > 0.0):
		max_fps = 15.0
	min_interval = 1.0 / max_fps

	while True:
		jpeg, t = get_latest_jpeg_fn()
		if jpeg is None or t is None:
			await asyncio.sleep(0.05)
			continue
		if last_t is not None and t == last_t:
			await asyncio.sleep(0.01)
			continue
		now_mono = time.monotonic()
		elapsed = now_mono - last_sent_mono
		if elapsed < min_interval:
			await asyncio.sleep(min_interval - elapsed)
			continue
		last_t = t
		last_sent_mono = time.monotonic()
		yield b"--" + boundary + b"\r\n"
		yield b"Content-Type: image/jpeg\r\n"
		yield b"Content-Length: " + str(len(jpeg)).encode("ascii") + b"\r\n\r\n"
		yield jpeg + b"\r\n"
