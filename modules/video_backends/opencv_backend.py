from __future__ import annotations

import logging
import threading
import time
from io import BytesIO
from typing import Any, Dict, Optional

from modules.video_backend import CameraBackend, CameraFrame

logger = logging.getLogger(__name__)


class OpenCvCameraBackend(CameraBackend):
	"""
	Local webcam via OpenCV (cv2.VideoCapture).

	- Capture runs on a daemon thread; the latest RGB frame and a throttled preview
	  JPEG are kept behind a lock for the motion loop and /video/mjpeg.
	- The VideoCapture handle is created and released inside the capture thread.
	  Each thread gets its own stop Event, so a thread stuck in cap.read() still
	  sees its stop signal and releases the device once the read returns.
	- start() refuses to open the device again while a stopped thread is still
	  alive, so two captures never compete for the same webcam.
	- Open failures (permission denied, no device) end up in get_status()["error"].
	"""

	def __init__(
		self,
		camera_index: int = 0,
		width: int = 640,
		height: int = 480,
		fps: int = 30,
		preview_fps: int = 15,
		label: str = "webcam",
		stop_timeout_s: float = 3.0,
	) -> None:
		self._lock = threading.Lock()
		self._label = str(label or "webcam")
		self._camera_index = int(camera_index)
		self._size = (int(width), int(height))
		self._fps = int(fps) if int(fps) > 0 else 30
		self._preview_fps = int(preview_fps) if int(preview_fps) > 0 else 15
		self._stop_timeout_s = float(stop_timeout_s)

		self._running = False
		# Stop signal of the current (or last) capture thread.
		self._stop_evt = threading.Event()
		self._thread: Optional[threading.Thread] = None
		self._last_error: Optional[str] = None

		self._latest: Optional[CameraFrame] = None
		self._latest_jpeg: Optional[bytes] = None
		self._latest_jpeg_t: Optional[float] = None
		self._last_preview_encode_t: float = 0.0
		self._frame_idx: int = 0
		self._actual_size: Optional[tuple[int, int]] = None

	def name(self) -> str:
		return self._label

	def get_status(self) -> Dict[str, Any]:
		t = self._thread
		# A stopped capture thread that has not released the device yet.
		releasing = t is not None and t.is_alive() and self._stop_evt.is_set()
		with self._lock:
			return {
				"backend": "opencv",
				"camera_index": self._camera_index,
				"running": bool(self._running),
				"releasing": bool(releasing),
				"has_frame": self._latest is not None,
				"t_last_frame": self._latest.t_host if self._latest else None,
				"frame_idx": self._latest.frame_idx if self._latest else None,
				"requested_size": [int(self._size[0]), int(self._size[1])],
				"frame_size": list(self._actual_size) if self._actual_size else None,
				"fps": int(self._fps),
				"preview_fps": int(self._preview_fps),
				"error": self._last_error,
			}

	def get_latest_frame(self) -> Optional[CameraFrame]:
		with self._lock:
			return self._latest

	def get_latest_jpeg(self) -> tuple[Optional[bytes], Optional[float]]:
		with self._lock:
			return self._latest_jpeg, self._latest_jpeg_t

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
		prev = self._thread
		if prev is not None and prev.is_alive():
			self._fail("Previous capture has not released the camera yet. Try again in a moment.")
			return

		stop_evt = threading.Event()
		with self._lock:
			self._running = True
			self._last_error = None
			self._latest = None
			self._latest_jpeg = None
			self._latest_jpeg_t = None
		self._stop_evt = stop_evt

		t = threading.Thread(
			target=self._run_capture_loop,
			args=(stop_evt,),
			name=f"{self._label}-opencv",
			daemon=True,
		)
		self._thread = t
		t.start()

	def stop(self) -> None:
		"""Signal the capture thread and wait (bounded) for it to release the device. Blocking."""
		self._stop_evt.set()
		with self._lock:
			self._running = False
			self._latest = None
		t = self._thread
		if t is not None and t.is_alive() and t is not threading.current_thread():
			t.join(timeout=self._stop_timeout_s)
		if t is not None and t.is_alive():
			# Keep the reference: start() must not reopen the device until it exits.
			logger.warning(
				"Camera %s: capture thread still busy after %.1fs; device is released when its read returns",
				self._label,
				self._stop_timeout_s,
			)
			return
		self._thread = None

	def _fail(self, message: str, stop_evt: Optional[threading.Event] = None) -> None:
		if stop_evt is not None and stop_evt.is_set():
			# A stopped thread must not clobber the status of a newer session.
			logger.debug("Camera %s (stopped thread): %s", self._label, message)
			return
		logger.warning("Camera %s: %s", self._label, message)
		with self._lock:
			self._last_error = message
			self._running = False

	def _run_capture_loop(self, stop_evt: threading.Event) -> None:
		try:
			import cv2  # type: ignore
		except Exception as e:
			self._fail(f"OpenCV import failed: {e!r}. Install `opencv-python` (pip).", stop_evt)
			return

		try:
			from PIL import Image  # type: ignore
		except Exception as e:
			self._fail(f"Pillow import failed: {e!r}. Install `Pillow` (pip).", stop_evt)
			return

		cap = None
		try:
			cap = cv2.VideoCapture(self._camera_index)
			if cap is None or not cap.isOpened():
				self._fail(
					f"Camera access denied or unavailable (index {self._camera_index}). "
					"Check that a webcam is connected and camera permissions are granted.",
					stop_evt,
				)
				return
			cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._size[0])
			cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._size[1])
			cap.set(cv2.CAP_PROP_FPS, self._fps)
			logger.info(
				"Camera %s opened (index %d, %dx%d)",
				self._label,
				self._camera_index,
				int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
				int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
			)

			misses = 0
			while not stop_evt.is_set():
				ok, bgr = cap.read()
				if stop_evt.is_set():
					break
				if not ok or bgr is None:
					misses += 1
					if misses >= 50:
						self._fail("Camera stopped delivering frames", stop_evt)
						return
					time.sleep(0.02)
					continue
				misses = 0
				now = time.time()
				rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
				h, w = int(rgb.shape[0]), int(rgb.shape[1])

				jpg: Optional[bytes] = None
				target_dt = 1.0 / max(1.0, float(self._preview_fps))
				if (now - self._last_preview_encode_t) >= target_dt:
					self._last_preview_encode_t = now
					try:
						buf = BytesIO()
						Image.fromarray(rgb).save(buf, format="JPEG", quality=80)
						jpg = buf.getvalue()
					except Exception:
						# Keep preview best-effort; don't kill capture on encode errors.
						jpg = None

				with self._lock:
					if stop_evt.is_set():
						break
					self._frame_idx += 1
					self._latest = CameraFrame(rgb=rgb, width=w, height=h, t_host=now, frame_idx=self._frame_idx)
					self._actual_size = (w, h)
					if jpg is not None:
						self._latest_jpeg = jpg
						self._latest_jpeg_t = now
		except Exception as e:
			self._fail(f"Camera capture failed: {e!r}", stop_evt)
		finally:
			if cap is not None:
				try:
					cap.release()
				except Exception:
					logger.debug("VideoCapture.release failed", exc_info=True)
			if not stop_evt.is_set():
				with self._lock:
					self._running = False
			logger.info("Camera %s released", self._label)
