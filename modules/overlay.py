from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Iterable, Optional, Tuple

from modules.config import OverlayConfig
from modules.pose.types import Keypoint


class DrawingSurface(ABC):
	"""
	Minimal 2D canvas used for the keypoint overlay.
	"""

	@property
	@abstractmethod
	def size(self) -> Tuple[int, int]: ...

	@abstractmethod
	def resize(self, width: int, height: int) -> None: ...

	@abstractmethod
	def clear(self) -> None: ...

	@abstractmethod
	def draw_circle(self, x: float, y: float, radius: float, color: str) -> None: ...


class PillowSurface(DrawingSurface):
	"""
	Transparent RGBA Pillow image. Served as PNG so the browser can stack it on top
	of the live camera preview.
	"""

	def __init__(self, width: int = 1, height: int = 1) -> None:
		from PIL import Image, ImageDraw  # type: ignore

		self._Image = Image
		self._ImageDraw = ImageDraw
		self._lock = threading.Lock()
		self._image = Image.new("RGBA", (max(1, int(width)), max(1, int(height))), (0, 0, 0, 0))
		self._draw = ImageDraw.Draw(self._image)

	@property
	def size(self) -> Tuple[int, int]:
		with self._lock:
			return self._image.size

	def resize(self, width: int, height: int) -> None:
		w, h = max(1, int(width)), max(1, int(height))
		with self._lock:
			if self._image.size == (w, h):
				return
			self._image = self._Image.new("RGBA", (w, h), (0, 0, 0, 0))
			self._draw = self._ImageDraw.Draw(self._image)

	def clear(self) -> None:
		with self._lock:
			self._draw.rectangle([(0, 0), self._image.size], fill=(0, 0, 0, 0))

	def draw_circle(self, x: float, y: float, radius: float, color: str) -> None:
		r = float(radius)
		with self._lock:
			self._draw.ellipse([(x - r, y - r), (x + r, y + r)], fill=color)

	def get_pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
		with self._lock:
			return self._image.getpixel((int(x), int(y)))

	def to_png(self) -> bytes:
		with self._lock:
			buf = BytesIO()
			self._image.save(buf, format="PNG")
			return buf.getvalue()


class OverlayRenderer:
	def __init__(self, surface: DrawingSurface, cfg: Optional[OverlayConfig] = None) -> None:
		self.surface = surface
		self.cfg = cfg or OverlayConfig()
		self.renders = 0

	def render(self, keypoints: Iterable[Keypoint], width: int, height: int) -> int:
		"""
		Redraw the overlay for one frame. The surface is re-synced to the frame size
		every call so camera resolution changes are picked up. Returns markers drawn.
		"""
		self.surface.resize(width, height)
		self.surface.clear()
		drawn = 0
		for kp in keypoints:
			if float(kp.score) <= self.cfg.min_score:
				continue
			self.surface.draw_circle(float(kp.x_px), float(kp.y_px), self.cfg.marker_radius, self.cfg.marker_color)
			drawn += 1
		self.renders += 1
		return drawn

	def clear(self) -> None:
		self.surface.clear()
