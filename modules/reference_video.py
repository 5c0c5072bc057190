from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ReferenceVideo:
	"""
	Transport state for the reference dance clip.

	The browser renders the <video>; the server owns play/pause/seek so the page can be
	reloaded without losing position. Every change is published as a
	{"type": "reference", ...} message. The clip's lifecycle is independent of the
	motion loop: pausing it never stops scoring.
	"""

	def __init__(
		self,
		path: Optional[str | Path] = None,
		notify: Optional[Callable[[Dict[str, Any]], None]] = None,
		clock: Callable[[], float] = time.monotonic,
		url: str = "/dance/reference",
	) -> None:
		self.path: Optional[Path] = Path(path) if path else None
		self.url = url
		self._notify: Callable[[Dict[str, Any]], None] = notify or (lambda _msg: None)
		self._clock = clock
		self._playing = False
		# Position accumulated before the current play() started.
		self._offset_s = 0.0
		self._play_started: Optional[float] = None

	def set_notify(self, notify: Optional[Callable[[Dict[str, Any]], None]]) -> None:
		self._notify = notify or (lambda _msg: None)

	@property
	def available(self) -> bool:
		return bool(self.path and self.path.is_file())

	@property
	def is_playing(self) -> bool:
		return self._playing

	def position_s(self) -> float:
		if self._playing and self._play_started is not None:
			return self._offset_s + max(0.0, self._clock() - self._play_started)
		return self._offset_s

	def play(self) -> None:
		if self._playing:
			return
		self._playing = True
		self._play_started = self._clock()
		self._publish("play")

	def pause(self) -> None:
		if not self._playing:
			return
		self._offset_s = self.position_s()
		self._playing = False
		self._play_started = None
		self._publish("pause")

	def seek_to_start(self) -> None:
		self._offset_s = 0.0
		if self._playing:
			self._play_started = self._clock()
		self._publish("seek")

	def stop(self) -> None:
		"""Pause and rewind."""
		self.pause()
		self.seek_to_start()

	def get_status(self) -> Dict[str, Any]:
		return {
			"available": self.available,
			"url": self.url if self.available else None,
			"playing": self._playing,
			"position_s": round(self.position_s(), 3),
		}

	def _publish(self, action: str) -> None:
		msg = {"type": "reference", "action": action}
		msg.update(self.get_status())
		try:
			self._notify(msg)
		except Exception:
			logger.debug("reference notify failed", exc_info=True)
