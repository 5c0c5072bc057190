from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from modules.config import AppConfig, get_config
from modules.pose.types import PoseResult

if TYPE_CHECKING:
	from modules.video_backend import CameraFrame

logger = logging.getLogger(__name__)


class PoseProvider(ABC):
	"""
	Model adapter interface.

	Implementations take an RGB image (H,W,3 uint8) and return zero or more PoseResults,
	best subject first. Calls are blocking; PoseEstimator moves them off the event loop.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def infer_rgb(self, rgb: Any, t_host: Optional[float] = None) -> List[PoseResult]: ...

	@abstractmethod
	def close(self) -> None: ...


class PoseEstimator:
	"""
	Async facade over a blocking PoseProvider.

	- load() builds the provider in a worker thread (model init can take seconds).
	- estimate() runs one inference in a worker thread; the caller awaits it, so a
	  single caller never has more than one request in flight.
	"""

	def __init__(self, factory: Callable[[], PoseProvider], label: str = "pose") -> None:
		self._factory = factory
		self._label = str(label or "pose")
		self._provider: Optional[PoseProvider] = None
		self._load_lock = asyncio.Lock()

	def name(self) -> str:
		return self._provider.name() if self._provider is not None else self._label

	@property
	def loaded(self) -> bool:
		return self._provider is not None

	async def load(self) -> None:
		async with self._load_lock:
			if self._provider is not None:
				return
			logger.info("Loading pose estimator %s", self._label)
			self._provider = await asyncio.to_thread(self._factory)
			logger.info("Pose estimator ready: %s", self._provider.name())

	async def estimate(self, frame: "CameraFrame") -> List[PoseResult]:
		provider = self._provider
		if provider is None:
			raise RuntimeError("pose estimator is not loaded")
		results = await asyncio.to_thread(provider.infer_rgb, frame.rgb, frame.t_host)
		return list(results or [])

	def close(self) -> None:
		provider = self._provider
		self._provider = None
		if provider is None:
			return
		try:
			provider.close()
		except Exception:
			logger.debug("pose provider close failed", exc_info=True)


def get_pose_estimator(cfg: Optional[AppConfig] = None) -> PoseEstimator:
	cfg = cfg or get_config()
	backend = (cfg.pose.backend or "mediapipe").strip().lower()
	if backend not in ("mediapipe", "mp"):
		# Only MediaPipe ships today; keep serving instead of failing on a typo.
		logger.warning("Unknown pose backend %r, falling back to mediapipe", backend)

	def _factory() -> PoseProvider:
		from modules.pose.mediapipe_provider import MediaPipePoseProvider

		return MediaPipePoseProvider(
			model_complexity=cfg.pose.model_complexity,
			min_detection_confidence=cfg.pose.min_detection_confidence,
			min_tracking_confidence=cfg.pose.min_tracking_confidence,
		)

	return PoseEstimator(_factory, label="mediapipe_pose")
