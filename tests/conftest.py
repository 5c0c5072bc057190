"""Fakes for the camera and the pose model so the motion loop runs without hardware."""
import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from modules.config import AppConfig, CameraConfig, ReferenceVideoConfig
from modules.pose.base import PoseEstimator, PoseProvider
from modules.pose.types import Keypoint, KeypointSet, PoseResult
from modules.video_backend import CameraBackend, CameraFrame

FAKE_JPEG = b"\xff\xd8fake-jpeg\xff\xd9"


def make_pose(points: Sequence[tuple], score: float = 0.9) -> KeypointSet:
	"""points: [(x, y)] or [(x, y, score)]."""
	kps = []
	for i, p in enumerate(points):
		s = p[2] if len(p) > 2 else score
		kps.append(Keypoint(name=f"kp{i}", x_px=float(p[0]), y_px=float(p[1]), score=float(s)))
	return KeypointSet.of(kps, width=640, height=480)


def uniform_pose(x: float, y: float, n: int = 17, score: float = 0.9) -> KeypointSet:
	return make_pose([(x, y)] * n, score=score)


class FakeCamera(CameraBackend):
	"""Every get_latest_frame() call while running returns a brand-new frame."""

	def __init__(self, width: int = 640, height: int = 480, fail: Optional[str] = None) -> None:
		self.width = width
		self.height = height
		self.fail = fail
		self.starts = 0
		self.stops = 0
		self._running = False
		self._error: Optional[str] = None
		self._idx = 0

	def name(self) -> str:
		return "fake"

	def start(self) -> None:
		self.starts += 1
		if self.fail:
			self._error = self.fail
			self._running = False
			return
		self._error = None
		self._running = True

	def stop(self) -> None:
		self.stops += 1
		self._running = False

	@property
	def running(self) -> bool:
		return self._running

	def get_status(self) -> Dict[str, Any]:
		return {"running": self._running, "has_frame": self._running, "error": self._error}

	def get_latest_frame(self) -> Optional[CameraFrame]:
		if not self._running:
			return None
		self._idx += 1
		return CameraFrame(rgb=None, width=self.width, height=self.height, t_host=time.time(), frame_idx=self._idx)

	def get_latest_jpeg(self):
		if not self._running:
			return None, None
		return FAKE_JPEG, time.time()


class ScriptedProvider(PoseProvider):
	"""
	Replays a script of KeypointSets (or exceptions) one inference at a time, then
	returns no detections. With loop=True the script repeats forever.
	"""

	def __init__(self, script: Sequence[Any], loop: bool = False) -> None:
		self.script = list(script)
		self.loop = loop
		self.calls = 0
		self.closed = False

	def name(self) -> str:
		return "scripted"

	def infer_rgb(self, rgb: Any, t_host: Optional[float] = None) -> List[PoseResult]:
		i = self.calls
		self.calls += 1
		if not self.script:
			return []
		if self.loop:
			i = i % len(self.script)
		elif i >= len(self.script):
			return []
		item = self.script[i]
		if isinstance(item, Exception):
			raise item
		return [PoseResult(backend="scripted", width=640, height=480, keypoints=item, t_host=t_host)]

	def close(self) -> None:
		self.closed = True


def scripted_estimator(script: Sequence[Any], loop: bool = False) -> PoseEstimator:
	provider = ScriptedProvider(script, loop=loop)
	est = PoseEstimator(lambda: provider, label="scripted")
	est.provider = provider  # type: ignore[attr-defined]
	return est


def failing_estimator(message: str = "model download failed") -> PoseEstimator:
	def _factory() -> PoseProvider:
		raise RuntimeError(message)

	return PoseEstimator(_factory, label="broken")


class GatedEstimator(PoseEstimator):
	"""
	estimate() returns the first pose at once, then parks every later call on `gate`
	so a test can reset() while an inference is in flight.
	"""

	def __init__(self, first: KeypointSet, later: KeypointSet) -> None:
		super().__init__(lambda: ScriptedProvider([]), label="gated")
		self.first = first
		self.later = later
		self.calls = 0
		self.gate = asyncio.Event()
		self.entered = asyncio.Event()

	async def estimate(self, frame: CameraFrame) -> List[PoseResult]:
		self.calls += 1
		if self.calls == 1:
			return [PoseResult(backend="gated", width=640, height=480, keypoints=self.first)]
		self.entered.set()
		await self.gate.wait()
		return [PoseResult(backend="gated", width=640, height=480, keypoints=self.later)]


async def wait_until(predicate: Callable[[], bool], timeout_s: float = 2.0) -> None:
	deadline = time.monotonic() + timeout_s
	while not predicate():
		if time.monotonic() >= deadline:
			raise AssertionError("condition not met within timeout")
		await asyncio.sleep(0.005)


@pytest.fixture
def fast_camera_cfg() -> CameraConfig:
	return CameraConfig(start_timeout_seconds=0.5, frame_timeout_seconds=0.1)


@pytest.fixture
def reference_clip(tmp_path):
	clip = tmp_path / "tinikling.mp4"
	clip.write_bytes(b"\x00\x00\x00\x18ftypmp42fake")
	return clip


@pytest.fixture
def app_config(reference_clip) -> AppConfig:
	return AppConfig(
		camera=CameraConfig(start_timeout_seconds=0.5, frame_timeout_seconds=0.1),
		reference_video=ReferenceVideoConfig(path=str(reference_clip)),
	)
