from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Keypoint:
	"""
	A single 2D keypoint in pixel coordinates.
	"""

	name: str
	x_px: float
	y_px: float
	score: float  # confidence/visibility [0..1] best-effort


@dataclass(frozen=True)
class KeypointSet:
	"""
	All keypoints estimated for one subject in one frame.

	Index positions are stable across frames (index i is always the same landmark),
	so two sets can be compared pairwise without a name lookup. Providers keep a slot
	for landmarks they could not place (score=0.0) instead of dropping it.
	"""

	keypoints: Tuple[Keypoint, ...] = ()
	width: Optional[int] = None
	height: Optional[int] = None

	@classmethod
	def of(cls, keypoints: Sequence[Keypoint], width: Optional[int] = None, height: Optional[int] = None) -> "KeypointSet":
		return cls(keypoints=tuple(keypoints), width=width, height=height)

	def __len__(self) -> int:
		return len(self.keypoints)

	def __iter__(self) -> Iterator[Keypoint]:
		return iter(self.keypoints)

	def __getitem__(self, idx: int) -> Keypoint:
		return self.keypoints[idx]

	def get(self, name: str) -> Optional[Keypoint]:
		for kp in self.keypoints:
			if kp.name == name:
				return kp
		return None

	def confident(self, min_score: float) -> list[Keypoint]:
		return [kp for kp in self.keypoints if float(kp.score) > float(min_score)]


@dataclass(frozen=True)
class PoseResult:
	"""
	Model-agnostic pose output for a single subject in a single video frame.

	- Coordinates are in pixel space to keep downstream logic consistent.
	- t_host (epoch seconds) is copied from the camera frame when known.
	"""

	backend: str
	width: int
	height: int
	keypoints: KeypointSet = KeypointSet()
	t_host: Optional[float] = None
	score: Optional[float] = None
