from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from modules.pose.types import Keypoint

DEFAULT_MIN_SCORE = 0.3
DEFAULT_DISTANCE_DIVISOR = 2.0


@dataclass(frozen=True)
class PoseComparison:
	similarity: float
	valid_pairs: int
	mean_distance: Optional[float] = None

	@property
	def has_signal(self) -> bool:
		return self.valid_pairs > 0


NO_SIGNAL = PoseComparison(similarity=0.0, valid_pairs=0, mean_distance=None)


def mean_keypoint_distance(
	a: Sequence[Keypoint],
	b: Sequence[Keypoint],
	min_score: float = DEFAULT_MIN_SCORE,
) -> tuple[Optional[float], int]:
	"""
	Mean Euclidean pixel distance over index-aligned pairs where both scores exceed min_score.
	Only the first min(len(a), len(b)) slots are considered. Returns (mean, valid_pairs);
	mean is None when no pair qualifies.
	"""
	total = 0.0
	count = 0
	for ka, kb in zip(a, b):
		if float(ka.score) <= min_score or float(kb.score) <= min_score:
			continue
		total += math.hypot(float(ka.x_px) - float(kb.x_px), float(ka.y_px) - float(kb.y_px))
		count += 1
	if count == 0:
		return None, 0
	return total / count, count


def compare_poses(
	a: Optional[Sequence[Keypoint]],
	b: Optional[Sequence[Keypoint]],
	min_score: float = DEFAULT_MIN_SCORE,
	distance_divisor: float = DEFAULT_DISTANCE_DIVISOR,
) -> PoseComparison:
	if not a or not b:
		return NO_SIGNAL
	mean, count = mean_keypoint_distance(a, b, min_score=min_score)
	if mean is None:
		return NO_SIGNAL
	# Linear clamp in pixel units: identical poses -> 100, >= 100 * divisor px apart -> 0.
	similarity = max(0.0, 100.0 - mean / float(distance_divisor))
	return PoseComparison(similarity=similarity, valid_pairs=count, mean_distance=mean)


def pose_similarity(
	a: Optional[Sequence[Keypoint]],
	b: Optional[Sequence[Keypoint]],
	min_score: float = DEFAULT_MIN_SCORE,
	distance_divisor: float = DEFAULT_DISTANCE_DIVISOR,
) -> float:
	"""
	Similarity of two keypoint sets in [0, 100].

	0 means either no comparable data (empty input, no confident pairs) or poses
	more than 200 px apart on average (with the default divisor).
	"""
	return compare_poses(a, b, min_score=min_score, distance_divisor=distance_divisor).similarity
