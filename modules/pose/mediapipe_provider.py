from __future__ import annotations

from typing import Any, List, Optional

from modules.pose.base import PoseProvider
from modules.pose.types import Keypoint, KeypointSet, PoseResult


COCO17_NAMES = [
	"nose",
	"left_eye",
	"right_eye",
	"left_ear",
	"right_ear",
	"left_shoulder",
	"right_shoulder",
	"left_elbow",
	"right_elbow",
	"left_wrist",
	"right_wrist",
	"left_hip",
	"right_hip",
	"left_knee",
	"right_knee",
	"left_ankle",
	"right_ankle",
]


class MediaPipePoseProvider(PoseProvider):
	"""
	MediaPipe Pose provider that outputs a canonical COCO-17 keypoint set.

	Notes:
	- MediaPipe uses normalized coordinates; we convert to pixel space.
	- `visibility` is used as score (best-effort).
	- MediaPipe Pose is single-subject, so at most one PoseResult is returned.
	"""

	def __init__(
		self,
		model_complexity: int = 1,
		min_detection_confidence: float = 0.5,
		min_tracking_confidence: float = 0.5,
	) -> None:
		try:
			import mediapipe as mp  # type: ignore
		except Exception as e:
			raise RuntimeError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

		self._mp = mp
		self._pose = mp.solutions.pose.Pose(
			static_image_mode=False,
			model_complexity=int(model_complexity),
			enable_segmentation=False,
			smooth_landmarks=True,
			min_detection_confidence=float(min_detection_confidence),
			min_tracking_confidence=float(min_tracking_confidence),
		)

	def name(self) -> str:
		return "mediapipe_pose"

	def infer_rgb(self, rgb: Any, t_host: Optional[float] = None) -> List[PoseResult]:
		# rgb: HxWx3
		h, w = int(rgb.shape[0]), int(rgb.shape[1])
		res = self._pose.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return []

		lm = res.pose_landmarks.landmark
		PL = self._mp.solutions.pose.PoseLandmark
		keypoints: List[Keypoint] = []
		for name in COCO17_NAMES:
			try:
				p = lm[int(PL[name.upper()])]
				keypoints.append(
					Keypoint(
						name=name,
						x_px=float(p.x) * float(w),
						y_px=float(p.y) * float(h),
						score=float(getattr(p, "visibility", 0.0) or 0.0),
					)
				)
			except Exception:
				# Keep the slot so indices stay aligned across frames.
				keypoints.append(Keypoint(name=name, x_px=0.0, y_px=0.0, score=0.0))

		scores = [kp.score for kp in keypoints]
		return [
			PoseResult(
				backend=self.name(),
				width=w,
				height=h,
				keypoints=KeypointSet.of(keypoints, width=w, height=h),
				t_host=t_host,
				score=(sum(scores) / len(scores)) if scores else None,
			)
		]

	def close(self) -> None:
		try:
			if self._pose:
				self._pose.close()
		except Exception:
			pass
