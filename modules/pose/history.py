from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Tuple

from modules.pose.types import KeypointSet


class PoseHistory:
	"""
	Bounded FIFO of the most recent KeypointSets, oldest first.

	Appending past capacity drops the oldest entry (deque maxlen), so the buffer never
	grows and chronological order is preserved.
	"""

	def __init__(self, capacity: int = 5) -> None:
		if int(capacity) < 2:
			raise ValueError("PoseHistory capacity must be >= 2 to compare consecutive poses")
		self._buffer: Deque[KeypointSet] = deque(maxlen=int(capacity))

	@property
	def capacity(self) -> int:
		return int(self._buffer.maxlen or 0)

	def push(self, pose: KeypointSet) -> None:
		self._buffer.append(pose)

	def latest(self) -> Optional[KeypointSet]:
		return self._buffer[-1] if self._buffer else None

	def latest_pair(self) -> Tuple[Optional[KeypointSet], Optional[KeypointSet]]:
		"""Return (newest, previous); previous is None until two poses were pushed."""
		if not self._buffer:
			return None, None
		if len(self._buffer) < 2:
			return self._buffer[-1], None
		return self._buffer[-1], self._buffer[-2]

	def reset(self) -> None:
		self._buffer.clear()

	def snapshot(self) -> List[KeypointSet]:
		return list(self._buffer)

	def __len__(self) -> int:
		return len(self._buffer)
