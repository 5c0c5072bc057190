import pytest

from modules.pose.history import PoseHistory
from tests.conftest import uniform_pose


def test_latest_pair_needs_two_entries():
	h = PoseHistory(5)
	assert h.latest_pair() == (None, None)
	a = uniform_pose(0, 0)
	h.push(a)
	assert h.latest_pair() == (a, None)
	b = uniform_pose(1, 1)
	h.push(b)
	assert h.latest_pair() == (b, a)


def test_capacity_evicts_oldest_first():
	h = PoseHistory(3)
	poses = [uniform_pose(i, i) for i in range(5)]
	for p in poses:
		h.push(p)
	assert len(h) == 3
	assert h.snapshot() == poses[2:]
	assert h.latest() is poses[-1]


def test_reset_empties_buffer():
	h = PoseHistory()
	h.push(uniform_pose(0, 0))
	h.reset()
	assert len(h) == 0
	assert h.latest() is None


def test_capacity_below_two_is_rejected():
	with pytest.raises(ValueError):
		PoseHistory(1)
