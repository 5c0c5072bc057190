import pytest

from modules.pose.pose_metrics import NO_SIGNAL, compare_poses, mean_keypoint_distance, pose_similarity
from modules.pose.types import Keypoint
from tests.conftest import make_pose, uniform_pose


def test_identical_poses_are_fully_similar():
	a = uniform_pose(120, 80)
	assert pose_similarity(a, a) == 100.0


def test_similarity_is_linear_in_mean_distance():
	# 3-4-5 triangle: every pair is 100 px apart.
	a = uniform_pose(0, 0)
	b = uniform_pose(60, 80)
	cmp = compare_poses(a, b)
	assert cmp.mean_distance == pytest.approx(100.0)
	assert cmp.valid_pairs == 17
	assert cmp.similarity == pytest.approx(50.0)


def test_similarity_clamps_at_zero():
	a = uniform_pose(0, 0)
	b = uniform_pose(300, 400)
	assert pose_similarity(a, b) == 0.0


def test_low_confidence_pairs_are_ignored():
	a = make_pose([(0, 0, 0.9), (0, 0, 0.9), (0, 0, 0.2)])
	b = make_pose([(10, 0, 0.9), (0, 0, 0.3), (500, 500, 0.9)])
	mean, count = mean_keypoint_distance(a, b, min_score=0.3)
	# Only pair 0 qualifies: pair 1 is not strictly above 0.3, pair 2 fails on a.
	assert count == 1
	assert mean == pytest.approx(10.0)


def test_no_confident_pairs_means_no_signal():
	a = uniform_pose(0, 0, score=0.1)
	b = uniform_pose(50, 50, score=0.9)
	cmp = compare_poses(a, b)
	assert cmp == NO_SIGNAL
	assert not cmp.has_signal
	assert pose_similarity(a, b) == 0.0


@pytest.mark.parametrize("a,b", [(None, None), ([], []), (None, [Keypoint("nose", 1, 1, 0.9)])])
def test_missing_input_yields_zero(a, b):
	assert pose_similarity(a, b) == 0.0


def test_sets_of_different_length_compare_common_prefix():
	a = make_pose([(0, 0), (0, 0)])
	b = make_pose([(0, 20), (0, 20), (900, 900), (900, 900)])
	cmp = compare_poses(a, b)
	assert cmp.valid_pairs == 2
	assert cmp.similarity == pytest.approx(90.0)


def test_distance_divisor_scales_similarity():
	a = uniform_pose(0, 0)
	b = uniform_pose(0, 40)
	assert compare_poses(a, b, distance_divisor=4.0).similarity == pytest.approx(90.0)


def test_single_pair_at_clamp_distance_is_zero_not_negative():
	# Pair 1 is skipped (a's score 0.1); pair 0 is a 120-160-200 triangle.
	a = make_pose([(0, 0, 0.9), (5, 5, 0.1)])
	b = make_pose([(120, 160, 0.9), (9, 9, 0.9)])
	cmp = compare_poses(a, b)
	assert cmp.valid_pairs == 1
	assert cmp.mean_distance == pytest.approx(200.0)
	assert cmp.similarity == 0.0


def test_single_pair_just_inside_clamp():
	a = make_pose([(0, 0, 0.9)])
	b = make_pose([(0, 199, 0.9)])
	assert pose_similarity(a, b) == pytest.approx(0.5)
