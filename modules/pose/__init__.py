"""
Pose estimation utilities.

This package defines model-agnostic keypoint types, the provider/estimator interface,
the rolling pose history and the frame-to-frame similarity metric used for scoring.
"""
