import asyncio
import time

import pytest

from modules.motion_loop import (
	FEEDBACK_CAMERA_DENIED,
	FEEDBACK_DANCE,
	FEEDBACK_DETECTOR_FAILED,
	AcquisitionError,
	MotionLoop,
	SessionPhase,
)
from modules.overlay import OverlayRenderer, PillowSurface
from modules.reference_video import ReferenceVideo
from tests.conftest import (
	FakeCamera,
	GatedEstimator,
	failing_estimator,
	scripted_estimator,
	uniform_pose,
	wait_until,
)

STILL = uniform_pose(0, 0)
MOVED = uniform_pose(60, 80)  # 100 px from STILL -> similarity 50 -> 25 points


def _loop(camera, estimator, cfg, reference=None, renderer=None, sink=None):
	return MotionLoop(
		camera,
		estimator,
		reference=reference or ReferenceVideo(),
		renderer=renderer,
		camera_cfg=cfg,
		notify=(sink.append if sink is not None else None),
	)


def test_scores_movement_between_consecutive_frames(fast_camera_cfg, reference_clip):
	async def run():
		messages = []
		camera = FakeCamera()
		est = scripted_estimator([STILL, MOVED])
		ref = ReferenceVideo(reference_clip)
		surface = PillowSurface()
		loop = _loop(camera, est, fast_camera_cfg, reference=ref, renderer=OverlayRenderer(surface), sink=messages)

		await loop.start()
		assert loop.phase == SessionPhase.RUNNING
		assert ref.is_playing
		await wait_until(lambda: loop.dbg["empty_results"] >= 1)

		assert loop.score_state.score == 25
		assert "25" in loop.score_state.feedback
		assert loop.score_state.feedback == "🔥 Amazing moves! +25 points!"
		assert loop.last_comparison.similarity == pytest.approx(50.0)
		# Overlay follows the camera frame size.
		assert surface.size == (640, 480)
		score_msgs = [m for m in messages if m.get("type") == "score"]
		assert score_msgs[-1]["score"] == 25
		await loop.close()
		assert loop.phase == SessionPhase.IDLE

	asyncio.run(run())


def test_first_frame_awards_nothing(fast_camera_cfg):
	async def run():
		loop = _loop(FakeCamera(), scripted_estimator([MOVED]), fast_camera_cfg)
		await loop.start()
		await wait_until(lambda: loop.dbg["empty_results"] >= 1)
		assert loop.score_state.score == 0
		assert loop.score_state.feedback == FEEDBACK_DANCE
		assert len(loop.history) == 1
		await loop.close()

	asyncio.run(run())


def test_holding_still_leaves_feedback_untouched(fast_camera_cfg):
	async def run():
		loop = _loop(FakeCamera(), scripted_estimator([STILL, uniform_pose(2, 2), MOVED]), fast_camera_cfg)
		await loop.start()
		await wait_until(lambda: loop.dbg["empty_results"] >= 1)
		# STILL -> (2,2) is below the noise floor; (2,2) -> MOVED is a big jump.
		assert loop.score_state.awards == 1
		await loop.close()

	asyncio.run(run())


def test_no_confident_keypoints_award_nothing(fast_camera_cfg):
	async def run():
		faint = uniform_pose(500, 500, score=0.1)
		loop = _loop(FakeCamera(), scripted_estimator([STILL, faint]), fast_camera_cfg)
		await loop.start()
		await wait_until(lambda: loop.dbg["empty_results"] >= 1)
		assert loop.score_state.score == 0
		assert loop.dbg["no_signal"] == 1
		await loop.close()

	asyncio.run(run())


def test_scoring_continues_while_paused(fast_camera_cfg, reference_clip):
	async def run():
		ref = ReferenceVideo(reference_clip)
		loop = _loop(FakeCamera(), scripted_estimator([STILL, MOVED], loop=True), fast_camera_cfg, reference=ref)
		await loop.start()
		assert loop.pause()
		assert loop.phase == SessionPhase.PAUSED
		assert not ref.is_playing
		before = loop.score_state.score
		await wait_until(lambda: loop.score_state.score >= before + 50)
		assert loop.phase == SessionPhase.PAUSED

		assert loop.resume()
		assert ref.is_playing
		assert not loop.resume()
		await loop.close()

	asyncio.run(run())


def test_toggle_pause_only_when_active(fast_camera_cfg):
	async def run():
		loop = _loop(FakeCamera(), scripted_estimator([]), fast_camera_cfg)
		assert not loop.toggle_pause()
		assert not loop.pause()
		await loop.start()
		assert loop.toggle_pause()
		assert loop.phase == SessionPhase.PAUSED
		assert loop.toggle_pause()
		assert loop.phase == SessionPhase.RUNNING
		await loop.close()

	asyncio.run(run())


def test_reset_discards_inflight_estimate(fast_camera_cfg, reference_clip):
	async def run():
		camera = FakeCamera()
		est = GatedEstimator(STILL, MOVED)
		ref = ReferenceVideo(reference_clip)
		loop = _loop(camera, est, fast_camera_cfg, reference=ref)
		await loop.start()
		await est.entered.wait()
		assert len(loop.history) == 1

		await loop.reset()
		est.gate.set()
		await asyncio.sleep(0.05)

		assert loop.phase == SessionPhase.IDLE
		assert loop.score_state.score == 0
		assert loop.score_state.feedback == ""
		assert len(loop.history) == 0
		assert not camera.running
		assert camera.stops >= 1
		assert not ref.is_playing
		assert ref.position_s() == 0.0

	asyncio.run(run())


def test_estimate_error_skips_one_frame(fast_camera_cfg):
	async def run():
		est = scripted_estimator([STILL, RuntimeError("inference blew up"), MOVED])
		loop = _loop(FakeCamera(), est, fast_camera_cfg)
		await loop.start()
		await wait_until(lambda: loop.dbg["empty_results"] >= 1)
		assert loop.dbg["estimate_errors"] == 1
		assert loop.score_state.score == 25
		assert loop.phase == SessionPhase.RUNNING
		await loop.close()

	asyncio.run(run())


def test_camera_failure_keeps_session_starting(fast_camera_cfg, reference_clip):
	async def run():
		camera = FakeCamera(fail="Camera access denied or unavailable (index 0)")
		ref = ReferenceVideo(reference_clip)
		loop = _loop(camera, scripted_estimator([]), fast_camera_cfg, reference=ref)
		with pytest.raises(AcquisitionError) as ei:
			await loop.start()
		assert ei.value.kind == "camera"
		assert loop.phase == SessionPhase.STARTING
		assert loop.error_kind == "camera"
		assert loop.score_state.feedback == FEEDBACK_CAMERA_DENIED
		assert not ref.is_playing
		assert camera.stops >= 1

		await loop.reset()
		assert loop.phase == SessionPhase.IDLE
		assert loop.error is None

	asyncio.run(run())


def test_estimator_failure_releases_camera(fast_camera_cfg):
	async def run():
		camera = FakeCamera()
		loop = _loop(camera, failing_estimator(), fast_camera_cfg)
		with pytest.raises(AcquisitionError) as ei:
			await loop.start()
		assert ei.value.kind == "estimator"
		assert loop.phase == SessionPhase.STARTING
		assert loop.score_state.feedback == FEEDBACK_DETECTOR_FAILED
		assert not camera.running
		assert loop.get_status()["loading"] is False

	asyncio.run(run())


def test_start_again_restarts_from_zero(fast_camera_cfg):
	async def run():
		est = scripted_estimator([STILL, MOVED])
		camera = FakeCamera()
		loop = _loop(camera, est, fast_camera_cfg)
		await loop.start()
		await wait_until(lambda: loop.score_state.score == 25)
		first_gen = loop.generation

		await loop.start()
		assert loop.generation > first_gen
		assert loop.phase == SessionPhase.RUNNING
		assert loop.score_state.score == 0
		assert camera.starts == 2
		assert loop.dbg["sessions"] == 2
		await loop.close()

	asyncio.run(run())


def test_status_snapshot_shape(fast_camera_cfg, reference_clip):
	async def run():
		loop = _loop(FakeCamera(), scripted_estimator([]), fast_camera_cfg, reference=ReferenceVideo(reference_clip))
		st = loop.get_status()
		assert st["phase"] == "idle"
		assert st["score"] == 0
		assert st["estimator_loaded"] is False
		assert st["reference"]["available"] is True
		await loop.start()
		assert loop.get_status()["estimator_loaded"] is True
		await loop.close()

	asyncio.run(run())


def test_reset_keeps_event_loop_responsive_while_camera_stops(fast_camera_cfg):
	class SlowStopCamera(FakeCamera):
		def stop(self):
			time.sleep(0.3)
			super().stop()

	async def run():
		camera = SlowStopCamera()
		loop = _loop(camera, scripted_estimator([]), fast_camera_cfg)
		await loop.start()

		beats = 0

		async def heartbeat():
			nonlocal beats
			while True:
				beats += 1
				await asyncio.sleep(0.01)

		hb = asyncio.create_task(heartbeat())
		await loop.reset()
		hb.cancel()

		assert beats >= 5
		assert loop.phase == SessionPhase.IDLE
		assert not camera.running

	asyncio.run(run())


def test_camera_dying_mid_session_backs_off(fast_camera_cfg):
	async def run():
		camera = FakeCamera()
		loop = _loop(camera, scripted_estimator([]), fast_camera_cfg)
		await loop.start()
		FakeCamera.stop(camera)
		await wait_until(lambda: loop.dbg["camera_stopped"] >= 1)
		await asyncio.sleep(0.05)
		# One back-off per frame timeout, not a busy loop.
		assert loop.dbg["camera_stopped"] <= 2
		await loop.close()

	asyncio.run(run())
