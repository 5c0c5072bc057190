from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from modules.config import CameraConfig, ScoringConfig
from modules.movement_scorer import MovementAward, ScoreState, award_for_similarity
from modules.overlay import OverlayRenderer
from modules.pose.base import PoseEstimator
from modules.pose.history import PoseHistory
from modules.pose.pose_metrics import PoseComparison, compare_poses
from modules.pose.types import KeypointSet
from modules.reference_video import ReferenceVideo
from modules.video_backend import CameraBackend, CameraFrame

logger = logging.getLogger(__name__)

FEEDBACK_LOADING = "⏳ Loading pose detector..."
FEEDBACK_DETECTOR_READY = "✅ Pose detector loaded!"
FEEDBACK_DETECTOR_FAILED = "⚠️ Could not load pose detector"
FEEDBACK_CAMERA_READY = "📸 Camera ready!"
FEEDBACK_CAMERA_DENIED = "❌ Camera access denied. Please allow camera permissions."
FEEDBACK_DANCE = "💃 Dance along with the video!"


class SessionPhase(str, Enum):
	IDLE = "idle"
	STARTING = "starting"
	RUNNING = "running"
	PAUSED = "paused"


ACTIVE_PHASES = (SessionPhase.RUNNING, SessionPhase.PAUSED)


class AcquisitionError(RuntimeError):
	"""Camera or pose estimator could not be acquired; the session stays in STARTING."""

	def __init__(self, kind: str, message: str) -> None:
		super().__init__(message)
		self.kind = kind
		self.message = message

	@property
	def feedback(self) -> str:
		return FEEDBACK_CAMERA_DENIED if self.kind == "camera" else FEEDBACK_DETECTOR_FAILED


class MotionLoop:
	"""
	Dance-challenge controller.

	One asyncio task runs the tick loop: wait for the next camera frame, await one pose
	estimate, push it into the history, score the movement against the previous pose,
	redraw the overlay, publish the update, repeat. The next tick is only started once
	the current one has finished, so there is never more than one estimate in flight.

	Every session has a generation number. reset() bumps it and cancels the task; a
	tick that resumes with a stale generation drops its result instead of touching
	history or score.

	Phases:
	  IDLE --start()--> STARTING --camera+estimator ready--> RUNNING <--pause/resume--> PAUSED
	  any --reset()--> IDLE
	Pausing only pauses the reference clip; estimation and scoring keep running.
	"""

	def __init__(
		self,
		camera: CameraBackend,
		estimator: PoseEstimator,
		*,
		reference: Optional[ReferenceVideo] = None,
		renderer: Optional[OverlayRenderer] = None,
		scoring: Optional[ScoringConfig] = None,
		camera_cfg: Optional[CameraConfig] = None,
		notify: Optional[Callable[[Dict[str, Any]], None]] = None,
	) -> None:
		self.camera = camera
		self.estimator = estimator
		self.reference = reference or ReferenceVideo()
		self.renderer = renderer
		self.scoring = scoring or ScoringConfig()
		self.camera_cfg = camera_cfg or CameraConfig()
		self._notify: Callable[[Dict[str, Any]], None] = notify or (lambda _msg: None)

		self.history = PoseHistory(self.scoring.history_capacity)
		self.score_state = ScoreState()
		self.phase = SessionPhase.IDLE
		self.loading = False
		self.error: Optional[str] = None
		self.error_kind: Optional[str] = None
		self.last_comparison: Optional[PoseComparison] = None
		self.started_at: Optional[float] = None

		self._generation = 0
		self._task: Optional[asyncio.Task] = None
		self._last_frame_idx: Optional[int] = None

		# Lightweight debug counters (kept across sessions).
		self.dbg: Dict[str, Any] = {
			"sessions": 0,
			"ticks": 0,
			"frame_timeouts": 0,
			"camera_stopped": 0,
			"empty_results": 0,
			"estimate_errors": 0,
			"stale_results": 0,
			"no_signal": 0,
			"tick_errors": 0,
			"last_estimate_error": None,
		}

	def set_notify(self, notify: Optional[Callable[[Dict[str, Any]], None]]) -> None:
		self._notify = notify or (lambda _msg: None)

	@property
	def generation(self) -> int:
		return self._generation

	@property
	def is_active(self) -> bool:
		return self.phase in ACTIVE_PHASES

	# ------------------------------------------------------------------ lifecycle

	async def start(self) -> Dict[str, Any]:
		"""
		Start (or restart) a session. Raises AcquisitionError when the camera or the
		pose estimator cannot be acquired; the session then stays in STARTING with
		`error` set until reset() or another start().
		"""
		if self.phase != SessionPhase.IDLE:
			await self.reset()

		self._generation += 1
		gen = self._generation
		self.phase = SessionPhase.STARTING
		self.error = None
		self.error_kind = None
		self.history.reset()
		self.score_state.reset()
		self.last_comparison = None
		self._last_frame_idx = None
		if self.renderer is not None:
			self.renderer.clear()
		self.reference.seek_to_start()
		self.reference.play()
		self._publish_status()

		try:
			await self._acquire_camera(gen)
			if gen == self._generation:
				await self._ensure_estimator(gen)
		except AcquisitionError as e:
			if gen == self._generation:
				await self._fail_start(e)
				raise
			return self.get_status()

		if gen != self._generation:
			# reset() (or a newer start()) ran while we were acquiring.
			return self.get_status()

		self.phase = SessionPhase.RUNNING
		self.started_at = time.time()
		self.score_state.feedback = FEEDBACK_DANCE
		self.dbg["sessions"] = int(self.dbg.get("sessions", 0)) + 1
		self._task = asyncio.create_task(self._run(gen), name=f"motion-loop-{gen}")
		logger.info("Dance session %d started", gen)
		self._log_to_clients("Dance session started")
		self._publish_status()
		return self.get_status()

	def pause(self) -> bool:
		if self.phase != SessionPhase.RUNNING:
			return False
		self.phase = SessionPhase.PAUSED
		self.reference.pause()
		self._publish_status()
		return True

	def resume(self) -> bool:
		if self.phase != SessionPhase.PAUSED:
			return False
		self.phase = SessionPhase.RUNNING
		self.reference.play()
		self._publish_status()
		return True

	def toggle_pause(self) -> bool:
		if self.phase == SessionPhase.RUNNING:
			return self.pause()
		return self.resume()

	async def reset(self) -> None:
		"""
		Back to IDLE. The generation bump, task cancel and state clear happen before the
		first await, so no tick can touch the history or the score after reset() is
		called. The camera is released in a worker thread, so the event loop keeps serving
		while the capture thread shuts down.
		"""
		self._generation += 1
		task = self._task
		self._task = None
		if task is not None and not task.done():
			task.cancel()

		was = self.phase
		self.phase = SessionPhase.IDLE
		self.loading = False
		self.error = None
		self.error_kind = None
		self.history.reset()
		self.score_state.reset()
		self.last_comparison = None
		self.started_at = None
		self._last_frame_idx = None
		self.reference.stop()
		if self.renderer is not None:
			self.renderer.clear()
		if was != SessionPhase.IDLE:
			logger.info("Dance session reset (was %s)", was.value)
		self._publish_status()
		await self._release_camera("reset")

	async def close(self) -> None:
		"""Teardown: reset and wait for the tick task to finish unwinding."""
		task = self._task
		await self.reset()
		if task is not None:
			try:
				await task
			except asyncio.CancelledError:
				pass
			except Exception:
				logger.debug("motion loop task ended with error", exc_info=True)

	# ---------------------------------------------------------------- acquisition

	async def _release_camera(self, why: str) -> None:
		try:
			await self.camera.release()
		except Exception:
			logger.warning("Camera release failed (%s)", why, exc_info=True)

	async def _acquire_camera(self, gen: int) -> None:
		try:
			self.camera.start()
		except Exception as e:
			raise AcquisitionError("camera", f"Camera start failed: {e!r}") from e

		deadline = time.monotonic() + float(self.camera_cfg.start_timeout_seconds)
		while gen == self._generation:
			st = self.camera.get_status()
			if st.get("error"):
				raise AcquisitionError("camera", str(st.get("error")))
			if st.get("running") and st.get("has_frame"):
				self.score_state.feedback = FEEDBACK_CAMERA_READY
				return
			if not st.get("running"):
				raise AcquisitionError("camera", "Camera stopped before delivering a frame")
			if time.monotonic() >= deadline:
				raise AcquisitionError(
					"camera",
					f"Camera did not deliver a frame within {self.camera_cfg.start_timeout_seconds:.1f}s",
				)
			await asyncio.sleep(0.05)

	async def _ensure_estimator(self, gen: int) -> None:
		if self.estimator.loaded:
			return
		self.loading = True
		self.score_state.feedback = FEEDBACK_LOADING
		self._publish_status()
		try:
			await self.estimator.load()
		except Exception as e:
			raise AcquisitionError("estimator", f"Pose estimator load failed: {e!r}") from e
		finally:
			self.loading = False
		if gen == self._generation:
			self.score_state.feedback = FEEDBACK_DETECTOR_READY
			self._log_to_clients(FEEDBACK_DETECTOR_READY)

	async def _fail_start(self, e: AcquisitionError) -> None:
		logger.warning("Dance session could not start (%s): %s", e.kind, e.message)
		self.error = e.message
		self.error_kind = e.kind
		self.loading = False
		self.score_state.feedback = e.feedback
		self.reference.stop()
		self._log_to_clients(f"{e.feedback} ({e.message})")
		self._publish_status()
		await self._release_camera("acquisition error")

	# ------------------------------------------------------------------ tick loop

	async def _run(self, gen: int) -> None:
		while gen == self._generation and self.phase in ACTIVE_PHASES:
			try:
				await self._tick(gen)
			except Exception:
				self.dbg["tick_errors"] = int(self.dbg.get("tick_errors", 0)) + 1
				logger.exception("Motion tick failed")
			# Yield even when a fresh frame is already waiting.
			await asyncio.sleep(0)

	async def _tick(self, gen: int) -> Optional[MovementAward]:
		frame = await self.camera.wait_for_frame(
			after_idx=self._last_frame_idx,
			timeout_s=float(self.camera_cfg.frame_timeout_seconds),
		)
		if gen != self._generation:
			return None
		if frame is None:
			if self.camera.get_status().get("running"):
				self.dbg["frame_timeouts"] = int(self.dbg.get("frame_timeouts", 0)) + 1
			else:
				# Camera died mid-session; back off instead of spinning.
				self.dbg["camera_stopped"] = int(self.dbg.get("camera_stopped", 0)) + 1
				await asyncio.sleep(float(self.camera_cfg.frame_timeout_seconds))
			return None
		self._last_frame_idx = frame.frame_idx
		self.dbg["ticks"] = int(self.dbg.get("ticks", 0)) + 1

		try:
			results = await self.estimator.estimate(frame)
		except Exception as e:
			# Transient: skip this frame and try the next one.
			self.dbg["estimate_errors"] = int(self.dbg.get("estimate_errors", 0)) + 1
			self.dbg["last_estimate_error"] = repr(e)
			logger.warning("Pose estimation failed: %r", e)
			return None

		if gen != self._generation:
			self.dbg["stale_results"] = int(self.dbg.get("stale_results", 0)) + 1
			return None
		if not results:
			self.dbg["empty_results"] = int(self.dbg.get("empty_results", 0)) + 1
			return None
		return self._apply_pose(results[0].keypoints, frame)

	def _apply_pose(self, current: KeypointSet, frame: CameraFrame) -> Optional[MovementAward]:
		# No awaits below: a tick's state update is never interleaved with reset().
		self.history.push(current)
		newest, previous = self.history.latest_pair()
		award: Optional[MovementAward] = None
		if previous is not None:
			cmp = compare_poses(
				newest,
				previous,
				min_score=self.scoring.confidence_threshold,
				distance_divisor=self.scoring.distance_divisor,
			)
			self.last_comparison = cmp
			# Zero confident pairs gives similarity 0 as "no data", not as full movement: no award.
			if cmp.has_signal:
				award = award_for_similarity(cmp.similarity, self.scoring)
				if award is not None:
					self.score_state.apply(award)
			else:
				self.dbg["no_signal"] = int(self.dbg.get("no_signal", 0)) + 1

		if self.renderer is not None:
			self.renderer.render(current, frame.width, frame.height)

		self._publish(
			{
				"type": "score",
				"phase": self.phase.value,
				"score": int(self.score_state.score),
				"feedback": self.score_state.feedback,
				"similarity": round(self.last_comparison.similarity, 2) if self.last_comparison else None,
				"award": award.to_dict() if award else None,
				"frame_idx": frame.frame_idx,
				"overlay_version": self.renderer.renders if self.renderer is not None else None,
			}
		)
		return award

	# -------------------------------------------------------------------- status

	def get_status(self) -> Dict[str, Any]:
		cmp = self.last_comparison
		return {
			"phase": self.phase.value,
			"loading": bool(self.loading),
			"score": int(self.score_state.score),
			"feedback": self.score_state.feedback,
			"error": self.error,
			"error_kind": self.error_kind,
			"history_len": len(self.history),
			"history_capacity": self.history.capacity,
			"last_similarity": round(cmp.similarity, 2) if cmp else None,
			"last_award": self.score_state.last_award.to_dict() if self.score_state.last_award else None,
			"estimator_loaded": bool(self.estimator.loaded),
			"started_at": self.started_at,
			"reference": self.reference.get_status(),
		}

	def _publish_status(self) -> None:
		msg = {"type": "status"}
		msg.update(self.get_status())
		self._publish(msg)

	def _log_to_clients(self, message: str) -> None:
		self._publish({"type": "log", "msg": message})

	def _publish(self, msg: Dict[str, Any]) -> None:
		try:
			self._notify(msg)
		except Exception:
			logger.debug("motion loop notify failed", exc_info=True)
