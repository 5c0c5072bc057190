from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ServerConfig:
	host: str = "127.0.0.1"
	port: int = 8000


@dataclass(frozen=True)
class CameraConfig:
	backend: str = "opencv"
	# NOTE: camera index 0 is valid; never coerce with `or`.
	index: int = 0
	width: int = 640
	height: int = 480
	fps: int = 30
	# Rate at which preview JPEGs are encoded for /video/mjpeg.
	preview_fps: int = 15
	# How long start() waits for the first frame before reporting an acquisition failure.
	start_timeout_seconds: float = 5.0
	# Max wait for a fresh frame inside one tick before the tick is skipped.
	frame_timeout_seconds: float = 1.0


@dataclass(frozen=True)
class PoseConfig:
	backend: str = "mediapipe"
	model_complexity: int = 1
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class ScoringConfig:
	# Both keypoints of a pair must be strictly above this to be compared.
	confidence_threshold: float = 0.3
	# similarity = 100 - mean_distance / distance_divisor
	distance_divisor: float = 2.0
	# Movement at or below this is treated as holding still.
	noise_floor: float = 5.0
	medium_threshold: float = 15.0
	high_threshold: float = 30.0
	# points = floor(movement / points_divisor)
	points_divisor: float = 2.0
	history_capacity: int = 5


@dataclass(frozen=True)
class OverlayConfig:
	marker_radius: int = 5
	marker_color: str = "#00FF00"
	min_score: float = 0.3


@dataclass(frozen=True)
class ReferenceVideoConfig:
	path: str = str(Path("data") / "reference" / "tinikling.mp4")


@dataclass(frozen=True)
class LoggingConfig:
	level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
	server: ServerConfig = field(default_factory=ServerConfig)
	camera: CameraConfig = field(default_factory=CameraConfig)
	pose: PoseConfig = field(default_factory=PoseConfig)
	scoring: ScoringConfig = field(default_factory=ScoringConfig)
	overlay: OverlayConfig = field(default_factory=OverlayConfig)
	reference_video: ReferenceVideoConfig = field(default_factory=ReferenceVideoConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None

CONFIG_ENV_VAR = "SAYAW_CONFIG"


def _repo_root() -> Path:
	# modules/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def resolve_repo_path(path: str | Path) -> Path:
	"""Relative paths in config.json are relative to the repo root, not the CWD."""
	p = Path(path).expanduser()
	return p if p.is_absolute() else _repo_root() / p


def get_default_config_path() -> Path:
	env = os.getenv(CONFIG_ENV_VAR)
	if env:
		return Path(env).expanduser().resolve()
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	Used by the CLI `--config` flag and by tests.
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except Exception:
		return int(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except Exception:
		return float(default)


def _positive(v: float, default: float) -> float:
	return v if v > 0 else default


def _unit(v: float, default: float) -> float:
	return v if 0.0 <= v <= 1.0 else default


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except Exception:
		# If config is malformed, fail safe to defaults (but keep app running).
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	d_srv = ServerConfig()
	d_cam = CameraConfig()
	d_pose = PoseConfig()
	d_sc = ScoringConfig()
	d_ov = OverlayConfig()

	host = _as_str(_deep_get(raw, ["server", "host"], d_srv.host), d_srv.host).strip() or d_srv.host
	port = _as_int(_deep_get(raw, ["server", "port"], d_srv.port), d_srv.port)

	cam_backend = _as_str(_deep_get(raw, ["camera", "backend"], d_cam.backend), d_cam.backend).strip().lower()
	cam_index = _as_int(_deep_get(raw, ["camera", "index"], d_cam.index), d_cam.index)
	cam_w = _as_int(_deep_get(raw, ["camera", "width"], d_cam.width), d_cam.width)
	cam_h = _as_int(_deep_get(raw, ["camera", "height"], d_cam.height), d_cam.height)
	cam_fps = _as_int(_deep_get(raw, ["camera", "fps"], d_cam.fps), d_cam.fps)
	cam_preview_fps = _as_int(_deep_get(raw, ["camera", "preview_fps"], d_cam.preview_fps), d_cam.preview_fps)
	cam_start_timeout = _as_float(
		_deep_get(raw, ["camera", "start_timeout_seconds"], d_cam.start_timeout_seconds), d_cam.start_timeout_seconds
	)
	cam_frame_timeout = _as_float(
		_deep_get(raw, ["camera", "frame_timeout_seconds"], d_cam.frame_timeout_seconds), d_cam.frame_timeout_seconds
	)

	pose_backend = _as_str(_deep_get(raw, ["pose", "backend"], d_pose.backend), d_pose.backend).strip().lower()
	pose_complexity = _as_int(_deep_get(raw, ["pose", "model_complexity"], d_pose.model_complexity), d_pose.model_complexity)
	pose_det = _as_float(
		_deep_get(raw, ["pose", "min_detection_confidence"], d_pose.min_detection_confidence), d_pose.min_detection_confidence
	)
	pose_trk = _as_float(
		_deep_get(raw, ["pose", "min_tracking_confidence"], d_pose.min_tracking_confidence), d_pose.min_tracking_confidence
	)

	sc_conf = _as_float(_deep_get(raw, ["scoring", "confidence_threshold"], d_sc.confidence_threshold), d_sc.confidence_threshold)
	sc_div = _as_float(_deep_get(raw, ["scoring", "distance_divisor"], d_sc.distance_divisor), d_sc.distance_divisor)
	sc_floor = _as_float(_deep_get(raw, ["scoring", "noise_floor"], d_sc.noise_floor), d_sc.noise_floor)
	sc_med = _as_float(_deep_get(raw, ["scoring", "medium_threshold"], d_sc.medium_threshold), d_sc.medium_threshold)
	sc_high = _as_float(_deep_get(raw, ["scoring", "high_threshold"], d_sc.high_threshold), d_sc.high_threshold)
	sc_pts = _as_float(_deep_get(raw, ["scoring", "points_divisor"], d_sc.points_divisor), d_sc.points_divisor)
	sc_cap = _as_int(_deep_get(raw, ["scoring", "history_capacity"], d_sc.history_capacity), d_sc.history_capacity)

	# Tiers must stay ordered: noise_floor < medium < high.
	if not (0.0 <= sc_floor < sc_med < sc_high):
		sc_floor, sc_med, sc_high = d_sc.noise_floor, d_sc.medium_threshold, d_sc.high_threshold

	ov_radius = _as_int(_deep_get(raw, ["overlay", "marker_radius"], d_ov.marker_radius), d_ov.marker_radius)
	ov_color = _as_str(_deep_get(raw, ["overlay", "marker_color"], d_ov.marker_color), d_ov.marker_color).strip()
	ov_min = _as_float(_deep_get(raw, ["overlay", "min_score"], d_ov.min_score), d_ov.min_score)

	ref_path = _as_str(_deep_get(raw, ["reference_video", "path"], ReferenceVideoConfig().path), "").strip()
	log_level = _as_str(_deep_get(raw, ["logging", "level"], "INFO"), "INFO").strip().upper()

	return AppConfig(
		server=ServerConfig(host=host, port=port if 0 < port < 65536 else d_srv.port),
		camera=CameraConfig(
			backend=cam_backend or d_cam.backend,
			index=cam_index if cam_index >= 0 else d_cam.index,
			width=int(_positive(cam_w, d_cam.width)),
			height=int(_positive(cam_h, d_cam.height)),
			fps=int(_positive(cam_fps, d_cam.fps)),
			preview_fps=int(_positive(cam_preview_fps, d_cam.preview_fps)),
			start_timeout_seconds=_positive(cam_start_timeout, d_cam.start_timeout_seconds),
			frame_timeout_seconds=_positive(cam_frame_timeout, d_cam.frame_timeout_seconds),
		),
		pose=PoseConfig(
			backend=pose_backend or d_pose.backend,
			model_complexity=pose_complexity if pose_complexity in (0, 1, 2) else d_pose.model_complexity,
			min_detection_confidence=_unit(pose_det, d_pose.min_detection_confidence),
			min_tracking_confidence=_unit(pose_trk, d_pose.min_tracking_confidence),
		),
		scoring=ScoringConfig(
			confidence_threshold=_unit(sc_conf, d_sc.confidence_threshold),
			distance_divisor=_positive(sc_div, d_sc.distance_divisor),
			noise_floor=sc_floor,
			medium_threshold=sc_med,
			high_threshold=sc_high,
			points_divisor=_positive(sc_pts, d_sc.points_divisor),
			history_capacity=sc_cap if sc_cap >= 2 else d_sc.history_capacity,
		),
		overlay=OverlayConfig(
			marker_radius=int(_positive(ov_radius, d_ov.marker_radius)),
			marker_color=ov_color or d_ov.marker_color,
			min_score=_unit(ov_min, d_ov.min_score),
		),
		reference_video=ReferenceVideoConfig(path=ref_path),
		logging=LoggingConfig(level=log_level or "INFO"),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
