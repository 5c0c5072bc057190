"""Pydantic response models for API docs and validation of the dance endpoints."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AwardModel(BaseModel):
	"""Points awarded for one frame-to-frame movement."""

	movement: float
	points: int
	tier: str = Field(..., description="'high', 'medium' or 'low'")
	message: str


class ReferenceStatus(BaseModel):
	"""Transport state of the reference dance clip."""

	available: bool
	url: Optional[str] = None
	playing: bool
	position_s: float


class DanceStatusResponse(BaseModel):
	"""Response from GET /dance/status and the dance control endpoints."""

	phase: str = Field(..., description="idle, starting, running or paused")
	loading: bool = False
	score: int = 0
	feedback: str = ""
	error: Optional[str] = None
	error_kind: Optional[str] = Field(None, description="'camera' or 'estimator' when start failed")
	history_len: int = 0
	history_capacity: int = 5
	last_similarity: Optional[float] = None
	last_award: Optional[AwardModel] = None
	estimator_loaded: bool = False
	started_at: Optional[float] = None
	reference: ReferenceStatus


class DanceActionResponse(BaseModel):
	"""Response from POST /dance/* control endpoints."""

	detail: str
	status: DanceStatusResponse


class DebugStatusResponse(BaseModel):
	"""Response from GET /debug/status."""

	motion: Dict[str, Any]
	camera: Dict[str, Any]
	clients: int
