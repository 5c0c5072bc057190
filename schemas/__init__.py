"""Pydantic request/response models for API validation and docs."""
from schemas.responses import (
	AwardModel,
	DanceActionResponse,
	DanceStatusResponse,
	DebugStatusResponse,
	ReferenceStatus,
)

__all__ = [
	"AwardModel",
	"DanceActionResponse",
	"DanceStatusResponse",
	"DebugStatusResponse",
	"ReferenceStatus",
]
