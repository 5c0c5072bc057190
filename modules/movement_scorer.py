from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from modules.config import ScoringConfig


class FeedbackTier(str, Enum):
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"


TIER_MESSAGES: Dict[FeedbackTier, str] = {
	FeedbackTier.HIGH: "🔥 Amazing moves! +{points} points!",
	FeedbackTier.MEDIUM: "👍 Great dancing! +{points} points",
	FeedbackTier.LOW: "💃 Keep moving! +{points} points",
}

DEFAULT_SCORING = ScoringConfig()


@dataclass(frozen=True)
class MovementAward:
	movement: float
	points: int
	tier: FeedbackTier
	message: str

	def to_dict(self) -> Dict[str, Any]:
		return {
			"movement": round(float(self.movement), 2),
			"points": int(self.points),
			"tier": self.tier.value,
			"message": self.message,
		}


def movement_from_similarity(similarity: float) -> float:
	return 100.0 - float(similarity)


def tier_of(movement: float, cfg: ScoringConfig = DEFAULT_SCORING) -> Optional[FeedbackTier]:
	if movement > cfg.high_threshold:
		return FeedbackTier.HIGH
	if movement > cfg.medium_threshold:
		return FeedbackTier.MEDIUM
	if movement > cfg.noise_floor:
		return FeedbackTier.LOW
	return None


def feedback_message(tier: FeedbackTier, points: int) -> str:
	return TIER_MESSAGES[tier].format(points=int(points))


def award_for_movement(movement: float, cfg: ScoringConfig = DEFAULT_SCORING) -> Optional[MovementAward]:
	"""
	Points and feedback for one frame-to-frame movement value.

	Returns None at or below the noise floor (the dancer is holding still); callers
	must then leave both score and feedback untouched.
	"""
	tier = tier_of(movement, cfg)
	if tier is None:
		return None
	points = int(math.floor(float(movement) / float(cfg.points_divisor)))
	return MovementAward(movement=float(movement), points=points, tier=tier, message=feedback_message(tier, points))


def award_for_similarity(similarity: float, cfg: ScoringConfig = DEFAULT_SCORING) -> Optional[MovementAward]:
	return award_for_movement(movement_from_similarity(similarity), cfg)


@dataclass
class ScoreState:
	"""
	Cumulative session score plus the last feedback line shown to the dancer.
	Only the motion loop mutates it.
	"""

	score: int = 0
	feedback: str = ""
	awards: int = 0
	last_award: Optional[MovementAward] = None

	def reset(self, feedback: str = "") -> None:
		self.score = 0
		self.feedback = feedback
		self.awards = 0
		self.last_award = None

	def apply(self, award: MovementAward) -> None:
		# points is never negative, so the score only grows within a session.
		self.score += max(0, int(award.points))
		self.feedback = award.message
		self.awards += 1
		self.last_award = award

	def to_dict(self) -> Dict[str, Any]:
		return {
			"score": int(self.score),
			"feedback": self.feedback,
			"awards": int(self.awards),
			"last_award": self.last_award.to_dict() if self.last_award else None,
		}
