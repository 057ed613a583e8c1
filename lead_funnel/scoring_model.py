"""
Lead Scoring Model for the Career Funnel.

Deterministic, rule-based scoring over engagement and qualification data.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import (
    BudgetTier,
    ContentType,
    EngagementData,
    ExperienceLevel,
    Lead,
    LeadStatus,
    QualificationData,
    Recommendation,
    Timeline,
)

logger = logging.getLogger(__name__)


def _require_complete(table: Dict[Enum, float], enum_cls) -> Dict[Enum, float]:
    """Fail at import time if a lookup table misses an enum member."""
    missing = [m.value for m in enum_cls if m not in table]
    if missing:
        raise ValueError(f"{enum_cls.__name__} table missing: {', '.join(missing)}")
    return table


CONTENT_WEIGHTS = _require_complete({
    ContentType.COURSE: 1.0,
    ContentType.WEBINAR: 0.9,
    ContentType.VIDEO: 0.7,
    ContentType.BLOG: 0.5,
    ContentType.UNKNOWN: 0.5,
}, ContentType)

EXPERIENCE_SCORES = _require_complete({
    ExperienceLevel.BEGINNER: 60,
    ExperienceLevel.INTERMEDIATE: 80,
    ExperienceLevel.ADVANCED: 90,
    ExperienceLevel.EXPERT: 70,  # may be overqualified
    ExperienceLevel.UNKNOWN: 50,
}, ExperienceLevel)

TIMELINE_SCORES = _require_complete({
    Timeline.IMMEDIATE: 100,
    Timeline.ONE_TO_THREE_MONTHS: 90,
    Timeline.THREE_TO_SIX_MONTHS: 70,
    Timeline.SIX_TO_TWELVE_MONTHS: 50,
    Timeline.NO_TIMELINE: 20,
    Timeline.UNKNOWN: 30,
}, Timeline)

BUDGET_SCORES = _require_complete({
    BudgetTier.PREMIUM: 100,
    BudgetTier.STANDARD: 80,
    BudgetTier.BUDGET: 60,
    BudgetTier.FREE_ONLY: 20,
    BudgetTier.UNDECIDED: 40,
    BudgetTier.UNKNOWN: 30,
}, BudgetTier)

HIGH_VALUE_GOALS = frozenset({"career-switch", "skill-upgrade", "certification", "promotion"})


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class ScoreBreakdown:
    """Sub-scores behind a lead score."""
    content: float
    behavior: float
    qualification: Optional[float]
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": round(self.content, 2),
            "behavior": round(self.behavior, 2),
            "qualification": round(self.qualification, 2) if self.qualification is not None else None,
            "total": round(self.total, 2),
        }


@dataclass
class LeadAssessment:
    """Result of a full scoring pass over a lead."""
    score: float
    status: LeadStatus
    recommendations: List[Recommendation] = field(default_factory=list)
    next_actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 2),
            "status": self.status.value,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "next_actions": list(self.next_actions),
        }


class LeadScorer:
    """
    Scores leads on a 0-100 scale.

    Weights:
    - Content engagement: 40%
    - Behaviour: 30%
    - Qualification: 30% (contributes 0 when no qualification data exists)

    Thresholds:
    - Score >= 80: Hot
    - Score >= 60: Warm
    - Score >= 40: Qualified
    - otherwise: Cold
    """

    CONTENT_WEIGHT = 0.4
    BEHAVIOR_WEIGHT = 0.3
    QUALIFICATION_WEIGHT = 0.3

    HOT_THRESHOLD = 80
    WARM_THRESHOLD = 60
    QUALIFIED_THRESHOLD = 40

    MAX_CONTENT_SECONDS = 300  # 5 minutes

    def __init__(self, recommender=None):
        """
        Args:
            recommender: Optional RecommendationEngine used by assess()
        """
        self.recommender = recommender

    def score(
        self,
        engagement: EngagementData,
        qualification: Optional[QualificationData] = None,
        now: Optional[datetime] = None,
    ) -> float:
        """Calculate the lead score, always within [0, 100]."""
        return self.breakdown(engagement, qualification, now).total

    def breakdown(
        self,
        engagement: EngagementData,
        qualification: Optional[QualificationData] = None,
        now: Optional[datetime] = None,
    ) -> ScoreBreakdown:
        content = self.content_score(engagement)
        behavior = self.behavior_score(engagement, now)
        qual = self.qualification_score(qualification) if qualification is not None else None

        total = content * self.CONTENT_WEIGHT + behavior * self.BEHAVIOR_WEIGHT
        if qual is not None:
            total += qual * self.QUALIFICATION_WEIGHT

        return ScoreBreakdown(
            content=content,
            behavior=behavior,
            qualification=qual,
            total=_clamp(total, 0.0, 100.0),
        )

    def content_score(self, engagement: EngagementData) -> float:
        """Weighted average of per-item engagement, by content type weight."""
        if not engagement.content_viewed:
            return 0.0

        score = 0.0
        total_weight = 0.0
        for content in engagement.content_viewed:
            weight = CONTENT_WEIGHTS[content.content_type]
            completion_factor = _clamp(content.completion / 100, 0.0, 1.0)
            time_factor = _clamp(content.time_spent / self.MAX_CONTENT_SECONDS, 0.0, 1.0)
            external_factor = _clamp(content.engagement_score / 100, 0.0, 1.0)

            item = completion_factor * 50 + time_factor * 30 + external_factor * 20
            score += item * weight
            total_weight += weight

        return _clamp(score / total_weight, 0.0, 100.0) if total_weight > 0 else 0.0

    def behavior_score(self, engagement: EngagementData, now: Optional[datetime] = None) -> float:
        now = now or datetime.utcnow()
        score = 0.0

        # Session frequency
        score += _clamp(engagement.session_count * 5, 0, 30)

        # Recent activity
        days_inactive = days_since(engagement.last_active, now)
        score += _clamp(20 - days_inactive * 2, 0, 20)

        # Action diversity
        score += len({a.type for a in engagement.actions}) * 5

        # Total time spent, one point per minute
        score += _clamp(engagement.time_spent / 60, 0, 25)

        return _clamp(score, 0.0, 100.0)

    def qualification_score(self, qualification: QualificationData) -> float:
        score = EXPERIENCE_SCORES[qualification.experience] * 0.25
        score += self.goal_alignment_score(qualification.goals) * 0.3
        score += TIMELINE_SCORES[qualification.timeline] * 0.25
        score += BUDGET_SCORES[qualification.budget] * 0.2
        return score

    @staticmethod
    def goal_alignment_score(goals: List[str]) -> float:
        matches = {g for g in goals if g in HIGH_VALUE_GOALS}
        return min(len(matches) * 25, 100)

    def classify(self, score: float) -> LeadStatus:
        """Map a score to a status. Never yields converted or lost."""
        if score >= self.HOT_THRESHOLD:
            return LeadStatus.HOT
        if score >= self.WARM_THRESHOLD:
            return LeadStatus.WARM
        if score >= self.QUALIFIED_THRESHOLD:
            return LeadStatus.QUALIFIED
        return LeadStatus.COLD

    def status_for(self, lead: Lead, score: float) -> LeadStatus:
        """Classify, keeping externally set terminal statuses."""
        if lead.status.is_terminal:
            return lead.status
        return self.classify(score)

    def assess(self, lead: Lead, now: Optional[datetime] = None) -> LeadAssessment:
        """
        Recompute score and status, and derive recommendations and next actions.

        The lead itself is not modified.
        """
        score = self.score(lead.engagement, lead.qualification, now)
        status = self.status_for(lead, score)

        recommendations: List[Recommendation] = []
        if self.recommender is not None:
            snapshot = _with_score(lead, score, status)
            recommendations = self.recommender.recommend(snapshot)

        assessment = LeadAssessment(
            score=score,
            status=status,
            recommendations=recommendations,
            next_actions=self.next_actions(lead, status),
        )
        logger.debug(f"Lead assessed: {lead.id} score={score:.1f} status={status.value}")
        return assessment

    @staticmethod
    def next_actions(lead: Lead, status: LeadStatus) -> List[str]:
        actions = []

        if not lead.email and lead.engagement.session_count > 2:
            actions.append("Trigger email capture popup")

        if status == LeadStatus.HOT and lead.qualification is not None:
            actions.append("Send consultation booking link")
            actions.append("Notify sales team")

        if status == LeadStatus.WARM:
            actions.append("Add to nurture email sequence")
            actions.append("Show relevant masterclass promotion")

        if lead.engagement.content_viewed:
            actions.append("Send personalized content recommendations")

        return actions


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed, floored."""
    return (now - moment).days


def _with_score(lead: Lead, score: float, status: LeadStatus) -> Lead:
    return replace(lead, score=score, status=status)
