"""
Recommendation generation for the Career Funnel.

Turns a scored lead into a ranked list of suggested offers and actions, and
picks follow-up content from the site catalog.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .models import ConversionGoal, Lead, Recommendation

logger = logging.getLogger(__name__)


DATA_SCIENCE_INTERESTS = ("data-science", "machine-learning")


def data_science_masterclass() -> ConversionGoal:
    return ConversionGoal(
        type="masterclass",
        title="Data Science Career Roadmap",
        description="Free masterclass on transitioning to data science",
        value=300,
        priority=2,
    )


def career_consultation() -> ConversionGoal:
    return ConversionGoal(
        type="consultation",
        title="Career Consultation",
        description="Free consultation call with career expert",
        value=500,
        priority=1,
    )


def free_career_consultation() -> ConversionGoal:
    return ConversionGoal(
        type="consultation",
        title="Free Career Consultation",
        description="30-minute one-on-one career guidance session",
        value=500,
        priority=1,
    )


def conversion_goal_for(interests: Sequence[str]) -> ConversionGoal:
    """Match interests to the most relevant conversion goal."""
    if any(interest in interests for interest in DATA_SCIENCE_INTERESTS):
        return data_science_masterclass()
    return career_consultation()


class RecommendationEngine:
    """
    Rule-based recommendations.

    Rules (independent, any subset may apply):
    - score < 40: content nurture (0.8)
    - score >= 70: schedule consultation (0.9)
    - more than 5 sessions and no email: email capture priority (0.85)
    """

    NURTURE_BELOW = 40
    CONSULTATION_FROM = 70
    EMAIL_CAPTURE_SESSIONS = 5

    def recommend(self, lead: Lead) -> List[Recommendation]:
        recommendations: List[Recommendation] = []

        if lead.score < self.NURTURE_BELOW:
            recommendations.append(Recommendation(
                type="content",
                title="Nurture with Educational Content",
                description="Send beginner-friendly resources to build engagement",
                confidence=0.8,
                reasoning="Low engagement score indicates need for foundational content",
                target_conversion=conversion_goal_for(lead.interests),
            ))

        if lead.score >= self.CONSULTATION_FROM:
            recommendations.append(Recommendation(
                type="offer",
                title="Schedule Career Consultation",
                description="High-intent lead ready for direct consultation booking",
                confidence=0.9,
                reasoning="High engagement and qualification scores indicate readiness",
                target_conversion=free_career_consultation(),
            ))

        if lead.engagement.session_count > self.EMAIL_CAPTURE_SESSIONS and not lead.email:
            recommendations.append(Recommendation(
                type="action",
                title="Email Capture Priority",
                description="Highly engaged visitor without contact info - prioritize email capture",
                confidence=0.85,
                reasoning="Multiple sessions without lead capture indicates missed opportunity",
                target_conversion=conversion_goal_for(lead.interests),
            ))

        # sorted() is stable, so equal confidences keep rule order
        return sorted(recommendations, key=lambda r: r.confidence, reverse=True)


@dataclass
class CatalogItem:
    """A piece of site content that can be recommended."""
    id: str
    title: str
    url: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "url": self.url, "type": self.type}


DEFAULT_CATALOG = [
    CatalogItem("data-science-career", "Complete Data Science Career Guide", "/guide/data-science-career", "guide"),
    CatalogItem("ml-interview-prep", "Machine Learning Interview Prep", "/course/ml-interview-prep", "course"),
    CatalogItem("salary-negotiation", "Salary Negotiation Masterclass", "/masterclass/salary-negotiation", "masterclass"),
    CatalogItem("success-stories", "Tech Career Transition Stories", "/success-stories", "case-study"),
    CatalogItem("coding-skills", "Free Coding Assessment", "/assessment/coding-skills", "assessment"),
]


class ContentCatalog:
    """Site content used for personalised recommendations."""

    def __init__(self, items: Sequence[CatalogItem] = None):
        self.items = list(items) if items is not None else list(DEFAULT_CATALOG)

    def suggest(self, lead: Lead, count: int = 3) -> List[CatalogItem]:
        """Return up to `count` items the lead has not viewed yet."""
        viewed = {c.content_id for c in lead.engagement.content_viewed}
        available = [i for i in self.items if i.id not in viewed and i.url not in viewed]
        return available[:max(0, count)]
