"""
Lead data model for the Career Funnel.

A Lead is created anonymously on the first page visit and then enriched by
tracked engagement, chat messages and self-reported qualification answers.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


def utc_naive(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; aware values are converted."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class LeadStatus(str, Enum):
    """Lead status in the funnel."""
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    QUALIFIED = "qualified"
    CONVERTED = "converted"  # set by business events, never by the scorer
    LOST = "lost"            # set by business events, never by the scorer

    @property
    def is_terminal(self) -> bool:
        return self in (LeadStatus.CONVERTED, LeadStatus.LOST)


class _LenientEnum(str, Enum):
    """Enum whose unrecognised raw values map to UNKNOWN instead of raising."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.UNKNOWN


class ContentType(_LenientEnum):
    BLOG = "blog"
    VIDEO = "video"
    COURSE = "course"
    WEBINAR = "webinar"
    UNKNOWN = "unknown"


class ActionType(_LenientEnum):
    VIEW = "view"
    CLICK = "click"
    DOWNLOAD = "download"
    SHARE = "share"
    COMMENT = "comment"
    LIKE = "like"
    UNKNOWN = "unknown"


class ExperienceLevel(_LenientEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
    UNKNOWN = "unknown"


class Timeline(_LenientEnum):
    IMMEDIATE = "immediate"
    ONE_TO_THREE_MONTHS = "1-3-months"
    THREE_TO_SIX_MONTHS = "3-6-months"
    SIX_TO_TWELVE_MONTHS = "6-12-months"
    NO_TIMELINE = "no-timeline"
    UNKNOWN = "unknown"


class BudgetTier(_LenientEnum):
    PREMIUM = "premium"
    STANDARD = "standard"
    BUDGET = "budget"
    FREE_ONLY = "free-only"
    UNDECIDED = "undecided"
    UNKNOWN = "unknown"


@dataclass
class ContentEngagement:
    """One content item's interaction."""
    content_id: str
    content_type: ContentType
    title: str
    time_spent: float = 0.0        # seconds
    completion: float = 0.0        # percentage, 0-100
    engagement_score: float = 0.0  # externally supplied, 0-100
    view_date: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        self.content_type = ContentType(self.content_type)
        self.view_date = utc_naive(self.view_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id": self.content_id,
            "content_type": self.content_type.value,
            "title": self.title,
            "time_spent": self.time_spent,
            "completion": self.completion,
            "engagement_score": self.engagement_score,
            "view_date": self.view_date.isoformat(),
        }


@dataclass
class UserAction:
    """A tracked user event."""
    type: ActionType
    target: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    value: Optional[str] = None

    def __post_init__(self):
        self.type = ActionType(self.type)
        self.timestamp = utc_naive(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
        }


@dataclass
class EngagementData:
    """
    Aggregate behavioural signal for a lead.

    The logs are append-only: there are mutators to record content views,
    actions, sessions and time, and none to remove them.
    """
    content_viewed: List[ContentEngagement] = field(default_factory=list)
    time_spent: float = 0.0  # seconds
    actions: List[UserAction] = field(default_factory=list)
    session_count: int = 0
    last_active: datetime = field(default_factory=datetime.utcnow)

    def record_content(self, content: ContentEngagement) -> ContentEngagement:
        self._touch(content.view_date)
        self.content_viewed.append(content)
        self.time_spent += max(0.0, content.time_spent)
        return content

    def record_action(self, action: UserAction) -> UserAction:
        self._touch(action.timestamp)
        self.actions.append(action)
        return action

    def start_session(self, at: Optional[datetime] = None):
        self._touch(at or datetime.utcnow())
        self.session_count += 1

    def add_time(self, seconds: float, at: Optional[datetime] = None):
        self._touch(at or datetime.utcnow())
        self.time_spent += max(0.0, seconds)

    def latest_content(self) -> Optional[ContentEngagement]:
        """Most recently viewed item; later entries win on equal view dates."""
        latest = None
        for content in self.content_viewed:
            if latest is None or content.view_date >= latest.view_date:
                latest = content
        return latest

    def _touch(self, at: datetime):
        at = utc_naive(at)
        if at > self.last_active:
            self.last_active = at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_viewed": [c.to_dict() for c in self.content_viewed],
            "time_spent": self.time_spent,
            "actions": [a.to_dict() for a in self.actions],
            "session_count": self.session_count,
            "last_active": self.last_active.isoformat(),
        }


@dataclass
class QualificationData:
    """Survey-style answers; ai_generated marks answers inferred from chat."""
    experience: ExperienceLevel = ExperienceLevel.UNKNOWN
    current_role: Optional[str] = None
    goals: List[str] = field(default_factory=list)
    timeline: Timeline = Timeline.UNKNOWN
    budget: BudgetTier = BudgetTier.UNKNOWN
    challenges: List[str] = field(default_factory=list)
    ai_generated: bool = False

    def __post_init__(self):
        self.experience = ExperienceLevel(self.experience)
        self.timeline = Timeline(self.timeline)
        self.budget = BudgetTier(self.budget)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experience": self.experience.value,
            "current_role": self.current_role,
            "goals": list(self.goals),
            "timeline": self.timeline.value,
            "budget": self.budget.value,
            "challenges": list(self.challenges),
            "ai_generated": self.ai_generated,
        }


@dataclass
class Lead:
    """A tracked visitor/prospect."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    source: str = "website"

    # Derived by the scorer; never set directly by the UI
    score: float = 0.0
    status: LeadStatus = LeadStatus.COLD

    interests: List[str] = field(default_factory=list)
    engagement: EngagementData = field(default_factory=EngagementData)
    qualification: Optional[QualificationData] = None

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def anonymous(cls, source: str = "website", now: Optional[datetime] = None) -> "Lead":
        now = now or datetime.utcnow()
        return cls(
            id=f"lead_{uuid.uuid4().hex[:12]}",
            source=source,
            engagement=EngagementData(last_active=now),
            created_at=now,
            updated_at=now,
        )

    def add_interests(self, interests: Iterable[str]) -> List[str]:
        """Add interest tags, skipping ones already present. Returns the new ones."""
        added = []
        for interest in interests:
            if interest and interest not in self.interests:
                self.interests.append(interest)
                added.append(interest)
        return added

    def add_goals(self, goals: Iterable[str], ai_generated: bool = True) -> List[str]:
        """Add goal tags to the qualification record, creating it if needed."""
        goals = [g for g in goals if g]
        if not goals:
            return []
        if self.qualification is None:
            self.qualification = QualificationData(ai_generated=ai_generated)
        added = []
        for goal in goals:
            if goal not in self.qualification.goals:
                self.qualification.goals.append(goal)
                added.append(goal)
        return added

    @property
    def primary_interest(self) -> Optional[str]:
        return self.interests[0] if self.interests else None

    @property
    def primary_goal(self) -> Optional[str]:
        if self.qualification and self.qualification.goals:
            return self.qualification.goals[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "source": self.source,
            "score": round(self.score, 2),
            "status": self.status.value,
            "interests": list(self.interests),
            "engagement": self.engagement.to_dict(),
            "qualification": self.qualification.to_dict() if self.qualification else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ConversionGoal:
    """An offer a recommendation steers the lead toward."""
    type: str  # consultation, masterclass, course, community
    title: str
    description: str
    value: int
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "value": self.value,
            "priority": self.priority,
        }


@dataclass
class Recommendation:
    """A suggested next move for a lead."""
    type: str  # content, offer, action
    title: str
    description: str
    confidence: float
    reasoning: str
    target_conversion: ConversionGoal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "target_conversion": self.target_conversion.to_dict(),
        }
