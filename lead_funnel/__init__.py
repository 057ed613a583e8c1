"""
Lead Funnel core for the Career Funnel service.

- Lead data model and engagement tracking
- Lead scoring (0-100) and status classification
- Recommendations and content suggestions
- Email sequence selection and personalization
- Priority-ordered routing rules with delayed dispatch
- Keyword chat advisor
"""

from .models import (
    Lead,
    LeadStatus,
    EngagementData,
    ContentEngagement,
    ContentType,
    UserAction,
    ActionType,
    QualificationData,
    ExperienceLevel,
    Timeline,
    BudgetTier,
    Recommendation,
    ConversionGoal,
)
from .scoring_model import LeadScorer, LeadAssessment
from .recommendations import RecommendationEngine, ContentCatalog
from .email_automation import EmailAutomationEngine, EmailSequence, EmailTemplate, EmailCondition
from .lead_router import LeadRouter, RoutingRule, RoutingAction, RoutingActionType, RoutingResult, RuleTable
from .scheduling import Scheduler, ScheduledTask, ManualScheduler, AsyncioScheduler, ImmediateScheduler
from .chat_advisor import ChatAdvisor, ChatFlow, ChatSessionStore
from .analytics import AnalyticsCollector

__all__ = [
    "Lead",
    "LeadStatus",
    "EngagementData",
    "ContentEngagement",
    "ContentType",
    "UserAction",
    "ActionType",
    "QualificationData",
    "ExperienceLevel",
    "Timeline",
    "BudgetTier",
    "Recommendation",
    "ConversionGoal",
    "LeadScorer",
    "LeadAssessment",
    "RecommendationEngine",
    "ContentCatalog",
    "EmailAutomationEngine",
    "EmailSequence",
    "EmailTemplate",
    "EmailCondition",
    "LeadRouter",
    "RoutingRule",
    "RoutingAction",
    "RoutingActionType",
    "RoutingResult",
    "RuleTable",
    "Scheduler",
    "ScheduledTask",
    "ManualScheduler",
    "AsyncioScheduler",
    "ImmediateScheduler",
    "ChatAdvisor",
    "ChatFlow",
    "ChatSessionStore",
    "AnalyticsCollector",
]
