"""
Lead Router for the Career Funnel.

Evaluates a priority-ordered table of routing rules against a freshly scored
lead and dispatches the matching actions (email sequences, sales alerts,
chatbot prompts, content recommendations, consultation bookings).
"""

import inspect
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .analytics import AnalyticsCollector
from .delegates import AnalyticsSink, ChatbotPresenter, ConsultationBooker, EmailDelivery, SalesNotifier
from .email_automation import EmailAutomationEngine
from .models import Lead, LeadStatus, Recommendation, Timeline
from .recommendations import ContentCatalog
from .scheduling import ScheduledTask, Scheduler, TaskCallback
from .scoring_model import LeadScorer, days_since

logger = logging.getLogger(__name__)


class RoutingActionType(str, Enum):
    EMAIL_SEQUENCE = "email_sequence"
    SALES_NOTIFICATION = "sales_notification"
    CHATBOT_TRIGGER = "chatbot_trigger"
    CONTENT_RECOMMENDATION = "content_recommendation"
    CONSULTATION_BOOKING = "consultation_booking"


# Once one of these fires, no further rules run in the same pass
EXCLUSIVE_ACTIONS = frozenset({RoutingActionType.EMAIL_SEQUENCE})


class DispatchError(Exception):
    """An action could not be carried out."""


@dataclass
class RoutingAction:
    type: RoutingActionType
    parameters: Dict[str, Any] = field(default_factory=dict)
    delay_ms: int = 0

    def __post_init__(self):
        self.type = RoutingActionType(self.type)

    @property
    def exclusive(self) -> bool:
        return self.type in EXCLUSIVE_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "parameters": dict(self.parameters), "delay_ms": self.delay_ms}


# condition(lead, now) -> bool
RuleCondition = Callable[[Lead, datetime], bool]


@dataclass
class RoutingRule:
    id: str
    name: str
    condition: RuleCondition
    action: RoutingAction
    priority: int
    active: bool = True

    def matches(self, lead: Lead, now: datetime) -> bool:
        return bool(self.condition(lead, now))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "priority": self.priority,
            "active": self.active,
            "action": self.action.to_dict(),
        }


# ── Default rule table ────────────────────────────────────────────

NEAR_TERM_TIMELINES = (Timeline.IMMEDIATE, Timeline.ONE_TO_THREE_MONTHS)


def _hot_lead(lead, now):
    return lead.score >= 80 and lead.status == LeadStatus.HOT


def _consultation_ready(lead, now):
    return (
        lead.score >= 70
        and lead.qualification is not None
        and lead.qualification.timeline in NEAR_TERM_TIMELINES
        and bool(lead.email)
    )


def _anonymous_high_engagement(lead, now):
    return (
        not lead.email
        and lead.engagement.session_count >= 3
        and lead.engagement.time_spent >= 600  # 10 minutes
    )


def _data_science_interest(lead, now):
    return "data-science" in lead.interests and lead.score >= 40 and bool(lead.email)


def _warm_without_qualification(lead, now):
    return lead.status == LeadStatus.WARM and bool(lead.email) and lead.qualification is None


def _inactive_reengagement(lead, now):
    inactive = days_since(lead.engagement.last_active, now)
    return lead.score >= 50 and 7 <= inactive <= 30


def _content_reader(lead, now):
    return len(lead.engagement.content_viewed) >= 2 and lead.score < 60


def _low_engagement_capture(lead, now):
    return (
        not lead.email
        and lead.engagement.session_count >= 2
        and lead.engagement.time_spent >= 180  # 3 minutes
    )


def default_rules() -> List[RoutingRule]:
    return [
        RoutingRule(
            id="hot_lead_immediate",
            name="Hot Lead Immediate Action",
            condition=_hot_lead,
            action=RoutingAction(RoutingActionType.SALES_NOTIFICATION, {
                "priority": "urgent",
                "message": "Hot lead requires immediate attention - high conversion probability",
            }),
            priority=1,
        ),
        RoutingRule(
            id="consultation_ready",
            name="Consultation Ready Routing",
            condition=_consultation_ready,
            action=RoutingAction(RoutingActionType.CONSULTATION_BOOKING, {
                "booking_type": "priority",
                "consultant_type": "senior",
                "message": "Priority consultation booking for qualified lead",
            }),
            priority=2,
        ),
        RoutingRule(
            id="anonymous_high_engagement",
            name="Anonymous High Engagement",
            condition=_anonymous_high_engagement,
            action=RoutingAction(
                RoutingActionType.CHATBOT_TRIGGER,
                {
                    "trigger_type": "engagement_popup",
                    "message": "I noticed you've been exploring our content - can I help you find what you're looking for?",
                    "offer_type": "email_capture",
                },
                delay_ms=30_000,
            ),
            priority=3,
        ),
        RoutingRule(
            id="data_science_interest",
            name="Data Science Interest Routing",
            condition=_data_science_interest,
            action=RoutingAction(RoutingActionType.EMAIL_SEQUENCE, {
                "sequence_id": "data_science_nurture",
                "personalization_level": "high",
            }),
            priority=4,
        ),
        RoutingRule(
            id="warm_lead_nurture",
            name="Warm Lead Nurturing",
            condition=_warm_without_qualification,
            action=RoutingAction(RoutingActionType.EMAIL_SEQUENCE, {
                "sequence_id": "warm-lead-conversion",
                "include_qualification_survey": True,
            }),
            priority=5,
        ),
        RoutingRule(
            id="inactive_reengagement",
            name="Inactive Lead Re-engagement",
            condition=_inactive_reengagement,
            action=RoutingAction(RoutingActionType.EMAIL_SEQUENCE, {
                "sequence_id": "reengagement_campaign",
                "include_special_offer": True,
            }),
            priority=6,
        ),
        RoutingRule(
            id="content_reader_recommendations",
            name="Content Reader Recommendations",
            condition=_content_reader,
            action=RoutingAction(RoutingActionType.CONTENT_RECOMMENDATION, {
                "recommendation_type": "personalized",
                "content_count": 3,
                "include_cta": True,
            }),
            priority=7,
        ),
        RoutingRule(
            id="low_engagement_capture",
            name="Low Engagement Email Capture",
            condition=_low_engagement_capture,
            action=RoutingAction(RoutingActionType.CHATBOT_TRIGGER, {
                "trigger_type": "exit_intent",
                "message": "Before you go, want me to send you our free career guide?",
                "offer_type": "lead_magnet",
            }),
            priority=8,
        ),
    ]


# ── Rule table ────────────────────────────────────────────────────

class RuleTable:
    """
    Mutable, lock-guarded routing policy.

    Every mutation bumps `version`. Routing passes work on a snapshot, so a
    concurrent update never changes the rules mid-pass.
    """

    UPDATABLE_FIELDS = {"name", "condition", "action", "priority", "active"}

    def __init__(self, rules: Optional[List[RoutingRule]] = None):
        self._lock = threading.RLock()
        self._rules: List[RoutingRule] = []
        self.version = 0
        for rule in rules or []:
            self.add(rule)

    def add(self, rule: RoutingRule) -> RoutingRule:
        with self._lock:
            if any(r.id == rule.id for r in self._rules):
                raise ValueError(f"Routing rule already exists: {rule.id}")
            self._rules.append(rule)
            self.version += 1
        logger.info(f"Routing rule added: {rule.id} (priority {rule.priority})")
        return rule

    def get(self, rule_id: str) -> Optional[RoutingRule]:
        with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    return rule
        return None

    def update(self, rule_id: str, **changes) -> bool:
        """Merge the given fields into a rule. False if the rule does not exist."""
        unknown = set(changes) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update rule fields: {', '.join(sorted(unknown))}")

        with self._lock:
            for index, rule in enumerate(self._rules):
                if rule.id == rule_id:
                    self._rules[index] = replace(rule, **changes)
                    self.version += 1
                    logger.info(f"Routing rule updated: {rule_id} {sorted(changes)}")
                    return True
        return False

    def deactivate(self, rule_id: str) -> bool:
        return self.update(rule_id, active=False)

    def activate(self, rule_id: str) -> bool:
        return self.update(rule_id, active=True)

    def all_rules(self) -> List[RoutingRule]:
        with self._lock:
            return list(self._rules)

    def active_rules(self) -> List[RoutingRule]:
        """Active rules in evaluation order (priority, then insertion)."""
        with self._lock:
            active = [r for r in self._rules if r.active]
        return sorted(active, key=lambda r: r.priority)

    def snapshot(self):
        with self._lock:
            return self.version, self.active_rules()


# ── Router ────────────────────────────────────────────────────────

@dataclass
class RoutingResult:
    """Outcome of one routing pass."""
    updated_lead: Lead
    triggered_actions: List[RoutingAction] = field(default_factory=list)
    matched_rule_ids: List[str] = field(default_factory=list)
    fired_rule_ids: List[str] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    next_actions: List[str] = field(default_factory=list)
    tasks: List[ScheduledTask] = field(default_factory=list)
    rules_version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead": self.updated_lead.to_dict(),
            "triggered_actions": [a.to_dict() for a in self.triggered_actions],
            "matched_rule_ids": list(self.matched_rule_ids),
            "fired_rule_ids": list(self.fired_rule_ids),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "next_actions": list(self.next_actions),
            "rules_version": self.rules_version,
        }


class LeadRouter:
    """
    Routes leads through the rule table.

    One pass:
    1. Recompute score and status
    2. Collect every active rule whose condition holds
    3. Dispatch matching actions in ascending priority, each after its delay
    4. Stop after an exclusive action (email sequences)

    A failing condition or dispatch is logged against its rule and never
    aborts the pass.
    """

    def __init__(
        self,
        scorer: LeadScorer,
        email_engine: EmailAutomationEngine,
        scheduler: Scheduler,
        sales_notifier: SalesNotifier,
        chatbot: ChatbotPresenter,
        booker: ConsultationBooker,
        analytics: Optional[AnalyticsSink] = None,
        content_delivery: Optional[EmailDelivery] = None,
        catalog: Optional[ContentCatalog] = None,
        rules: Optional[RuleTable] = None,
    ):
        self.scorer = scorer
        self.email_engine = email_engine
        self.scheduler = scheduler
        self.sales_notifier = sales_notifier
        self.chatbot = chatbot
        self.booker = booker
        self.analytics = analytics
        self.content_delivery = content_delivery or email_engine.delivery
        self.catalog = catalog or ContentCatalog()
        self.rules = rules if rules is not None else RuleTable(default_rules())

    def route(self, lead: Lead, now: Optional[datetime] = None) -> RoutingResult:
        now = now or datetime.utcnow()

        assessment = self.scorer.assess(lead, now)
        updated = replace(lead, score=assessment.score, status=assessment.status, updated_at=now)

        version, rules = self.rules.snapshot()
        matched = [rule for rule in rules if self._matches(rule, updated, now)]

        result = RoutingResult(
            updated_lead=updated,
            matched_rule_ids=[r.id for r in matched],
            recommendations=assessment.recommendations,
            next_actions=assessment.next_actions,
            rules_version=version,
        )

        for rule in matched:
            try:
                task = self.scheduler.schedule(
                    rule.action.delay_ms,
                    self._dispatch_job(rule, updated),
                    name=f"route:{rule.id}:{updated.id}",
                )
            except Exception as e:
                logger.error(f"Failed to schedule action for rule {rule.id}: {e}")
                self._log("routing.failed", rule, updated, error=str(e))
                continue

            result.tasks.append(task)
            result.triggered_actions.append(rule.action)
            result.fired_rule_ids.append(rule.id)
            self._log("routing.triggered", rule, updated)
            logger.info(
                f"Rule fired: {rule.id} -> {rule.action.type.value} "
                f"(lead {updated.id}, score {updated.score:.1f}, delay {rule.action.delay_ms}ms)"
            )

            if rule.action.exclusive:
                break

        return result

    def _matches(self, rule: RoutingRule, lead: Lead, now: datetime) -> bool:
        try:
            return rule.matches(lead, now)
        except Exception as e:
            logger.error(f"Condition for rule {rule.id} raised: {e}")
            return False

    def _dispatch_job(self, rule: RoutingRule, lead: Lead) -> TaskCallback:
        def job():
            try:
                outcome = self.execute(rule.action, lead)
            except Exception as e:
                self._dispatch_failed(rule, lead, e)
                return None
            if inspect.isawaitable(outcome):
                return self._settle(rule, lead, outcome)
            self._log("routing.succeeded", rule, lead)
            return None
        return job

    async def _settle(self, rule: RoutingRule, lead: Lead, outcome: Awaitable[Any]):
        try:
            await outcome
        except Exception as e:
            self._dispatch_failed(rule, lead, e)
        else:
            self._log("routing.succeeded", rule, lead)

    def _dispatch_failed(self, rule: RoutingRule, lead: Lead, error: Exception):
        logger.error(f"Failed to execute routing action for rule {rule.id}: {error}")
        self._log("routing.failed", rule, lead, error=str(error))

    def execute(self, action: RoutingAction, lead: Lead) -> Optional[Awaitable[Any]]:
        """
        Carry out one action immediately.

        Returns the sales notifier's awaitable when it is asynchronous; the
        action is complete once that awaitable finishes.
        """
        params = action.parameters

        if action.type == RoutingActionType.EMAIL_SEQUENCE:
            sequence_id = params.get("sequence_id")
            if not self.email_engine.trigger_sequence(lead, sequence_id):
                raise DispatchError(f"email sequence not available: {sequence_id}")

        elif action.type == RoutingActionType.SALES_NOTIFICATION:
            return self.sales_notifier.notify(self.sales_payload(lead, params))

        elif action.type == RoutingActionType.CHATBOT_TRIGGER:
            self.chatbot.trigger(lead.id, params.get("trigger_type", "generic"), params.get("message", ""))

        elif action.type == RoutingActionType.CONTENT_RECOMMENDATION:
            self.send_content_recommendations(lead, int(params.get("content_count", 3)))

        elif action.type == RoutingActionType.CONSULTATION_BOOKING:
            self.booker.reserve(lead.id, params)

    @staticmethod
    def sales_payload(lead: Lead, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "lead_id": lead.id,
            "priority": params.get("priority", "normal"),
            "message": params.get("message"),
            "lead_score": round(lead.score, 2),
            "lead_data": {
                "email": lead.email,
                "interests": list(lead.interests),
                "qualification": lead.qualification.to_dict() if lead.qualification else None,
                "engagement_summary": {
                    "sessions": lead.engagement.session_count,
                    "time_spent": lead.engagement.time_spent,
                    "content_viewed": len(lead.engagement.content_viewed),
                },
            },
            "timestamp": datetime.utcnow().isoformat(),
        }

    def send_content_recommendations(self, lead: Lead, count: int = 3) -> bool:
        items = self.catalog.suggest(lead, count)
        if not items:
            logger.info(f"No unseen content to recommend for lead {lead.id}")
            return False
        if not lead.email:
            logger.info(f"Content recommendations for lead {lead.id} held: no email address")
            return False

        body = "\n".join(f"- {item.title}: {item.url}" for item in items)
        return self.content_delivery.send(lead.email, "Recommended for you", body)

    # ── Rule management ──

    def add_rule(self, rule: RoutingRule) -> RoutingRule:
        return self.rules.add(rule)

    def update_rule(self, rule_id: str, **changes) -> bool:
        return self.rules.update(rule_id, **changes)

    def deactivate_rule(self, rule_id: str) -> bool:
        return self.rules.deactivate(rule_id)

    def active_rules(self) -> List[RoutingRule]:
        return self.rules.active_rules()

    def rule_performance(self) -> Dict[str, Dict[str, Any]]:
        if isinstance(self.analytics, AnalyticsCollector):
            return self.analytics.rule_performance()
        return {}

    def _log(self, event: str, rule: RoutingRule, lead: Lead, **details):
        if self.analytics is None:
            return
        try:
            self.analytics.log({
                "event": event,
                "rule_id": rule.id,
                "lead_id": lead.id,
                "action_type": rule.action.type.value,
                "parameters": dict(rule.action.parameters),
                **details,
            })
        except Exception as e:
            logger.error(f"Analytics sink failed for rule {rule.id}: {e}")
