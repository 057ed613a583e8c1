"""
Email sequence selection, personalization and scheduling.

A sequence is an ordered list of templates, each sent after a delay relative
to the trigger. Template conditions are checked again when each email falls
due, against the lead as it is at that moment.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional

from .delegates import AnalyticsSink, EmailDelivery
from .models import Lead, LeadStatus
from .scheduling import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


class EmailCondition(str, Enum):
    """Conditions a template can require at send time."""
    NO_QUALIFICATION_DATA = "no_qualification_data"
    STATUS_WARM_OR_HOT = "status_warm_or_hot"
    NO_CONVERSION_YET = "no_conversion_yet"

    def holds(self, lead: Lead) -> bool:
        if self is EmailCondition.NO_QUALIFICATION_DATA:
            return lead.qualification is None
        if self is EmailCondition.STATUS_WARM_OR_HOT:
            return lead.status in (LeadStatus.WARM, LeadStatus.HOT)
        return lead.status != LeadStatus.CONVERTED


@dataclass
class EmailTemplate:
    subject: str
    body: str
    delay_ms: int = 0
    conditions: List[EmailCondition] = field(default_factory=list)

    def conditions_met(self, lead: Lead) -> bool:
        return all(condition.holds(lead) for condition in self.conditions)

    def to_dict(self):
        return {
            "subject": self.subject,
            "body": self.body,
            "delay_ms": self.delay_ms,
            "conditions": [c.value for c in self.conditions],
        }


@dataclass
class EmailSequence:
    id: str
    name: str
    trigger: str
    templates: List[EmailTemplate]
    active: bool = True

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "trigger": self.trigger,
            "active": self.active,
            "templates": [t.to_dict() for t in self.templates],
        }


# ── Personalization ───────────────────────────────────────────────

INTEREST_TOPICS = {
    "data-science": "Breaking into Data Science",
    "machine-learning": "ML Engineering Career Path",
    "software-engineering": "Software Engineering Excellence",
    "product-management": "Product Management Mastery",
    "devops": "DevOps and Cloud Architecture",
}
DEFAULT_TOPIC = "Tech Career Acceleration"

GOAL_LABELS = {
    "career-switch": "career transition",
    "skill-upgrade": "skill enhancement",
    "promotion": "career advancement",
    "certification": "professional certification",
}

# Fallbacks when the lead has no data for a placeholder
NAME_FALLBACK = "there"
EMAIL_FALLBACK = ""
LATEST_CONTENT_FALLBACK = "our latest content"
CONTENT_TYPE_FALLBACK = "content"
INTEREST_FALLBACK = "tech careers"
GOAL_FALLBACK = "your career goals"

PLACEHOLDER = re.compile(r"\{(\w+)\}")


def humanize_tag(tag: str) -> str:
    """'cloud-engineering' -> 'Cloud Engineering'."""
    return re.sub(r"\b\w", lambda m: m.group().upper(), tag.replace("-", " "))


def topic_for_interest(interest: Optional[str]) -> str:
    if not interest:
        return DEFAULT_TOPIC
    return INTEREST_TOPICS.get(interest, DEFAULT_TOPIC)


def format_goal(goal: Optional[str]) -> str:
    if not goal:
        return GOAL_FALLBACK
    return GOAL_LABELS.get(goal, goal.replace("-", " "))


def placeholder_values(lead: Lead, sender_name: str) -> Dict[str, str]:
    latest = lead.engagement.latest_content()
    interest = lead.primary_interest
    return {
        "name": lead.name or NAME_FALLBACK,
        "email": lead.email or EMAIL_FALLBACK,
        "latest_content": latest.title if latest else LATEST_CONTENT_FALLBACK,
        "content_type": latest.content_type.value if latest else CONTENT_TYPE_FALLBACK,
        "primary_interest": humanize_tag(interest) if interest else INTEREST_FALLBACK,
        "relevant_topic": topic_for_interest(interest),
        "primary_goal": format_goal(lead.primary_goal),
        "sender_name": sender_name,
    }


def render(text: str, values: Dict[str, str]) -> str:
    """Substitute known placeholders; unknown ones are left untouched."""
    return PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), text)


# ── Built-in sequences ────────────────────────────────────────────

WELCOME_EMAIL = """
Hi {name},

Thank you for engaging with our content! I noticed you've been exploring {content_type} about {primary_interest} - that's fantastic!

Based on your interests, I've curated a personalized learning path that could accelerate your journey toward {primary_goal}:

- Advanced {primary_interest} masterclass (Free)
- Industry insights from top companies
- Career roadmap specifically for your background

Would you like me to send you this personalized roadmap?

Just reply "YES" or click here: [Get My Personalized Roadmap]

Looking forward to helping you succeed!

Best regards,
{sender_name}

P.S. This roadmap has helped 500+ professionals land their dream roles in top tech companies.
""".strip()

QUALIFICATION_EMAIL = """
Hi {name},

Quick question for you...

I've seen that you're interested in {primary_interest}, but I'd love to understand your specific situation better so I can send you the most relevant resources.

Could you take 30 seconds to answer:

1. What's your current role/background?
2. What's your biggest challenge in reaching your career goals?
3. What's your ideal timeline for making progress?

[Answer These Questions] (2-minute form)

Once I know more about your situation, I can share:
- Success stories from people with similar backgrounds
- Specific action steps that worked for them
- Opportunities that might be perfect for you right now

Talk soon!

{sender_name}
""".strip()

SOCIAL_PROOF_EMAIL = """
Hi {name},

I wanted to share an inspiring story with you...

Just last month, one of our students Sarah (similar background to yours) landed a {primary_interest} role at Google with a 40% salary increase.

Here's what she did:

- Started with our free masterclass (like you're considering)
- Got personalized career guidance
- Built the right skills with expert mentorship
- Landed interviews at 5 top companies

Ready to write your own success story?

[Book Your Free Career Consultation]

We have just 3 slots left this week.

Cheering you on!

{sender_name}
""".strip()

URGENCY_EMAIL = """
Hi {name},

I don't want you to miss out on this...

You've been exploring {primary_interest} resources, and I can see you're serious about making a career move.

The free consultation slots I mentioned? We're down to the last 2 spots for this month.

Here's what you'll get in your 15-minute call:
- Personalized career roadmap for your background
- Hidden job market insights
- Salary negotiation strategies
- Next steps to fast-track your progress

This expires tomorrow at midnight.

[Claim Your Free Consultation Slot]

Talk soon,
{sender_name}

P.S. If you're not ready for a consultation, just reply and let me know what resources would be most helpful for your {primary_goal}.
""".strip()

WARM_LEAD_EMAIL = """
Hi {name},

Congratulations!

Based on your engagement and interests, you're in the top 20% of professionals actively working toward {primary_goal}.

Here's what successful career changers do at this stage:

1. Get clarity on their exact next steps
2. Connect with others on the same journey
3. Access insider knowledge from industry experts

I'd like to invite you to a special masterclass happening this week: "{relevant_topic}"

[Reserve Your Spot (Free)]

Only 50 spots available.

Best,
{sender_name}
""".strip()

MASTERCLASS_INVITE = """
Hi {name},

Tomorrow's masterclass on "{relevant_topic}" is going to be incredible!

Here's what we'll cover:
- The #1 mistake that keeps talented people stuck
- Strategies top companies use to hire
- Live Q&A with industry experts
- An action plan you can start implementing immediately

Time: Tomorrow at 7 PM IST
Duration: 60 minutes + Q&A

[Join the Masterclass Tomorrow]

Can't make it live? Register anyway and we'll send you the recording.

{sender_name}
""".strip()

CONSULTATION_OFFER_EMAIL = """
Hi {name},

How did you find the masterclass on {relevant_topic}?

I believe a quick 15-minute conversation could really accelerate your progress toward {primary_goal}.

In this call, we'll:
- Create a personalized roadmap based on your background
- Identify the fastest path to your target role
- Uncover opportunities you might be missing
- Answer any specific questions you have

[Book Your 15-Minute Career Call]

Best regards,
{sender_name}
""".strip()

HOT_LEAD_EMAIL = """
Hi {name},

Perfect timing!

I can see you're highly engaged and serious about {primary_goal}. Based on your activity, I believe you're ready for the next step.

I've reserved a priority consultation slot just for you:

Available: Today & Tomorrow
Duration: 15 minutes
Investment: Free
Bonus: Personalized career roadmap

[Claim Your Priority Slot Now]

This link expires in 6 hours.

Best,
{sender_name}
""".strip()

EXPIRING_OFFER_EMAIL = """
Hi {name},

Just a quick reminder...

Your priority consultation slot expires in 2 hours!

I'd hate for you to miss this, especially since you've shown such strong interest in {primary_interest}.

[Claim Your Spot Before It Expires]

If the timing doesn't work, just reply to this email and I'll find another slot for you.

Best,
{sender_name}
""".strip()

DATA_SCIENCE_GUIDE_EMAIL = """
Hi {name},

Since you've been reading about {primary_interest}, here's our complete guide to "{relevant_topic}".

Inside:
- The skills hiring managers screen for first
- A 12-week study plan you can start this weekend
- Portfolio projects that get noticed

[Download the Data Science Career Guide]

{sender_name}
""".strip()

DATA_SCIENCE_MASTERCLASS_EMAIL = """
Hi {name},

Our free "Data Science Career Roadmap" masterclass is this week, and it's built for people working toward {primary_goal}.

[Save Your Seat]

{sender_name}
""".strip()

REENGAGEMENT_EMAIL = """
Hi {name},

It's been a little while since you last visited. We've published new material on {relevant_topic} since then, and I thought of you.

As a welcome back, here's a free session with a career advisor, no strings attached.

[Pick Up Where You Left Off]

{sender_name}
""".strip()

REENGAGEMENT_OFFER_EMAIL = """
Hi {name},

One last note: your welcome-back consultation is still available this week.

[Book Your Free Session]

{sender_name}
""".strip()


def default_sequences() -> List[EmailSequence]:
    return [
        EmailSequence(
            id="content-reader-nurture",
            name="Content Reader Nurture Sequence",
            trigger="content_engagement_without_email",
            templates=[
                EmailTemplate("Thanks for reading! Here's your personalized learning path", WELCOME_EMAIL, 0),
                EmailTemplate(
                    "Quick question: What's your biggest career challenge?",
                    QUALIFICATION_EMAIL,
                    DAY_MS,
                    [EmailCondition.NO_QUALIFICATION_DATA],
                ),
                EmailTemplate(
                    "Success story: How {name} landed their dream role in 6 months",
                    SOCIAL_PROOF_EMAIL,
                    3 * DAY_MS,
                ),
                EmailTemplate(
                    "Last chance: Free career consultation (expires tomorrow)",
                    URGENCY_EMAIL,
                    7 * DAY_MS,
                    [EmailCondition.STATUS_WARM_OR_HOT],
                ),
            ],
        ),
        EmailSequence(
            id="warm-lead-conversion",
            name="Warm Lead Conversion Sequence",
            trigger="lead_status_warm",
            templates=[
                EmailTemplate("You're in the top 20% - Here's what comes next", WARM_LEAD_EMAIL, 0),
                EmailTemplate("Free masterclass tomorrow: {relevant_topic}", MASTERCLASS_INVITE, 2 * DAY_MS),
                EmailTemplate("Quick 15-min call to accelerate your goals?", CONSULTATION_OFFER_EMAIL, 5 * DAY_MS),
            ],
        ),
        EmailSequence(
            id="hot-lead-immediate",
            name="Hot Lead Immediate Action",
            trigger="lead_status_hot",
            templates=[
                EmailTemplate("Perfect timing! Your spot is reserved", HOT_LEAD_EMAIL, 0),
                EmailTemplate(
                    "Reminder: Your consultation link expires in 2 hours",
                    EXPIRING_OFFER_EMAIL,
                    4 * HOUR_MS,
                    [EmailCondition.NO_CONVERSION_YET],
                ),
            ],
        ),
        EmailSequence(
            id="data_science_nurture",
            name="Data Science Interest Nurture",
            trigger="interest_data_science",
            templates=[
                EmailTemplate("Your Data Science career guide is here", DATA_SCIENCE_GUIDE_EMAIL, 0),
                EmailTemplate(
                    "Free masterclass: Data Science Career Roadmap",
                    DATA_SCIENCE_MASTERCLASS_EMAIL,
                    2 * DAY_MS,
                    [EmailCondition.NO_CONVERSION_YET],
                ),
            ],
        ),
        EmailSequence(
            id="reengagement_campaign",
            name="Inactive Lead Re-engagement",
            trigger="inactive_7_to_30_days",
            templates=[
                EmailTemplate("We saved you a seat, {name}", REENGAGEMENT_EMAIL, 0),
                EmailTemplate(
                    "Your welcome-back consultation is still open",
                    REENGAGEMENT_OFFER_EMAIL,
                    3 * DAY_MS,
                    [EmailCondition.NO_CONVERSION_YET],
                ),
            ],
        ),
    ]


# ── Engine ────────────────────────────────────────────────────────

class EmailAutomationEngine:
    """
    Chooses, personalizes and schedules email sequences.

    Delivery happens through an EmailDelivery delegate when each template
    falls due. At that point the lead is re-read through `lead_lookup` (when
    given) and the template's conditions are checked against it.
    """

    def __init__(
        self,
        delivery: EmailDelivery,
        scheduler: Scheduler,
        analytics: Optional[AnalyticsSink] = None,
        lead_lookup: Optional[Callable[[str], Optional[Lead]]] = None,
        sender_name: str = "The Career Success Team",
        sequences: Optional[List[EmailSequence]] = None,
    ):
        self.delivery = delivery
        self.scheduler = scheduler
        self.analytics = analytics
        self.lead_lookup = lead_lookup
        self.sender_name = sender_name
        self._sequences: Dict[str, EmailSequence] = {
            s.id: s for s in (sequences if sequences is not None else default_sequences())
        }

    def get_sequence(self, sequence_id: str) -> Optional[EmailSequence]:
        return self._sequences.get(sequence_id)

    def list_sequences(self) -> List[EmailSequence]:
        return list(self._sequences.values())

    def select_sequence(self, lead: Lead) -> Optional[EmailSequence]:
        """Pick a sequence by priority: hot, warm, then content readers without email."""
        if lead.status == LeadStatus.HOT:
            return self.get_sequence("hot-lead-immediate")
        if lead.status == LeadStatus.WARM:
            return self.get_sequence("warm-lead-conversion")
        if lead.engagement.content_viewed and not lead.email:
            return self.get_sequence("content-reader-nurture")
        return None

    def personalize(self, template: EmailTemplate, lead: Lead) -> EmailTemplate:
        values = placeholder_values(lead, self.sender_name)
        return replace(
            template,
            subject=render(template.subject, values),
            body=render(template.body, values),
            conditions=list(template.conditions),
        )

    def trigger_sequence(self, lead: Lead, sequence_id: str) -> bool:
        """Schedule every template of a sequence. False if unknown or inactive."""
        return bool(self.schedule_sequence(lead, sequence_id))

    def schedule_sequence(self, lead: Lead, sequence_id: str) -> List[ScheduledTask]:
        sequence = self._sequences.get(sequence_id)
        if not sequence or not sequence.active:
            logger.warning(f"Email sequence not available: {sequence_id}")
            return []

        self._log("email.triggered", sequence.id, lead.id)
        logger.info(f"Triggered email sequence '{sequence.name}' for lead {lead.id}")

        tasks = []
        for index, template in enumerate(sequence.templates):
            task = self.scheduler.schedule(
                template.delay_ms,
                self._delivery_job(lead, sequence, index),
                name=f"email:{sequence.id}:{index}:{lead.id}",
            )
            self._log("email.scheduled", sequence.id, lead.id, step=index)
            tasks.append(task)
        return tasks

    def _delivery_job(self, lead: Lead, sequence: EmailSequence, index: int) -> Callable[[], None]:
        def job():
            self.deliver(lead, sequence, index)
        return job

    def deliver(self, lead: Lead, sequence: EmailSequence, index: int) -> bool:
        """Send one step of a sequence now, if the current lead still qualifies."""
        template = sequence.templates[index]
        current = self._current(lead)

        if not template.conditions_met(current):
            logger.info(f"Skipping {sequence.id}[{index}] for lead {current.id}: conditions not met")
            self._log("email.skipped", sequence.id, current.id, step=index, reason="conditions")
            return False

        if not current.email:
            logger.info(f"Skipping {sequence.id}[{index}] for lead {current.id}: no email address")
            self._log("email.skipped", sequence.id, current.id, step=index, reason="no_email")
            return False

        email = self.personalize(template, current)
        try:
            sent = self.delivery.send(current.email, email.subject, email.body)
        except Exception as e:
            logger.error(f"Email delivery failed for {sequence.id}[{index}] lead {current.id}: {e}")
            sent = False

        self._log("email.sent" if sent else "email.failed", sequence.id, current.id, step=index)
        return sent

    def sequence_stats(self, sequence_id: str) -> Dict[str, int]:
        if self.analytics is not None and hasattr(self.analytics, "sequence_stats"):
            return self.analytics.sequence_stats(sequence_id)
        return {}

    def _current(self, lead: Lead) -> Lead:
        if self.lead_lookup is not None:
            current = self.lead_lookup(lead.id)
            if current is not None:
                return current
        return lead

    def _log(self, event: str, sequence_id: str, lead_id: str, **details):
        if self.analytics is not None:
            self.analytics.log({"event": event, "sequence_id": sequence_id, "lead_id": lead_id, **details})
