"""
Chat advisor for the Career Funnel widget.

Keyword-driven canned responses with a three-state flow (general,
qualification, consultation), plus extraction of interest and goal tags from
free text.
"""

import logging
import re
import threading
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .models import Lead

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 10_000
DEFAULT_MAX_MESSAGES = 200


class ChatFlow(str, Enum):
    GENERAL = "general"
    QUALIFICATION = "qualification"
    CONSULTATION = "consultation"


GREETING = """Hi! I'm Alex, your AI career advisor. I noticed you've been exploring our content - that's awesome!

I'm here to help you find the perfect learning path based on your goals. What brings you here today?"""

CONSULTATION_PITCH = """Great! I'd love to set up a consultation for you.

Before we proceed, could you tell me:
1. What's your current role or background?
2. What career goal are you working toward?
3. What's your biggest challenge right now?

This helps me match you with the right expert and make the most of your time."""

COURSE_PITCH = """Perfect! We have several programs that might be ideal for you.

To recommend the best fit, I need to understand your situation better:

- What specific skills are you looking to develop?
- What's your current experience level?
- How much time can you dedicate to learning per week?

Based on your answers, I can show you personalized course recommendations with real outcomes from students with similar backgrounds."""

CAREER_CHANGE_PITCH = """Career transitions are exciting! I've helped hundreds of professionals make successful switches.

Let me understand your situation:

- What field are you currently in?
- What industry/role are you targeting?
- What's prompting this change?
- What's your timeline?

I'll create a personalized roadmap based on your answers!"""

SALARY_PITCH = """Excellent goal! Career advancement is definitely achievable with the right strategy.

Here's what I typically see work best:

- Skill gap analysis (where you are vs where you need to be)
- Strategic networking within your target companies
- Demonstrating impact through high-visibility projects

Want me to walk you through a personalized advancement plan? I can show you exactly what professionals in your situation have done to land 20-40% salary increases.

What's your current role, and what level are you targeting?"""

HELP_PITCH = """No worries! Let me help you figure out the best next step.

Here are the most common goals I help with:

- **Career Switch** - Transition to a new field/role
- **Skill Building** - Level up in your current domain
- **Career Growth** - Promotion/salary increase
- **Job Search** - Land your dream role
- **Exploration** - Discover new career possibilities

Which of these resonates most with your situation? Or is there something else you're working toward?"""

DEFAULT_PITCH = """That's interesting! Based on what you've shared and your engagement with our content, I think I can help you make real progress.

Here's what I'd recommend:

1. **Free Career Assessment** - Quick 5-minute quiz to identify your strengths and opportunities
2. **Personalized Learning Path** - Curated resources based on your goals
3. **Expert Consultation** - 15-minute call with a career advisor

Would you like to start with the assessment, or do you have specific questions about your career goals?

What's the #1 thing you'd like to achieve in the next 6 months?"""

BOOKING_PITCH = """Thank you for sharing that! Based on what you've told me, I can see a clear path forward.

Here's what I'd recommend as your next steps:

- **Free Career Strategy Call** - 15 minutes with a senior advisor
- **Personalized Learning Plan** - Tailored to your background
- **Success Framework** - Proven system used by 500+ professionals

The strategy call is especially valuable because:
- You'll get expert advice specific to your situation
- We'll identify hidden opportunities in your target market
- You'll leave with a clear 90-day action plan

Sound good? I can check availability right now - we have a few slots left this week.

[Book Your Free Strategy Call]

Or feel free to ask me any other questions!"""


@dataclass
class KeywordBucket:
    name: str
    keywords: Tuple[str, ...]
    response: str
    enters: Optional[ChatFlow] = None

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


# Checked in order; first match wins
BUCKETS = (
    KeywordBucket("consultation", ("consultation", "call", "talk"), CONSULTATION_PITCH, ChatFlow.CONSULTATION),
    KeywordBucket("course", ("course", "learning", "skills"), COURSE_PITCH),
    KeywordBucket("career_change", ("career change", "switch", "transition"), CAREER_CHANGE_PITCH, ChatFlow.QUALIFICATION),
    KeywordBucket("salary", ("salary", "promotion", "advance"), SALARY_PITCH),
    KeywordBucket("help", ("help", "confused", "not sure"), HELP_PITCH),
)

# Responses that do not depend on the message once a flow is entered
FLOW_RESPONSES = {
    ChatFlow.QUALIFICATION: BOOKING_PITCH,
    ChatFlow.CONSULTATION: CONSULTATION_PITCH,
}

INTEREST_PATTERNS = (
    ("data-science", re.compile(r"data science|data analyst")),
    ("machine-learning", re.compile(r"machine learning|\bai\b")),
    ("software-engineering", re.compile(r"software engineer|developer")),
    ("product-management", re.compile(r"product manager")),
)

GOAL_PATTERNS = (
    ("career-switch", re.compile(r"switch|change career")),
    ("promotion", re.compile(r"promotion|advance")),
    ("skill-upgrade", re.compile(r"skills|learn")),
)


def extract_interests(text: str) -> List[str]:
    lowered = text.lower()
    return [tag for tag, pattern in INTEREST_PATTERNS if pattern.search(lowered)]


def extract_goals(text: str) -> List[str]:
    lowered = text.lower()
    return [tag for tag, pattern in GOAL_PATTERNS if pattern.search(lowered)]


def apply_message(lead: Lead, text: str) -> Tuple[List[str], List[str]]:
    """
    Add interests and goals found in a message to the lead.

    Tags already on the lead are not added twice. Returns the newly added
    (interests, goals).
    """
    interests = lead.add_interests(extract_interests(text))
    goals = lead.add_goals(extract_goals(text), ai_generated=True)
    if interests or goals:
        lead.updated_at = datetime.utcnow()
    return interests, goals


@dataclass
class ChatReply:
    text: str
    flow: ChatFlow
    bucket: Optional[str] = None


class ChatAdvisor:
    """
    Stateless keyword classifier.

    Once the conversation enters the qualification or consultation flow it
    stays there, and every further message gets that flow's fixed response.
    """

    def respond(self, message: str, flow: ChatFlow = ChatFlow.GENERAL) -> ChatReply:
        flow = ChatFlow(flow)
        if flow in FLOW_RESPONSES:
            return ChatReply(FLOW_RESPONSES[flow], flow, bucket=flow.value)

        lowered = message.lower()
        for bucket in BUCKETS:
            if bucket.matches(lowered):
                return ChatReply(bucket.response, bucket.enters or flow, bucket=bucket.name)

        return ChatReply(DEFAULT_PITCH, flow)


@dataclass
class ChatMessage:
    role: str  # user, assistant
    content: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self):
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp.isoformat()}


@dataclass
class ChatSession:
    """Per-conversation chat state. The transcript keeps the latest messages only."""
    conversation_id: str
    lead_id: Optional[str] = None
    flow: ChatFlow = ChatFlow.GENERAL
    messages: Deque[ChatMessage] = field(default_factory=lambda: deque(maxlen=DEFAULT_MAX_MESSAGES))

    def __post_init__(self):
        if not self.messages:
            self.messages.append(ChatMessage("assistant", GREETING))


class ChatSessionStore:
    """
    In-memory chat sessions keyed by conversation id.

    Holds at most max_sessions conversations; the least recently used one is
    dropped when a new conversation would exceed the cap.
    """

    def __init__(
        self,
        advisor: Optional[ChatAdvisor] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        max_messages: int = DEFAULT_MAX_MESSAGES,
    ):
        self.advisor = advisor or ChatAdvisor()
        self.max_sessions = max(1, max_sessions)
        self.max_messages = max(1, max_messages)
        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._lock = threading.Lock()

    def get_or_create(self, conversation_id: Optional[str] = None, lead_id: Optional[str] = None) -> ChatSession:
        conversation_id = conversation_id or str(uuid.uuid4())
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                session = ChatSession(
                    conversation_id=conversation_id,
                    lead_id=lead_id,
                    messages=deque(maxlen=self.max_messages),
                )
                self._sessions[conversation_id] = session
                self._evict()
                logger.info(f"Chat session started: {conversation_id}")
            else:
                self._sessions.move_to_end(conversation_id)
                if lead_id and not session.lead_id:
                    session.lead_id = lead_id
            return session

    def get(self, conversation_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def handle(self, session: ChatSession, message: str) -> ChatReply:
        reply = self.advisor.respond(message, session.flow)
        with self._lock:
            session.messages.append(ChatMessage("user", message))
            if reply.flow != session.flow:
                logger.info(f"Chat {session.conversation_id}: flow {session.flow.value} -> {reply.flow.value}")
            session.flow = reply.flow
            session.messages.append(ChatMessage("assistant", reply.text))
        return reply

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict(self):
        while len(self._sessions) > self.max_sessions:
            expired, _ = self._sessions.popitem(last=False)
            logger.debug(f"Chat session evicted: {expired}")
