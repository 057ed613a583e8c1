"""Shared fixtures for Career Funnel tests."""

import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# No typing delay and no CRM webhook in tests
os.environ.setdefault("CHAT_TYPING_DELAY_MIN", "0")
os.environ.setdefault("CHAT_TYPING_DELAY_MAX", "0")
os.environ.pop("CRM_WEBHOOK_URL", None)

from config.settings import Settings
from lead_funnel.analytics import AnalyticsCollector
from lead_funnel.delegates import (
    LoggingChatbotPresenter,
    LoggingConsultationBooker,
    LoggingEmailDelivery,
    LoggingSalesNotifier,
)
from lead_funnel.email_automation import EmailAutomationEngine
from lead_funnel.lead_router import LeadRouter
from lead_funnel.models import ContentEngagement, Lead, QualificationData, UserAction
from lead_funnel.recommendations import RecommendationEngine
from lead_funnel.scheduling import ManualScheduler
from lead_funnel.scoring_model import LeadScorer

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


def build_lead(
    lead_id="lead_test",
    email=None,
    name=None,
    interests=(),
    sessions=0,
    extra_seconds=0,
    content=(),
    actions=(),
    qualification=None,
    at=NOW,
):
    """
    Build a lead whose activity all happened at `at`.

    content: iterable of (content_type, completion, time_spent, engagement_score)
    actions: iterable of action type strings
    """
    lead = Lead.anonymous(now=at)
    lead.id = lead_id
    lead.email = email
    lead.name = name
    lead.add_interests(interests)
    for index, (content_type, completion, time_spent, engagement_score) in enumerate(content):
        lead.engagement.record_content(ContentEngagement(
            content_id=f"content-{index}",
            content_type=content_type,
            title=f"Article {index}",
            time_spent=time_spent,
            completion=completion,
            engagement_score=engagement_score,
            view_date=at,
        ))
    for action in actions:
        lead.engagement.record_action(UserAction(type=action, target="page", timestamp=at))
    for _ in range(sessions):
        lead.engagement.start_session(at)
    if extra_seconds:
        lead.engagement.add_time(extra_seconds, at)
    lead.qualification = qualification
    return lead


@pytest.fixture
def make_lead():
    return build_lead


@pytest.fixture
def hot_lead():
    """Scores 91: content 100, behaviour 90, qualification 80."""
    return build_lead(
        lead_id="lead_hot",
        email="priya@example.com",
        name="Priya",
        interests=["data-science"],
        sessions=6,
        extra_seconds=1200,
        content=[("course", 100, 300, 100)],
        actions=["view", "click", "download"],
        qualification=QualificationData(
            experience="intermediate",
            goals=["career-switch", "promotion"],
            timeline="immediate",
            budget="premium",
        ),
    )


@pytest.fixture
def data_science_reader():
    """Scores 47.05 (qualified): two half-read blogs, two sessions, email given."""
    return build_lead(
        lead_id="lead_reader",
        email="sam@example.com",
        name="Sam",
        interests=["data-science"],
        sessions=2,
        content=[("blog", 50, 150, 0), ("blog", 50, 150, 0)],
        qualification=QualificationData(
            experience="intermediate",
            goals=["career-switch"],
            timeline="immediate",
            budget="standard",
        ),
    )


@pytest.fixture
def anonymous_browser():
    """No email, three sessions and ten minutes on site."""
    return build_lead(lead_id="lead_anon", sessions=3, extra_seconds=600)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def analytics():
    return AnalyticsCollector()


@pytest.fixture
def email_delivery():
    return LoggingEmailDelivery()


@pytest.fixture
def sales_notifier():
    return LoggingSalesNotifier()


@pytest.fixture
def chatbot():
    return LoggingChatbotPresenter()


@pytest.fixture
def booker():
    return LoggingConsultationBooker()


@pytest.fixture
def scorer():
    return LeadScorer(recommender=RecommendationEngine())


@pytest.fixture
def email_engine(email_delivery, scheduler, analytics):
    return EmailAutomationEngine(
        delivery=email_delivery,
        scheduler=scheduler,
        analytics=analytics,
        sender_name="Alex",
    )


@pytest.fixture
def router(scorer, email_engine, scheduler, sales_notifier, chatbot, booker, analytics):
    return LeadRouter(
        scorer=scorer,
        email_engine=email_engine,
        scheduler=scheduler,
        sales_notifier=sales_notifier,
        chatbot=chatbot,
        booker=booker,
        analytics=analytics,
    )


@pytest.fixture
def services():
    """Application services driven by a manual clock."""
    from api.services import Services

    settings = Settings(brand_name="Scaler", chat_typing_delay_min=0, chat_typing_delay_max=0, crm_webhook_url=None)
    return Services(settings, scheduler=ManualScheduler())


@pytest.fixture
def client(services):
    """Create a FastAPI test client."""
    from api.main import create_app

    return TestClient(create_app(services))


@pytest.fixture
def days_ago():
    def _days_ago(days):
        return NOW - timedelta(days=days)
    return _days_ago
