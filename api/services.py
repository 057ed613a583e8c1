"""
Service initialization and dependency injection for the Career Funnel API.

One Services container is built per application and stored on app.state;
routes receive it through the get_services dependency.
"""

import logging
import threading
from typing import Dict, List, Optional

from fastapi import Request

from config.settings import get_settings, Settings
from lead_funnel.analytics import AnalyticsCollector
from lead_funnel.chat_advisor import ChatAdvisor, ChatSessionStore
from lead_funnel.delegates import (
    LoggingChatbotPresenter,
    LoggingConsultationBooker,
    LoggingEmailDelivery,
    LoggingSalesNotifier,
    SalesNotifier,
    WebhookSalesNotifier,
)
from lead_funnel.email_automation import EmailAutomationEngine
from lead_funnel.lead_router import LeadRouter
from lead_funnel.models import Lead
from lead_funnel.recommendations import ContentCatalog, RecommendationEngine
from lead_funnel.scheduling import AsyncioScheduler, Scheduler
from lead_funnel.scoring_model import LeadScorer

logger = logging.getLogger(__name__)


class LeadRegistry:
    """In-memory lead store for the lifetime of the process."""

    def __init__(self):
        self._leads: Dict[str, Lead] = {}
        self._lock = threading.Lock()

    def get(self, lead_id: str) -> Optional[Lead]:
        with self._lock:
            return self._leads.get(lead_id)

    def save(self, lead: Lead) -> Lead:
        with self._lock:
            self._leads[lead.id] = lead
        return lead

    def all(self) -> List[Lead]:
        with self._lock:
            return list(self._leads.values())

    def __len__(self):
        return len(self._leads)


class Services:
    """Container for all application services."""

    def __init__(self, settings: Optional[Settings] = None, scheduler: Optional[Scheduler] = None):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncioScheduler()

        self.leads = LeadRegistry()
        self.analytics = AnalyticsCollector()

        self.email_delivery = LoggingEmailDelivery(self.settings.delegate_history_size)
        self.sales_notifier = self._build_sales_notifier()
        self.chatbot = LoggingChatbotPresenter(self.settings.delegate_history_size)
        self.booker = LoggingConsultationBooker(self.settings.delegate_history_size)

        self.recommender = RecommendationEngine()
        self.scorer = LeadScorer(recommender=self.recommender)
        self.catalog = ContentCatalog()
        self.email_engine = EmailAutomationEngine(
            delivery=self.email_delivery,
            scheduler=self.scheduler,
            analytics=self.analytics,
            lead_lookup=self.leads.get,
            sender_name=self.settings.sender_name,
        )
        self.router = LeadRouter(
            scorer=self.scorer,
            email_engine=self.email_engine,
            scheduler=self.scheduler,
            sales_notifier=self.sales_notifier,
            chatbot=self.chatbot,
            booker=self.booker,
            analytics=self.analytics,
            catalog=self.catalog,
        )
        self.chat = ChatSessionStore(
            ChatAdvisor(),
            max_sessions=self.settings.chat_max_sessions,
            max_messages=self.settings.chat_max_messages,
        )
        logger.info("Lead funnel services ready")

    def _build_sales_notifier(self) -> SalesNotifier:
        s = self.settings
        if s.crm_webhook_url:
            logger.info("Sales notifications go to CRM webhook")
            return WebhookSalesNotifier(
                webhook_url=s.crm_webhook_url,
                api_key=s.crm_api_key,
                timeout=s.crm_timeout_seconds,
            )
        logger.warning("CRM_WEBHOOK_URL not set, sales notifications are logged only")
        return LoggingSalesNotifier(s.delegate_history_size)

    def health(self) -> dict:
        return {
            "leads": len(self.leads),
            "active_rules": len(self.router.active_rules()),
            "sequences": len(self.email_engine.list_sequences()),
            "chat_sessions": self.chat.count(),
            "crm_webhook": isinstance(self.sales_notifier, WebhookSalesNotifier),
        }


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
