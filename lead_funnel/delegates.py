"""
Side-effecting collaborators invoked by the routing engine.

Email delivery, sales notification, chatbot prompts, consultation booking and
analytics are external systems. The logging implementations here record what
would have been sent; WebhookSalesNotifier posts to a CRM webhook.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Deque, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class EmailDelivery(ABC):
    @abstractmethod
    def send(self, to_address: str, subject: str, body: str) -> bool:
        """Deliver one email. Returns True on success."""
        ...


class SalesNotifier(ABC):
    @abstractmethod
    def notify(self, payload: Dict[str, Any]) -> Optional[Awaitable[None]]:
        """Hand a lead to sales. May be a coroutine; the router awaits it."""
        ...


class ChatbotPresenter(ABC):
    @abstractmethod
    def trigger(self, lead_id: str, trigger_type: str, message: str) -> None:
        ...


class ConsultationBooker(ABC):
    @abstractmethod
    def reserve(self, lead_id: str, params: Dict[str, Any]) -> None:
        ...


class AnalyticsSink(ABC):
    @abstractmethod
    def log(self, event: Dict[str, Any]) -> None:
        ...


class _History:
    """Bounded record of recent calls."""

    def __init__(self, size: int = 200):
        self.history: Deque[Dict[str, Any]] = deque(maxlen=size)

    def _remember(self, **entry) -> Dict[str, Any]:
        entry.setdefault("timestamp", datetime.utcnow().isoformat())
        self.history.append(entry)
        return entry

    def calls(self) -> List[Dict[str, Any]]:
        return list(self.history)


class LoggingEmailDelivery(_History, EmailDelivery):
    """Logs emails instead of sending them."""

    def send(self, to_address, subject, body):
        self._remember(to=to_address, subject=subject, body=body)
        logger.info(f"Email to {to_address}: {subject}")
        logger.debug(f"Email body: {body[:200]}...")
        return True


class LoggingSalesNotifier(_History, SalesNotifier):
    def notify(self, payload):
        self._remember(payload=payload)
        logger.info(
            f"Sales notification: lead={payload.get('lead_id')} "
            f"priority={payload.get('priority')} score={payload.get('lead_score')}"
        )


class LoggingChatbotPresenter(_History, ChatbotPresenter):
    def trigger(self, lead_id, trigger_type, message):
        self._remember(lead_id=lead_id, trigger_type=trigger_type, message=message)
        logger.info(f"Chatbot trigger for lead {lead_id}: {trigger_type}")


class LoggingConsultationBooker(_History, ConsultationBooker):
    def reserve(self, lead_id, params):
        self._remember(lead_id=lead_id, params=dict(params))
        logger.info(f"Consultation booking for lead {lead_id}: {params.get('booking_type', 'standard')}")


class WebhookSalesNotifier(SalesNotifier):
    """
    Posts sales notifications to a CRM webhook.

    notify() is a coroutine so the post runs on the event loop without
    blocking it. Any non-2xx response raises, so the routing engine records
    the dispatch as failed for the rule that fired it.
    """

    def __init__(
        self,
        webhook_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def notify(self, payload):
        if self._client is not None:
            response = await self._client.post(
                self.webhook_url, json=payload, headers=self._headers(), timeout=self.timeout,
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.webhook_url, json=payload, headers=self._headers(), timeout=self.timeout,
                )

        if not response.is_success:
            logger.error(
                f"Sales webhook rejected lead {payload.get('lead_id')}: "
                f"{response.status_code} {response.text[:500]}"
            )
            response.raise_for_status()
        logger.info(f"Sales webhook delivered for lead {payload.get('lead_id')}")
