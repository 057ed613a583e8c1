"""Tests for the delegate implementations and analytics collector."""

import asyncio
import json

import httpx
import pytest

from lead_funnel.analytics import AnalyticsCollector
from lead_funnel.delegates import LoggingEmailDelivery, LoggingSalesNotifier, WebhookSalesNotifier
from lead_funnel.lead_router import LeadRouter
from lead_funnel.models import LeadStatus
from lead_funnel.scheduling import AsyncioScheduler


# ── Logging delegates ─────────────────────────────────

def test_logging_delivery_keeps_bounded_history():
    delivery = LoggingEmailDelivery(size=2)
    for i in range(3):
        assert delivery.send(f"user{i}@example.com", "Hi", "Body") is True
    assert [c["to"] for c in delivery.calls()] == ["user1@example.com", "user2@example.com"]


def test_logging_sales_notifier_records_payload():
    notifier = LoggingSalesNotifier()
    notifier.notify({"lead_id": "lead_1", "priority": "urgent"})
    assert notifier.calls()[0]["payload"]["priority"] == "urgent"


# ── CRM webhook ───────────────────────────────────────

def _notify(handler, payload, **kwargs):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await WebhookSalesNotifier("https://crm.example.com/hooks/leads", client=client, **kwargs).notify(payload)

    asyncio.run(main())


def _webhook_router(handler, scorer, email_engine, scheduler, chatbot, booker, analytics):
    notifier = WebhookSalesNotifier(
        "https://crm.example.com/hooks/leads",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return LeadRouter(
        scorer=scorer,
        email_engine=email_engine,
        scheduler=scheduler,
        sales_notifier=notifier,
        chatbot=chatbot,
        booker=booker,
        analytics=analytics,
    )


class TestWebhookSalesNotifier:
    def test_posts_payload_with_api_key(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("X-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        _notify(handler, {"lead_id": "lead_1", "priority": "urgent"}, api_key="secret")

        assert seen["url"] == "https://crm.example.com/hooks/leads"
        assert seen["key"] == "secret"
        assert seen["body"] == {"lead_id": "lead_1", "priority": "urgent"}

    def test_no_api_key_header_when_unset(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200)

        _notify(handler, {"lead_id": "x"})
        assert seen["key"] is None

    @pytest.mark.parametrize("status", [302, 404, 500])
    def test_non_success_status_raises(self, status):
        with pytest.raises(httpx.HTTPStatusError):
            _notify(lambda request: httpx.Response(status, text="nope"), {"lead_id": "lead_1"})

    def test_slow_webhook_does_not_block_the_loop(
        self, scorer, email_engine, chatbot, booker, analytics, hot_lead, now
    ):
        async def slow_crm(request):
            await asyncio.sleep(0.3)
            return httpx.Response(202)

        async def main():
            loop = asyncio.get_running_loop()
            router = _webhook_router(slow_crm, scorer, email_engine, AsyncioScheduler(), chatbot, booker, analytics)
            result = router.route(hot_lead, now)

            gaps = []
            last = loop.time()
            for _ in range(10):
                await asyncio.sleep(0.05)
                gaps.append(loop.time() - last)
                last = loop.time()
            return result, gaps

        result, gaps = asyncio.run(main())

        assert max(gaps) < 0.2
        assert result.tasks[0].done is True
        assert analytics.rule_performance()["hot_lead_immediate"]["succeeded"] == 1

    def test_rejected_webhook_is_a_failed_dispatch(
        self, scorer, email_engine, scheduler, chatbot, booker, analytics, hot_lead, now
    ):
        router = _webhook_router(
            lambda request: httpx.Response(503, text="maintenance"),
            scorer, email_engine, scheduler, chatbot, booker, analytics,
        )
        router.route(hot_lead, now)
        scheduler.advance(0)

        assert router.rule_performance()["hot_lead_immediate"]["failed"] == 1
        assert "503" in analytics.events("routing.failed")[0]["error"]
        assert len(booker.calls()) == 1


# ── Analytics ─────────────────────────────────────────

class TestAnalyticsCollector:
    def test_rule_performance(self):
        analytics = AnalyticsCollector()
        for event in ("routing.triggered", "routing.triggered", "routing.succeeded", "routing.failed"):
            analytics.log({"event": event, "rule_id": "r1", "lead_id": "lead_1"})
        assert analytics.rule_performance() == {
            "r1": {"triggered": 2, "succeeded": 1, "failed": 1, "success_rate": 0.5},
        }

    def test_sequence_stats_default_to_zero(self):
        assert AnalyticsCollector().sequence_stats("nope") == {
            "triggered": 0, "scheduled": 0, "sent": 0, "skipped": 0, "failed": 0,
        }

    def test_events_filter(self):
        analytics = AnalyticsCollector()
        analytics.log({"event": "email.sent", "sequence_id": "s", "lead_id": "a"})
        analytics.log({"event": "email.sent", "sequence_id": "s", "lead_id": "b"})
        assert len(analytics.events("email.sent")) == 2
        assert len(analytics.events(lead_id="b")) == 1
        assert "timestamp" in analytics.events()[0]

    def test_funnel_metrics(self, hot_lead, make_lead):
        hot_lead.score = 90
        hot_lead.status = LeadStatus.CONVERTED
        visitor = make_lead(lead_id="lead_visitor", content=[("blog", 10, 10, 5)])
        visitor.score = 10

        metrics = AnalyticsCollector.funnel_metrics([hot_lead, visitor])
        assert metrics["total_visitors"] == 2
        assert metrics["leads_generated"] == 1
        assert metrics["conversion_rate"] == 0.5
        assert metrics["average_score"] == 50
        assert metrics["stage_conversions"]["converted"] == 1
        assert metrics["stage_conversions"]["cold"] == 1
        assert metrics["top_content"][0]["engagement_score"] == 100

    def test_funnel_metrics_empty(self):
        metrics = AnalyticsCollector.funnel_metrics([])
        assert metrics["total_visitors"] == 0
        assert metrics["conversion_rate"] == 0.0
