"""
Analytics Collector for the Career Funnel.

Keeps an audit trail of routing and email events in memory and derives
rule performance, sequence statistics and funnel metrics from it.
"""

import logging
from collections import Counter, defaultdict, deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional

from .delegates import AnalyticsSink
from .models import Lead, LeadStatus

logger = logging.getLogger(__name__)


class AnalyticsCollector(AnalyticsSink):
    """Collects and aggregates funnel events."""

    def __init__(self, max_events: int = 5000):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self._rule_counts: Dict[str, Counter] = defaultdict(Counter)
        self._sequence_counts: Dict[str, Counter] = defaultdict(Counter)

    def log(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("timestamp", datetime.utcnow().isoformat())
        self._events.append(event)

        kind = event.get("event", "")
        if kind.startswith("routing.") and event.get("rule_id"):
            self._rule_counts[event["rule_id"]][kind.split(".", 1)[1]] += 1
        elif kind.startswith("email.") and event.get("sequence_id"):
            self._sequence_counts[event["sequence_id"]][kind.split(".", 1)[1]] += 1

        logger.debug(f"Analytics: {kind} {event.get('rule_id') or event.get('sequence_id') or ''}")

    def events(self, kind: Optional[str] = None, lead_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            e for e in self._events
            if (kind is None or e.get("event") == kind)
            and (lead_id is None or e.get("lead_id") == lead_id)
        ]

    def rule_performance(self) -> Dict[str, Dict[str, Any]]:
        """Per-rule counts of triggered, succeeded and failed dispatches."""
        performance = {}
        for rule_id, counts in self._rule_counts.items():
            triggered = counts["triggered"]
            succeeded = counts["succeeded"]
            performance[rule_id] = {
                "triggered": triggered,
                "succeeded": succeeded,
                "failed": counts["failed"],
                "success_rate": round(succeeded / triggered, 3) if triggered else 0.0,
            }
        return performance

    def sequence_stats(self, sequence_id: str) -> Dict[str, int]:
        counts = self._sequence_counts.get(sequence_id, Counter())
        return {
            "triggered": counts["triggered"],
            "scheduled": counts["scheduled"],
            "sent": counts["sent"],
            "skipped": counts["skipped"],
            "failed": counts["failed"],
        }

    @staticmethod
    def funnel_metrics(leads: Iterable[Lead], top_content: int = 5) -> Dict[str, Any]:
        """Visitor, lead and conversion numbers for the funnel dashboard."""
        leads = list(leads)
        total = len(leads)
        captured = [l for l in leads if l.email]
        converted = [l for l in leads if l.status == LeadStatus.CONVERTED]

        stages = {status.value: 0 for status in LeadStatus}
        for lead in leads:
            stages[lead.status.value] += 1

        content = [c for l in leads for c in l.engagement.content_viewed]
        content.sort(key=lambda c: c.engagement_score, reverse=True)

        return {
            "total_visitors": total,
            "leads_generated": len(captured),
            "conversion_rate": round(len(converted) / total, 4) if total else 0.0,
            "average_score": round(sum(l.score for l in leads) / total, 2) if total else 0.0,
            "stage_conversions": stages,
            "top_content": [c.to_dict() for c in content[:top_content]],
        }
