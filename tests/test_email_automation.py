"""Tests for email sequence selection, personalization and delivery."""

from dataclasses import replace
from datetime import timedelta

import pytest

from lead_funnel.delegates import EmailDelivery
from lead_funnel.email_automation import (
    DAY_MS,
    HOUR_MS,
    EmailAutomationEngine,
    EmailTemplate,
    humanize_tag,
    placeholder_values,
    render,
)
from lead_funnel.models import ContentEngagement, LeadStatus, QualificationData


class FailingDelivery(EmailDelivery):
    def send(self, to_address, subject, body):
        raise ConnectionError("smtp down")


# ── Personalization ───────────────────────────────────

class TestPersonalization:
    def test_fallbacks_for_empty_lead(self, make_lead):
        values = placeholder_values(make_lead(), "Alex")
        assert values["name"] == "there"
        assert values["email"] == ""
        assert values["latest_content"] == "our latest content"
        assert values["content_type"] == "content"
        assert values["primary_interest"] == "tech careers"
        assert values["relevant_topic"] == "Tech Career Acceleration"
        assert values["primary_goal"] == "your career goals"
        assert values["sender_name"] == "Alex"

    def test_values_from_lead(self, hot_lead):
        values = placeholder_values(hot_lead, "Alex")
        assert values["name"] == "Priya"
        assert values["primary_interest"] == "Data Science"
        assert values["relevant_topic"] == "Breaking into Data Science"
        assert values["primary_goal"] == "career transition"
        assert values["content_type"] == "course"

    def test_unlisted_goal_is_dehyphenated(self, make_lead):
        lead = make_lead(qualification=QualificationData(goals=["start-a-company"]))
        assert placeholder_values(lead, "Alex")["primary_goal"] == "start a company"

    def test_latest_content_uses_view_date(self, make_lead, now):
        lead = make_lead()
        lead.engagement.record_content(ContentEngagement("b", "video", "Newer", view_date=now))
        lead.engagement.record_content(ContentEngagement("a", "blog", "Older", view_date=now - timedelta(days=2)))
        assert placeholder_values(lead, "Alex")["latest_content"] == "Newer"

    def test_latest_content_tie_goes_to_later_entry(self, make_lead, now):
        lead = make_lead()
        lead.engagement.record_content(ContentEngagement("a", "blog", "First", view_date=now))
        lead.engagement.record_content(ContentEngagement("b", "blog", "Second", view_date=now))
        assert lead.engagement.latest_content().title == "Second"

    def test_unknown_placeholders_are_left_alone(self):
        assert render("Hi {name}, {coupon}", {"name": "Sam"}) == "Hi Sam, {coupon}"

    def test_humanize_tag(self):
        assert humanize_tag("cloud-engineering") == "Cloud Engineering"

    def test_personalize_leaves_template_untouched(self, email_engine, hot_lead):
        template = email_engine.get_sequence("content-reader-nurture").templates[2]
        email = email_engine.personalize(template, hot_lead)
        assert email.subject == "Success story: How Priya landed their dream role in 6 months"
        assert "{name}" in template.subject
        assert "{" not in email.body


# ── Selection ─────────────────────────────────────────

class TestSelectSequence:
    def test_hot_first(self, email_engine, hot_lead):
        hot_lead.status = LeadStatus.HOT
        assert email_engine.select_sequence(hot_lead).id == "hot-lead-immediate"

    def test_warm(self, email_engine, make_lead):
        lead = make_lead(email="a@example.com")
        lead.status = LeadStatus.WARM
        assert email_engine.select_sequence(lead).id == "warm-lead-conversion"

    def test_anonymous_reader(self, email_engine, make_lead):
        lead = make_lead(content=[("blog", 10, 10, 0)])
        assert email_engine.select_sequence(lead).id == "content-reader-nurture"

    def test_nothing_for_cold_lead_with_email(self, email_engine, make_lead):
        lead = make_lead(email="a@example.com", content=[("blog", 10, 10, 0)])
        assert email_engine.select_sequence(lead) is None

    def test_five_sequences_available(self, email_engine):
        ids = {s.id for s in email_engine.list_sequences()}
        assert ids == {
            "content-reader-nurture",
            "warm-lead-conversion",
            "hot-lead-immediate",
            "data_science_nurture",
            "reengagement_campaign",
        }


# ── Scheduling and delivery ───────────────────────────

class TestTriggerSequence:
    def test_unknown_sequence(self, email_engine, hot_lead, scheduler):
        assert email_engine.trigger_sequence(hot_lead, "nope") is False
        assert scheduler.pending() == []

    def test_inactive_sequence(self, email_engine, hot_lead):
        email_engine.get_sequence("warm-lead-conversion").active = False
        assert email_engine.trigger_sequence(hot_lead, "warm-lead-conversion") is False

    def test_emails_go_out_at_their_delays(self, email_engine, email_delivery, scheduler, hot_lead):
        assert email_engine.trigger_sequence(hot_lead, "warm-lead-conversion") is True
        assert len(scheduler.pending()) == 3

        scheduler.advance(0)
        assert len(email_delivery.calls()) == 1

        scheduler.advance(2 * DAY_MS - 1)
        assert len(email_delivery.calls()) == 1
        scheduler.advance(1)
        assert len(email_delivery.calls()) == 2
        assert email_delivery.calls()[1]["subject"] == "Free masterclass tomorrow: Breaking into Data Science"

        scheduler.advance(3 * DAY_MS)
        assert len(email_delivery.calls()) == 3
        assert all(call["to"] == "priya@example.com" for call in email_delivery.calls())

    def test_conditions_checked_at_send_time(self, email_delivery, scheduler, analytics, make_lead):
        lead = make_lead(email="sam@example.com", content=[("blog", 10, 10, 0)])
        registry = {lead.id: lead}
        engine = EmailAutomationEngine(
            delivery=email_delivery,
            scheduler=scheduler,
            analytics=analytics,
            lead_lookup=registry.get,
        )
        engine.trigger_sequence(lead, "content-reader-nurture")
        scheduler.advance(0)

        # the lead answers the survey before the qualification email falls due
        lead.qualification = QualificationData(goals=["promotion"])
        scheduler.flush()

        subjects = [c["subject"] for c in email_delivery.calls()]
        assert len(subjects) == 2
        assert not any(s.startswith("Quick question") for s in subjects)

        stats = analytics.sequence_stats("content-reader-nurture")
        # qualification email skipped, urgency email skipped (lead is cold)
        assert stats == {"triggered": 1, "scheduled": 4, "sent": 2, "skipped": 2, "failed": 0}

    def test_lookup_sees_replaced_lead(self, email_delivery, scheduler, hot_lead):
        hot_lead.status = LeadStatus.HOT
        registry = {hot_lead.id: hot_lead}
        engine = EmailAutomationEngine(email_delivery, scheduler, lead_lookup=registry.get)
        engine.trigger_sequence(hot_lead, "hot-lead-immediate")
        scheduler.advance(0)

        converted = replace(hot_lead, status=LeadStatus.CONVERTED)
        registry[hot_lead.id] = converted
        scheduler.advance(4 * HOUR_MS)

        assert len(email_delivery.calls()) == 1

    def test_no_email_address_skips(self, email_engine, email_delivery, scheduler, analytics, make_lead):
        lead = make_lead(content=[("blog", 10, 10, 0)])
        email_engine.trigger_sequence(lead, "content-reader-nurture")
        scheduler.advance(0)
        assert email_delivery.calls() == []
        skipped = analytics.events("email.skipped", lead.id)
        assert skipped[0]["reason"] == "no_email"

    def test_delivery_failure_is_recorded(self, scheduler, analytics, hot_lead):
        engine = EmailAutomationEngine(FailingDelivery(), scheduler, analytics=analytics)
        engine.trigger_sequence(hot_lead, "data_science_nurture")
        scheduler.advance(0)
        assert analytics.sequence_stats("data_science_nurture")["failed"] == 1
        assert scheduler.pending()[0].name.startswith("email:data_science_nurture:1")

    def test_template_conditions(self, make_lead):
        template = EmailTemplate("s", "b", 0, [])
        assert template.conditions_met(make_lead()) is True
