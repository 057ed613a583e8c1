"""Tests for lead scoring and status classification."""

from datetime import timedelta

import pytest

from lead_funnel.models import (
    BudgetTier,
    ContentEngagement,
    ContentType,
    EngagementData,
    ExperienceLevel,
    LeadStatus,
    QualificationData,
    Timeline,
)
from lead_funnel.scoring_model import LeadScorer, days_since


@pytest.fixture
def plain_scorer():
    return LeadScorer()


# ── Sub-scores ────────────────────────────────────────

class TestContentScore:
    def test_no_content_scores_zero(self, plain_scorer, make_lead):
        assert plain_scorer.content_score(make_lead().engagement) == 0

    def test_fully_consumed_course_scores_100(self, plain_scorer, make_lead):
        lead = make_lead(content=[("course", 100, 300, 100)])
        assert plain_scorer.content_score(lead.engagement) == pytest.approx(100)

    def test_weighted_average_by_type(self, plain_scorer, make_lead):
        # course item 100 (weight 1.0), blog item 40 (weight 0.5)
        lead = make_lead(content=[("course", 100, 300, 100), ("blog", 50, 150, 0)])
        assert plain_scorer.content_score(lead.engagement) == pytest.approx(80)

    def test_factors_are_capped(self, plain_scorer, make_lead):
        lead = make_lead(content=[("video", 250, 5000, 400)])
        assert plain_scorer.content_score(lead.engagement) == pytest.approx(100)

    def test_unknown_content_type_uses_blog_weight(self, plain_scorer, make_lead):
        lead = make_lead(content=[("podcast", 100, 300, 100)])
        assert lead.engagement.content_viewed[0].content_type == ContentType.UNKNOWN
        assert plain_scorer.content_score(lead.engagement) == pytest.approx(100)


class TestBehaviorScore:
    def test_components(self, plain_scorer, make_lead, now):
        # sessions 2 -> 10, active today -> 20, two action types -> 10, 10 minutes -> 10
        lead = make_lead(sessions=2, extra_seconds=600, actions=["view", "click", "click"])
        assert plain_scorer.behavior_score(lead.engagement, now) == pytest.approx(50)

    def test_recency_decays_two_points_a_day(self, plain_scorer, make_lead, now):
        lead = make_lead(at=now - timedelta(days=3))
        assert plain_scorer.behavior_score(lead.engagement, now) == pytest.approx(14)

    def test_recency_floors_at_zero(self, plain_scorer, make_lead, now):
        lead = make_lead(at=now - timedelta(days=40))
        assert plain_scorer.behavior_score(lead.engagement, now) == 0

    def test_session_and_time_caps(self, plain_scorer, make_lead, now):
        lead = make_lead(sessions=50, extra_seconds=10 * 3600)
        # 30 + 20 + 0 + 25
        assert plain_scorer.behavior_score(lead.engagement, now) == pytest.approx(75)

    def test_days_since_floors(self, now):
        assert days_since(now - timedelta(days=6, hours=23), now) == 6
        assert days_since(now - timedelta(days=7), now) == 7


class TestQualificationScore:
    def test_full_answers(self, plain_scorer):
        qual = QualificationData(
            experience=ExperienceLevel.INTERMEDIATE,
            goals=["career-switch", "promotion"],
            timeline=Timeline.IMMEDIATE,
            budget=BudgetTier.PREMIUM,
        )
        assert plain_scorer.qualification_score(qual) == pytest.approx(80)

    def test_all_unknown(self, plain_scorer):
        assert plain_scorer.qualification_score(QualificationData()) == pytest.approx(26)

    def test_unrecognised_answers_fall_back(self):
        qual = QualificationData(experience="guru", timeline="someday", budget="lots")
        assert qual.experience == ExperienceLevel.UNKNOWN
        assert qual.timeline == Timeline.UNKNOWN
        assert qual.budget == BudgetTier.UNKNOWN

    def test_goal_alignment_counts_distinct_matches(self):
        assert LeadScorer.goal_alignment_score(["promotion", "promotion", "hobby"]) == 25
        assert LeadScorer.goal_alignment_score(
            ["career-switch", "skill-upgrade", "certification", "promotion"]
        ) == 100


# ── Totals and classification ─────────────────────────

class TestLeadScorer:
    def test_empty_engagement(self, plain_scorer, now):
        # only the recency component contributes
        engagement = EngagementData(last_active=now)
        assert plain_scorer.score(engagement, None, now) == pytest.approx(6)

    def test_missing_qualification_contributes_zero(self, plain_scorer, make_lead, now):
        lead = make_lead(content=[("course", 100, 300, 100)])
        breakdown = plain_scorer.breakdown(lead.engagement, None, now)
        assert breakdown.qualification is None
        assert breakdown.total == pytest.approx(breakdown.content * 0.4 + breakdown.behavior * 0.3)

    def test_hot_lead(self, plain_scorer, hot_lead, now):
        score = plain_scorer.score(hot_lead.engagement, hot_lead.qualification, now)
        assert score == pytest.approx(91)
        assert plain_scorer.classify(score) == LeadStatus.HOT

    def test_score_stays_in_range(self, plain_scorer, make_lead, now):
        lead = make_lead(
            sessions=100,
            extra_seconds=10 ** 6,
            content=[("course", 1000, 10 ** 6, 1000)],
            actions=["view", "click", "download", "share", "comment", "like"],
            qualification=QualificationData(
                experience="advanced",
                goals=["career-switch", "skill-upgrade", "certification", "promotion"],
                timeline="immediate",
                budget="premium",
            ),
        )
        assert 0 <= plain_scorer.score(lead.engagement, lead.qualification, now) <= 100

    @pytest.mark.parametrize("completion,time_spent,engagement_score,sessions,total_seconds,last_active_offset", [
        (-50, -300, -100, -5, -1000, timedelta(0)),
        (-1, 0, 0, 0, 0, timedelta(days=30)),
        (500, -10 ** 6, 10 ** 6, -1, 10 ** 9, timedelta(days=-400)),
        (float("-inf"), -1, -1, -10 ** 6, -1, timedelta(hours=1)),
    ])
    def test_negative_and_out_of_range_inputs(
        self, plain_scorer, now, completion, time_spent, engagement_score, sessions, total_seconds, last_active_offset
    ):
        engagement = EngagementData(
            content_viewed=[
                ContentEngagement("c1", "course", "Course", time_spent, completion, engagement_score, now),
                ContentEngagement("c2", "mystery", "Unknown", time_spent, completion, engagement_score, now),
            ],
            time_spent=total_seconds,
            session_count=sessions,
            last_active=now + last_active_offset,
        )
        qualification = QualificationData(experience="guru", timeline="someday", budget="lots")

        breakdown = plain_scorer.breakdown(engagement, qualification, now)
        assert 0 <= breakdown.content <= 100
        assert 0 <= breakdown.behavior <= 100
        assert 0 <= breakdown.qualification <= 100
        assert 0 <= breakdown.total <= 100
        assert plain_scorer.score(engagement, qualification, now) == breakdown.total

    def test_deterministic(self, plain_scorer, hot_lead, now):
        first = plain_scorer.score(hot_lead.engagement, hot_lead.qualification, now)
        second = plain_scorer.score(hot_lead.engagement, hot_lead.qualification, now)
        assert first == second

    @pytest.mark.parametrize("score,status", [
        (80, LeadStatus.HOT),
        (79.99, LeadStatus.WARM),
        (60, LeadStatus.WARM),
        (40, LeadStatus.QUALIFIED),
        (39.9, LeadStatus.COLD),
        (0, LeadStatus.COLD),
    ])
    def test_classify_thresholds(self, plain_scorer, score, status):
        assert plain_scorer.classify(score) == status

    def test_terminal_status_is_kept(self, plain_scorer, hot_lead):
        hot_lead.status = LeadStatus.CONVERTED
        assert plain_scorer.status_for(hot_lead, 95) == LeadStatus.CONVERTED


class TestAssess:
    def test_assess_does_not_modify_lead(self, scorer, hot_lead, now):
        assessment = scorer.assess(hot_lead, now)
        assert assessment.score == pytest.approx(91)
        assert assessment.status == LeadStatus.HOT
        assert hot_lead.score == 0
        assert hot_lead.status == LeadStatus.COLD

    def test_hot_lead_next_actions(self, scorer, hot_lead, now):
        actions = scorer.assess(hot_lead, now).next_actions
        assert actions == [
            "Send consultation booking link",
            "Notify sales team",
            "Send personalized content recommendations",
        ]

    def test_hot_lead_gets_consultation_offer(self, scorer, hot_lead, now):
        recommendations = scorer.assess(hot_lead, now).recommendations
        assert [r.title for r in recommendations] == ["Schedule Career Consultation"]

    def test_email_capture_action_for_repeat_anonymous_visitor(self, scorer, make_lead, now):
        lead = make_lead(sessions=3)
        assert "Trigger email capture popup" in scorer.assess(lead, now).next_actions
