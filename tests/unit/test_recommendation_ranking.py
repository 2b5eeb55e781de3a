from datetime import UTC, datetime

from app.features.business_coach.domain.snapshot import (
    CampaignIssue,
    CampaignsSection,
    ConnectionIssue,
    ConnectionsSection,
    LeadsSection,
    PropertiesSection,
    StaleLead,
    StaleProperty,
    TasksSection,
    TaskStats,
)
from app.features.business_coach.pipeline.classification import ClassifiedData
from app.features.business_coach.pipeline.ranking import RankingService


def _stale_lead(lead_id, score="WARM", waiting=5):
    return StaleLead(
        id=lead_id,
        kind="ecommerce",
        name=f"Lead {lead_id}",
        status="NEW",
        score=score,
        days_since_created=waiting,
        days_since_contact=None,
        source="web",
    )


def _issue(campaign_id, kind, severity="high"):
    return CampaignIssue(
        campaign_id=campaign_id,
        name=f"Campaign {campaign_id}",
        provider="META",
        status="ACTIVE",
        issue_kind=kind,
        severity=severity,
        metric=60.0,
        suggestion="Consider pausing campaign or optimizing for conversions",
    )


def _classified(stale_leads=(), issues=(), stale_properties=(), connection_issues=(), overdue=0):
    return ClassifiedData(
        leads=LeadsSection(stale_list=tuple(stale_leads)),
        campaigns=CampaignsSection(issues=tuple(issues)),
        properties=PropertiesSection(stale_list=tuple(stale_properties)),
        connections=ConnectionsSection(issues=tuple(connection_issues)),
        tasks=TasksSection(stats=TaskStats(overdue=overdue)),
    )


def test_no_signals_no_recommendations():
    assert RankingService().rank(_classified(), datetime.now(UTC)) == ()


def test_follow_ups_limited_to_three_and_hot_is_high():
    leads = [_stale_lead("hot", score="HOT")] + [_stale_lead(f"l{i}") for i in range(4)]

    recs = RankingService().rank(_classified(stale_leads=leads), datetime.now(UTC))

    assert [rec.id for rec in recs] == [
        "follow_up_lead_hot",
        "follow_up_lead_l0",
        "follow_up_lead_l1",
    ]
    assert recs[0].priority == "high"
    assert recs[0].action.tool_name == "update_lead_status"
    assert recs[0].action.params["status"] == "CONTACTED"
    assert recs[0].entity_ref.entity_id == "hot"


def test_only_pausable_issues_become_pause_recommendations():
    issues = [
        _issue("c1", "low_ctr", severity="medium"),
        _issue("c2", "overspend"),
        _issue("c2", "no_traffic"),
        _issue("c3", "no_traffic"),
        _issue("c4", "overspend"),
    ]

    recs = RankingService().rank(_classified(issues=issues), datetime.now(UTC))

    assert [rec.id for rec in recs] == ["pause_campaign_c2", "pause_campaign_c3"]
    assert recs[0].action.params["reason"] == "Coach recommendation: overspend"


def test_connection_fix_targets_connection_id():
    connection = ConnectionIssue(
        id="conn-9", provider="google_ads", status="ERROR", error="Token revoked", days_since_update=5
    )

    recs = RankingService().rank(_classified(connection_issues=[connection]), datetime.now(UTC))

    assert len(recs) == 1
    assert recs[0].id == "fix_connection_conn-9"
    assert recs[0].priority == "high"
    assert recs[0].action.params == {"entity_type": "connection", "entity_id": "conn-9"}
    assert "5 days" in recs[0].description


def test_task_review_needs_more_than_three_overdue():
    service = RankingService()
    now = datetime.now(UTC)

    assert service.rank(_classified(overdue=3), now) == ()

    recs = service.rank(_classified(overdue=4), now)
    assert [rec.id for rec in recs] == ["create_task_overdue_review"]
    assert recs[0].action.params["tags"] == ["coach-generated", "task-management"]


def test_property_update_lists_missing_fields():
    prop = StaleProperty(
        id="p1",
        title="Garden flat",
        address=None,
        status="ACTIVE",
        days_since_update=21,
        missing_fields=("description", "area"),
    )

    recs = RankingService().rank(_classified(stale_properties=[prop]), datetime.now(UTC))

    assert recs[0].type == "update_property"
    assert recs[0].description == (
        "Property hasn't been updated in 21 days and is missing: description, area"
    )


def test_cap_keeps_one_of_each_type_before_filling_by_priority():
    connection = ConnectionIssue(
        id="conn-1", provider="google_ads", status="ERROR", error="x", days_since_update=5
    )
    classified = _classified(
        stale_leads=[
            _stale_lead("hot", score="HOT", waiting=6),
            _stale_lead("a", waiting=12),
            _stale_lead("b", waiting=9),
        ],
        issues=[_issue("camp-1", "overspend")],
        connection_issues=[connection],
        overdue=5,
    )

    recs = RankingService().rank(classified, datetime.now(UTC))

    assert [rec.id for rec in recs] == [
        "follow_up_lead_hot",
        "pause_campaign_camp-1",
        "fix_connection_conn-1",
        "follow_up_lead_a",
        "create_task_overdue_review",
    ]
    assert [rec.priority for rec in recs] == ["high", "high", "high", "medium", "medium"]
    assert {rec.type for rec in recs} == {
        "follow_up_lead",
        "pause_campaign",
        "fix_connection",
        "create_task",
    }


def test_results_sorted_by_priority_and_ids_unique():
    issues = [_issue("c1", "no_traffic", severity="high")]
    leads = [_stale_lead("w1"), _stale_lead("w2")]

    recs = RankingService().rank(_classified(stale_leads=leads, issues=issues), datetime.now(UTC))

    assert recs[0].id == "pause_campaign_c1"
    assert len({rec.id for rec in recs}) == len(recs)
