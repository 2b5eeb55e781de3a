from datetime import UTC, date, datetime, timedelta

from app.features.business_coach.domain.records import (
    CampaignRow,
    ConnectionRow,
    EcommerceLeadRow,
    InsightRow,
    PropertyRow,
    RawRecords,
    RealEstateLeadRow,
    TaskRow,
)
from app.features.business_coach.pipeline.classification import ClassificationService
from app.features.business_coach.pipeline.classification.service import as_utc


def _campaign(now, status="ACTIVE", last_sync_days=1, campaign_id="c1", external_id="x1"):
    return CampaignRow(
        id=campaign_id,
        external_id=external_id,
        name=f"Campaign {campaign_id}",
        provider="META",
        status=status,
        created_at=now - timedelta(days=60),
        updated_at=now - timedelta(days=1),
        last_sync_at=None if last_sync_days is None else now - timedelta(days=last_sync_days),
    )


def _insight(now, days_ago, external_id="x1", spend=0.0, impressions=0, clicks=0, conversions=0):
    return InsightRow(
        id=f"i-{external_id}-{days_ago}",
        date=now - timedelta(days=days_ago),
        campaign_external_id=external_id,
        provider="META",
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        conversions=conversions,
    )


def test_lead_staleness_uses_contact_then_creation():
    service = ClassificationService()
    now = datetime.now(UTC)

    raw = RawRecords(
        ecommerce_leads=[
            # created 10 days ago but contacted yesterday: fresh
            EcommerceLeadRow(
                id="contacted",
                source="web",
                status="CONTACTED",
                created_at=now - timedelta(days=10),
                updated_at=now,
                last_contact_at=now - timedelta(days=1),
            ),
            # never contacted, exactly 3 days old: not yet stale
            EcommerceLeadRow(
                id="boundary",
                source="web",
                status="NEW",
                created_at=now - timedelta(days=3),
                updated_at=now,
            ),
        ],
        real_estate_leads=[
            RealEstateLeadRow(
                id="waiting",
                source="yad2",
                status="NEW",
                created_at=now - timedelta(days=5),
                updated_at=now,
            ),
        ],
    )

    leads = service.classify(raw, now).leads

    assert [lead.id for lead in leads.stale_list] == ["waiting"]
    assert leads.stats.stale == 1
    assert leads.stats.total == 3
    assert leads.stale_list[0].days_since_contact is None
    assert leads.stale_list[0].days_since_created == 5


def test_hot_leads_sort_first_then_longest_waiting():
    service = ClassificationService()
    now = datetime.now(UTC)

    def lead(lead_id, score, created_days):
        return RealEstateLeadRow(
            id=lead_id,
            source="yad2",
            status="NEW",
            score=score,
            created_at=now - timedelta(days=created_days),
            updated_at=now,
        )

    raw = RawRecords(
        real_estate_leads=[lead("warm-old", "WARM", 20), lead("hot-new", "HOT", 4), lead("cold", "COLD", 9)]
    )

    stale = service.classify(raw, now).leads.stale_list

    assert [item.id for item in stale] == ["hot-new", "warm-old", "cold"]


def test_stale_list_capped_at_ten():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        ecommerce_leads=[
            EcommerceLeadRow(
                id=f"l{i}",
                source="web",
                status="NEW",
                created_at=now - timedelta(days=5 + i),
                updated_at=now,
            )
            for i in range(15)
        ]
    )

    leads = service.classify(raw, now).leads

    assert len(leads.stale_list) == 10
    assert leads.stats.stale == 15


def test_low_ctr_detected_above_impression_floor():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        campaigns=[_campaign(now)],
        insights=[_insight(now, 2, spend=10.0, impressions=1500, clicks=5, conversions=1)],
    )

    issues = service.classify(raw, now).campaigns.issues

    assert [issue.issue_kind for issue in issues] == ["low_ctr"]
    assert issues[0].severity == "medium"
    assert issues[0].metric == 0.33


def test_overspend_without_conversions_is_high_severity():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        campaigns=[_campaign(now)],
        insights=[_insight(now, 1, spend=60.0, impressions=5000, clicks=100, conversions=0)],
    )

    issues = service.classify(raw, now).campaigns.issues

    assert [issue.issue_kind for issue in issues] == ["overspend"]
    assert issues[0].severity == "high"


def test_paused_campaign_only_checked_for_sync():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(campaigns=[_campaign(now, status="PAUSED", last_sync_days=None)])

    issues = service.classify(raw, now).campaigns.issues

    assert [issue.issue_kind for issue in issues] == ["stale"]
    assert issues[0].metric == 999


def test_insights_outside_seven_days_do_not_count_toward_issues():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        campaigns=[_campaign(now)],
        insights=[
            _insight(now, 1, spend=5.0, impressions=500, clicks=20, conversions=1),
            _insight(now, 20, spend=100.0, impressions=10, clicks=1, conversions=0),
        ],
    )

    campaigns = service.classify(raw, now).campaigns

    assert campaigns.issues == ()
    assert campaigns.stats.total_spend_7d == 5.0
    assert campaigns.stats.total_spend_30d == 105.0


def test_day_only_insight_dates_are_windowed_like_timestamps():
    service = ClassificationService()
    now = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)
    raw = RawRecords(
        campaigns=[_campaign(now)],
        insights=[
            InsightRow(
                id="i-recent", date=date(2024, 6, 14), campaign_external_id="x1", provider="META",
                spend=5.0, impressions=500, clicks=20, conversions=1,
            ),
            InsightRow(
                id="i-older", date=date(2024, 5, 20), campaign_external_id="x1", provider="META",
                spend=100.0, impressions=10, clicks=1,
            ),
        ],
    )

    stats = service.classify(raw, now).campaigns.stats

    assert stats.total_spend_7d == 5.0
    assert stats.total_spend_30d == 105.0


def test_as_utc_reads_plain_dates_as_utc_midnight():
    assert as_utc(date(2024, 6, 14)) == datetime(2024, 6, 14, tzinfo=UTC)
    assert as_utc(datetime(2024, 6, 14, 9, 30)) == datetime(2024, 6, 14, 9, 30, tzinfo=UTC)

def test_issues_sorted_by_severity():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        campaigns=[
            _campaign(now, campaign_id="slow", external_id="x-slow", last_sync_days=30),
            _campaign(now, campaign_id="quiet", external_id="x-quiet"),
        ],
        insights=[
            _insight(now, 1, external_id="x-slow", spend=5.0, impressions=800, clicks=30, conversions=1),
            _insight(now, 1, external_id="x-quiet", spend=1.0, impressions=10, clicks=0),
        ],
    )

    issues = service.classify(raw, now).campaigns.issues

    assert [issue.severity for issue in issues] == ["high", "low"]
    assert issues[0].campaign_id == "quiet"


def test_top_performers_need_conversions_and_ctr():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        campaigns=[
            _campaign(now, campaign_id="good", external_id="x-good"),
            _campaign(now, campaign_id="meh", external_id="x-meh"),
        ],
        insights=[
            _insight(now, 1, external_id="x-good", spend=20.0, impressions=1000, clicks=30, conversions=4),
            _insight(now, 1, external_id="x-meh", spend=20.0, impressions=1000, clicks=15, conversions=4),
        ],
    )

    performers = service.classify(raw, now).campaigns.top_performers

    assert [p.campaign_id for p in performers] == ["good"]
    assert performers[0].ctr == 3.0


def test_property_missing_fields_and_staleness():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        properties=[
            PropertyRow(
                id="p1",
                status="ACTIVE",
                title="Old listing",
                description="short",
                bedrooms=2,
                created_at=now - timedelta(days=90),
                updated_at=now - timedelta(days=20),
            ),
            PropertyRow(
                id="p2",
                status="SOLD",
                description="d" * 60,
                bedrooms=3,
                bathrooms=1,
                area=80.0,
                created_at=now - timedelta(days=90),
                updated_at=now - timedelta(days=40),
            ),
        ]
    )

    properties = service.classify(raw, now).properties

    assert [p.id for p in properties.stale_list] == ["p1"]
    assert properties.stale_list[0].missing_fields == ("description", "bathrooms", "area")
    assert properties.stats.missing_info == 1
    assert properties.stats.sold == 1


def test_connection_issues_only_for_error_or_expired():
    service = ClassificationService()
    now = datetime.now(UTC)
    raw = RawRecords(
        connections=[
            ConnectionRow(id="ok", provider="meta", status="CONNECTED", created_at=now),
            ConnectionRow(
                id="bad",
                provider="google_ads",
                status="EXPIRED",
                created_at=now - timedelta(days=30),
                updated_at=now - timedelta(days=3),
            ),
        ]
    )

    connections = service.classify(raw, now).connections

    assert [issue.id for issue in connections.issues] == ["bad"]
    assert connections.issues[0].error == "Connection expired"
    assert connections.issues[0].days_since_update == 3
    assert connections.stats.connected == 1
    assert connections.stats.expired == 1


def test_overdue_tasks_exclude_completed_and_undated():
    service = ClassificationService()
    now = datetime.now(UTC)

    def task(task_id, status, due_days_ago, completed_days_ago=None):
        return TaskRow(
            id=task_id,
            title=task_id,
            status=status,
            created_at=now - timedelta(days=30),
            updated_at=now,
            due_date=None if due_days_ago is None else now - timedelta(days=due_days_ago),
            completed_at=None if completed_days_ago is None else now - timedelta(days=completed_days_ago),
        )

    raw = RawRecords(
        tasks=[
            task("late", "PENDING", 2),
            task("later", "IN_PROGRESS", 6),
            task("done", "COMPLETED", 5, completed_days_ago=1),
            task("someday", "PENDING", None),
        ]
    )

    tasks = service.classify(raw, now).tasks

    assert [t.id for t in tasks.overdue_list] == ["later", "late"]
    assert tasks.stats.overdue == 2
    assert tasks.stats.pending == 3
    assert tasks.stats.completed_7d == 1


def test_classification_is_deterministic_for_fixed_clock():
    service = ClassificationService()
    now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
    raw = RawRecords(
        ecommerce_leads=[
            EcommerceLeadRow(
                id="l1",
                source="web",
                status="NEW",
                created_at=now - timedelta(days=6),
                updated_at=now,
            )
        ],
        campaigns=[_campaign(now)],
        insights=[_insight(now, 1, spend=80.0, impressions=3000, clicks=90)],
    )

    assert service.classify(raw, now) == service.classify(raw, now)
