from datetime import UTC, datetime, timedelta

from app.features.business_coach.domain.records import (
    EcommerceLeadRow,
    RawRecords,
    RealEstateLeadRow,
    normalize_lead,
)
from app.features.business_coach.pipeline.classification import classification_service


def test_ecommerce_name_composed_from_first_and_last():
    now = datetime.now(UTC)
    row = EcommerceLeadRow(
        id="l1",
        source="website",
        status="new",
        first_name="Dana",
        last_name="Levi",
        created_at=now,
        updated_at=now,
    )

    lead = normalize_lead(row)

    assert lead.kind == "ecommerce"
    assert lead.name == "Dana Levi"
    assert lead.status == "NEW"


def test_full_name_wins_over_parts():
    now = datetime.now(UTC)
    row = EcommerceLeadRow(
        id="l1",
        source="website",
        status="NEW",
        full_name="  Dana L.  ",
        first_name="Dana",
        last_name="Levi",
        created_at=now,
        updated_at=now,
    )

    assert normalize_lead(row).name == "Dana L."


def test_missing_name_is_none():
    now = datetime.now(UTC)
    row = RealEstateLeadRow(id="l2", source="yad2", status="NEW", created_at=now, updated_at=now)

    lead = normalize_lead(row)

    assert lead.kind == "real_estate"
    assert lead.name is None


def test_score_defaults_to_cold_and_is_case_insensitive():
    now = datetime.now(UTC)
    rows = [
        RealEstateLeadRow(id="a", source="s", status="NEW", score="hot", created_at=now, updated_at=now),
        RealEstateLeadRow(id="b", source="s", status="NEW", score="Warm", created_at=now, updated_at=now),
        RealEstateLeadRow(id="c", source="s", status="NEW", score=None, created_at=now, updated_at=now),
        RealEstateLeadRow(id="d", source="s", status="NEW", score="lukewarm", created_at=now, updated_at=now),
    ]

    assert [normalize_lead(row).score for row in rows] == ["HOT", "WARM", "COLD", "COLD"]


def test_uncontacted_lead_is_judged_on_age():
    now = datetime.now(UTC)
    row = EcommerceLeadRow(
        id="l1",
        source="website",
        status="NEW",
        created_at=now - timedelta(days=10),
        updated_at=now,
    )

    lead = normalize_lead(row)

    assert lead.last_contact_at is None
    assert classification_service.is_stale_lead(lead, now) is True


def test_notes_are_truncated_to_preview():
    now = datetime.now(UTC)
    row = EcommerceLeadRow(
        id="l1", source="website", status="NEW", notes="x" * 150, created_at=now, updated_at=now
    )

    notes = normalize_lead(row).notes

    assert notes == "x" * 100 + "..."


def test_raw_records_merge_both_sources():
    now = datetime.now(UTC)
    raw = RawRecords(
        ecommerce_leads=[
            EcommerceLeadRow(id="e1", source="web", status="NEW", created_at=now, updated_at=now)
        ],
        real_estate_leads=[
            RealEstateLeadRow(id="r1", source="yad2", status="NEW", created_at=now, updated_at=now)
        ],
    )

    leads = raw.leads()

    assert [(lead.id, lead.kind) for lead in leads] == [("e1", "ecommerce"), ("r1", "real_estate")]
