from __future__ import annotations

from datetime import UTC, datetime

import pytest

from trusteye.models import Campaign, ContentDraft, GateDetails, GateResult
from trusteye.receipts import build_receipt
from trusteye.state_store import CampaignStateStore

DECIDED = datetime(2026, 4, 2, 9, 30, tzinfo=UTC)


def _published_ready() -> Campaign:
    return Campaign(
        campaign_id="CMP-store001",
        name="Win-Back Campaign - 2026-04-02",
        content=ContentDraft(subject="We miss you, [First Name]", body="Come back soon.", cta="Schedule a Visit"),
        gate_results=[
            GateResult(gate=1, passed=True, timestamp=DECIDED),
            GateResult(gate=2, passed=True, details=GateDetails(brand_score=91), timestamp=DECIDED),
            GateResult(gate=3, passed=True, details=GateDetails(approved_by="ops@trusteye.com"), timestamp=DECIDED),
        ],
    )


def test_campaign_round_trip(store: CampaignStateStore) -> None:
    campaign = _published_ready()
    path = store.save_campaign(campaign)
    assert path.name == "CMP-store001.json"
    loaded = store.load_campaign("CMP-store001")
    assert loaded.model_dump() == campaign.model_dump()
    assert store.has_campaign("CMP-store001")
    assert [item.campaign_id for item in store.list_campaigns()] == ["CMP-store001"]


def test_missing_and_corrupt_campaigns(store: CampaignStateStore) -> None:
    with pytest.raises(FileNotFoundError):
        store.load_campaign("CMP-missing")
    store.campaign_path("CMP-broken").write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError):
        store.load_campaign("CMP-broken")


def test_unsafe_ids_are_rejected(store: CampaignStateStore) -> None:
    with pytest.raises(ValueError):
        store.campaign_path("../escape")
    with pytest.raises(ValueError):
        store.receipt_path("TR/1")


def test_receipts_are_write_once(store: CampaignStateStore) -> None:
    receipt = build_receipt(_published_ready(), approver="ops@trusteye.com")
    store.write_receipt(receipt)
    assert store.read_receipt(receipt.receipt_id).model_dump() == receipt.model_dump()
    assert store.list_receipts() == [receipt.receipt_id]
    with pytest.raises(FileExistsError):
        store.write_receipt(receipt)


def test_event_log_filters_by_campaign(store: CampaignStateStore) -> None:
    assert store.read_events() == []
    store.append_event("campaign_created", campaign_id="CMP-a", archetype="referral")
    store.append_event("content_drafted", channels=["social"])
    store.append_event("published", campaign_id="CMP-a", receipt_id="TR-1-ABCDEF")
    events = store.read_events("CMP-a")
    assert [event["event"] for event in events] == ["campaign_created", "published"]
    assert events[0]["archetype"] == "referral"
    assert len(store.read_events()) == 3
