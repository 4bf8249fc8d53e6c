from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from trusteye.models import Archetype, Campaign, ContentDraft, GateDetails, GateResult
from trusteye.receipts import (
    build_receipt,
    canonical_body,
    canonical_json,
    content_hash,
    new_receipt_id,
    string_hash,
    to_base36,
)

DECIDED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _approved_campaign() -> Campaign:
    return Campaign(
        campaign_id="CMP-abc12345",
        name="Referral Campaign - 2026-03-01",
        archetype=Archetype.REFERRAL,
        audience_description="5-star reviewers",
        audience_size=120,
        channels=["email", "website"],
        content=ContentDraft(subject="Thank you, [First Name]", body="Refer a friend today.", cta="Refer a Friend"),
        brand_score=92,
        gate_results=[
            GateResult(gate=1, passed=True, timestamp=DECIDED),
            GateResult(gate=2, passed=True, details=GateDetails(brand_score=92), timestamp=DECIDED),
            GateResult(gate=3, passed=True, details=GateDetails(approved_by="ops@trusteye.com"), timestamp=DECIDED),
        ],
    )


def test_receipt_id_format() -> None:
    receipt_id = new_receipt_id(now_ms=1_700_000_000_000)
    assert re.fullmatch(r"TR-[0-9A-Z]+-[0-9A-F]{6}", receipt_id)
    assert receipt_id.startswith(f"TR-{to_base36(1_700_000_000_000)}-")
    assert receipt_id == receipt_id.upper()


def test_base36() -> None:
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    with pytest.raises(ValueError):
        to_base36(-1)


def test_string_hash_is_32_bit_signed() -> None:
    assert string_hash("") == 0
    assert string_hash("a") == 97
    assert string_hash("ab") == 97 * 31 + 98
    value = string_hash("x" * 200)
    assert -(2**31) <= value < 2**31


def test_receipt_body_is_byte_identical_for_identical_inputs() -> None:
    campaign = _approved_campaign()
    first = build_receipt(campaign, approver="ops@trusteye.com")
    second = build_receipt(campaign, approver="ops@trusteye.com")
    assert first.receipt_id != second.receipt_id
    assert canonical_body(first) == canonical_body(second)
    assert len(first.gates) == 3
    assert first.content_hash == content_hash(campaign)
    assert re.fullmatch(r"[0-9a-f]{8}", first.content_hash)


def test_content_change_changes_hash() -> None:
    campaign = _approved_campaign()
    edited = campaign.model_copy(update={"content": ContentDraft(subject="Thanks!", body="Refer a friend.")})
    assert content_hash(campaign) != content_hash(edited)


def test_receipt_requires_all_gates_passed() -> None:
    campaign = _approved_campaign()
    pending = campaign.model_copy(update={"gate_results": campaign.gate_results[:2]})
    with pytest.raises(ValueError):
        build_receipt(pending, approver="ops@trusteye.com")


def test_receipt_is_frozen() -> None:
    receipt = build_receipt(_approved_campaign(), approver="ops@trusteye.com")
    with pytest.raises(ValidationError):
        receipt.approver = "someone-else"  # type: ignore[misc]


def test_canonical_json_sorts_keys() -> None:
    assert canonical_json({"b": 1, "a": [2, 1]}) == '{"a":[2,1],"b":1}'
