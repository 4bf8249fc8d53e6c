from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Any

import rfc8785

from .models import Campaign, Receipt, ReceiptGate, utc_now

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError(f"base36 encoding requires a non-negative integer, got: {value}")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def new_receipt_id(now_ms: int | None = None) -> str:
    """Uppercase ``TR-<base36 millis>-<random>`` identifier."""
    millis = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    return f"TR-{to_base36(millis)}-{uuid.uuid4().hex[:6].upper()}"


def string_hash(text: str) -> int:
    """32-bit signed rolling string hash (``h = h * 31 + c``).

    Tamper evidence only; this is not a cryptographic digest.
    """
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    return value - 0x1_0000_0000 if value & 0x8000_0000 else value


def canonical_json(value: Any) -> str:
    """RFC 8785 canonical JSON for JSON-primitive structures."""
    return rfc8785.dumps(value).decode("utf-8")


def content_hash(campaign: Campaign) -> str:
    payload = {
        "campaign_id": campaign.campaign_id,
        "name": campaign.name,
        "archetype": campaign.archetype.value,
        "audience": campaign.audience_description,
        "channels": list(campaign.channels),
        "content": campaign.content.model_dump(mode="json") if campaign.content else None,
    }
    return f"{string_hash(canonical_json(payload)) & 0xFFFFFFFF:08x}"


def build_receipt(
    campaign: Campaign,
    *,
    approver: str,
    receipt_id: str | None = None,
    issued_at: datetime | None = None,
) -> Receipt:
    """Build the immutable audit record for a campaign that cleared all three gates.

    Everything except ``receipt_id`` and ``issued_at`` is a pure function of
    the campaign and approver, so rebuilding for the same inputs yields a
    byte-identical :func:`canonical_body`.

    Raises:
        ValueError: If any of the three gates is missing or did not pass.
    """
    gates: list[ReceiptGate] = []
    for number in (1, 2, 3):
        result = campaign.gate(number)
        if result is None or result.passed is not True:
            raise ValueError(f"Cannot issue a receipt for {campaign.campaign_id}: gate {number} has not passed")
        gates.append(ReceiptGate(gate=number, name=result.name, passed=True, decided_at=result.timestamp))
    return Receipt(
        receipt_id=receipt_id or new_receipt_id(),
        issued_at=issued_at or utc_now(),
        campaign_id=campaign.campaign_id,
        campaign_name=campaign.name,
        archetype=campaign.archetype,
        audience_description=campaign.audience_description,
        audience_size=campaign.audience_size,
        channels=tuple(campaign.channels),
        brand_score=campaign.brand_score,
        gates=tuple(gates),
        approver=approver,
        content_hash=content_hash(campaign),
    )


def canonical_body(receipt: Receipt) -> str:
    return canonical_json(receipt.body())


def format_receipt(receipt: Receipt) -> str:
    lines = [
        f"**Receipt ID:** {receipt.receipt_id}",
        f"**Campaign:** {receipt.campaign_name}",
        f"**Audience:** {receipt.audience_description} ({receipt.audience_size})",
        f"**Channels:** {', '.join(receipt.channels)}",
        f"**Brand Score:** {receipt.brand_score if receipt.brand_score is not None else 'N/A'}",
    ]
    lines.extend(f"Gate {gate.gate} ({gate.name}): passed at {gate.decided_at.isoformat()}" for gate in receipt.gates)
    lines.append(f"**Approved by:** {receipt.approver}")
    lines.append(f"**Content hash:** {receipt.content_hash}")
    return "\n".join(lines)
