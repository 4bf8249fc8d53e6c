from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ErrorKind


def utc_now() -> datetime:
    return datetime.now(UTC)


class WorkflowStage(str, Enum):
    NO_CAMPAIGN = "no_campaign"
    CAMPAIGN_CREATED = "campaign_created"
    CONTENT_READY = "content_ready"
    GATE_FAILED = "gate_failed"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    PUBLISHED = "published"


class Page(str, Enum):
    STUDIO = "studio"
    CAMPAIGNS = "campaigns"
    AUDIENCES = "audiences"
    CONTENT = "content"
    AUTOMATIONS = "automations"
    ANALYTICS = "analytics"
    INTEGRATIONS = "integrations"


class PrimaryIntent(str, Enum):
    CAMPAIGN = "campaign"
    CONTENT = "content"
    AUDIENCE = "audience"
    AUTOMATION = "automation"
    ANALYTICS = "analytics"
    INTEGRATION = "integration"
    CHAT = "chat"


class Archetype(str, Enum):
    REFERRAL = "referral"
    RECOVERY = "recovery"
    CONQUEST = "conquest"
    WINBACK = "winback"
    LOYALTY = "loyalty"
    SERVICE = "service"
    WELCOME = "welcome"
    BIRTHDAY = "birthday"
    HOLIDAY = "holiday"
    CUSTOM = "custom"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    RUNNING = "running"
    COMPLETED = "completed"


class MessageOrigin(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


GATE_NAMES: dict[int, str] = {1: "Rules Validation", 2: "Brand Review", 3: "Human Approval"}


# ---------------------------------------------------------------------------
# Campaign aggregate
# ---------------------------------------------------------------------------


class ContentDraft(BaseModel):
    """Channel content. ``subject``/``body``/``cta`` carry the email (and banner) copy."""

    subject: str = ""
    body: str = ""
    cta: str = ""
    sms: str = ""
    social: str = ""
    hashtags: list[str] = Field(default_factory=list)

    @property
    def has_body(self) -> bool:
        return bool(self.body.strip() or self.sms.strip() or self.social.strip())

    def text_fields(self) -> dict[str, str]:
        return {"subject": self.subject, "body": self.body, "cta": self.cta, "sms": self.sms, "social": self.social}


class GateDetails(BaseModel):
    errors: list[str] = Field(default_factory=list)
    guardrail_blockers: list[str] = Field(default_factory=list)
    guardrail_warnings: list[str] = Field(default_factory=list)
    brand_score: int | None = None
    brand_score_details: dict[str, int] = Field(default_factory=dict)
    risk_level: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    status: str | None = None
    approved_by: str | None = None
    rejected_by: str | None = None
    reason: str | None = None
    notification_sent: bool = False
    error: str | None = None


class GateResult(BaseModel):
    gate: Literal[1, 2, 3]
    # None marks a pending gate 3 (approval requested, no decision yet).
    passed: bool | None
    details: GateDetails = Field(default_factory=GateDetails)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def name(self) -> str:
        return GATE_NAMES[self.gate]


def check_gate_order(gate_results: list[GateResult]) -> None:
    """Raise ValueError unless gate N is only present after a passed gate N-1."""
    for index, result in enumerate(gate_results):
        if result.gate != index + 1:
            raise ValueError(f"gate_results out of order: expected gate {index + 1}, got gate {result.gate}")
        if index > 0 and gate_results[index - 1].passed is not True:
            raise ValueError(f"gate {result.gate} recorded without gate {index} passing")


class Campaign(BaseModel):
    campaign_id: str
    name: str
    archetype: Archetype = Archetype.CUSTOM
    label: str = ""
    audience_description: str = "target customers"
    audience_name: str = ""
    audience_id: str | None = None
    audience_size: int = 0
    channels: list[str] = Field(default_factory=lambda: ["email"])
    requested_channels: list[str] = Field(default_factory=list)
    invalid_channels: list[str] = Field(default_factory=list)
    content: ContentDraft | None = None
    brand_score: int | None = None
    brand_score_details: dict[str, int] = Field(default_factory=dict)
    gate_results: list[GateResult] = Field(default_factory=list)
    status: CampaignStatus = CampaignStatus.DRAFT
    original_request: str = ""
    custom_instructions: list[str] = Field(default_factory=list)
    revision: int = 0
    reviewed_revision: int | None = None
    receipt_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    executed_at: datetime | None = None

    @model_validator(mode="after")
    def _gate_order(self) -> "Campaign":
        check_gate_order(self.gate_results)
        return self

    def gate(self, number: int) -> GateResult | None:
        for result in self.gate_results:
            if result.gate == number:
                return result
        return None

    @property
    def channel_display(self) -> str:
        return " + ".join(channel.capitalize() for channel in self.channels) or "Email"


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------


class ReceiptGate(BaseModel):
    model_config = ConfigDict(frozen=True)

    gate: int
    name: str
    passed: bool
    decided_at: datetime


class Receipt(BaseModel):
    """Write-once audit record produced when a campaign is published."""

    model_config = ConfigDict(frozen=True)

    receipt_id: str
    issued_at: datetime
    campaign_id: str
    campaign_name: str
    archetype: Archetype
    audience_description: str
    audience_size: int
    channels: tuple[str, ...]
    brand_score: int | None
    gates: tuple[ReceiptGate, ...]
    approver: str
    content_hash: str

    def body(self) -> dict[str, Any]:
        """Receipt fields excluding the id and issue time."""
        return self.model_dump(mode="json", exclude={"receipt_id", "issued_at"})


# ---------------------------------------------------------------------------
# Conversation payloads (discriminated on ``kind``)
# ---------------------------------------------------------------------------


class ClarificationPayload(BaseModel):
    kind: Literal["clarification"] = "clarification"
    options: list[str] = Field(default_factory=list)
    error_kind: ErrorKind = ErrorKind.AMBIGUOUS_COMMAND


class CampaignCreatedPayload(BaseModel):
    kind: Literal["campaign_created"] = "campaign_created"
    campaign_id: str
    archetype: Archetype
    label: str
    audience_description: str
    audience_size: int
    audience_created: bool
    channels: list[str]
    invalid_channels: list[str] = Field(default_factory=list)


class ContentGeneratedPayload(BaseModel):
    kind: Literal["content_generated"] = "content_generated"
    content: ContentDraft
    brand_score: int | None = None
    brand_score_details: dict[str, int] = Field(default_factory=dict)
    channels: list[str] = Field(default_factory=list)
    campaign_id: str | None = None


class GateResultsPayload(BaseModel):
    kind: Literal["gate_results"] = "gate_results"
    gate_results: list[GateResult]
    gate2_skipped: bool = False
    passed: bool = False
    failure_reasons: list[str] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    failed_content: ContentDraft | None = None


class ContentFixedPayload(BaseModel):
    kind: Literal["content_fixed"] = "content_fixed"
    content: ContentDraft
    removed_terms: list[str] = Field(default_factory=list)
    regenerated: bool = False
    campaign_id: str | None = None


class PatchConfirmationPayload(BaseModel):
    kind: Literal["patch_confirmation"] = "patch_confirmation"
    field: str
    value: str
    gates_invalidated: bool = False


class ApprovalPayload(BaseModel):
    kind: Literal["approval"] = "approval"
    decision: Literal["approved", "rejected"]
    approver: str
    reason: str | None = None


class CampaignCompletedPayload(BaseModel):
    kind: Literal["campaign_completed"] = "campaign_completed"
    receipt: Receipt
    banner_pushed: bool = False


class StatusPayload(BaseModel):
    kind: Literal["status"] = "status"
    stage: WorkflowStage
    next_step: str


class NavigationPayload(BaseModel):
    kind: Literal["navigation"] = "navigation"
    source_page: Page
    target_page: Page
    preserved_slots: dict[str, str] = Field(default_factory=dict)


class ReceiptPayload(BaseModel):
    kind: Literal["receipt"] = "receipt"
    receipt: Receipt


class ErrorPayload(BaseModel):
    kind: Literal["error"] = "error"
    error_kind: ErrorKind
    operation: str = ""


class ListingPayload(BaseModel):
    kind: Literal["listing"] = "listing"
    page: Page
    items: list[str] = Field(default_factory=list)


class AssistantReplyPayload(BaseModel):
    kind: Literal["assistant_reply"] = "assistant_reply"
    intent: str = "CHAT"
    suggestions: list[str] = Field(default_factory=list)


MessagePayload = Annotated[
    Union[
        ClarificationPayload,
        CampaignCreatedPayload,
        ContentGeneratedPayload,
        GateResultsPayload,
        ContentFixedPayload,
        PatchConfirmationPayload,
        ApprovalPayload,
        CampaignCompletedPayload,
        StatusPayload,
        NavigationPayload,
        ReceiptPayload,
        ErrorPayload,
        ListingPayload,
        AssistantReplyPayload,
    ],
    Field(discriminator="kind"),
]


class ConversationMessage(BaseModel):
    message_id: str
    origin: MessageOrigin
    text: str
    timestamp: datetime = Field(default_factory=utc_now)
    payload: MessagePayload | None = None

    @property
    def content(self) -> ContentDraft | None:
        """Content carried by this message's payload, if any."""
        return getattr(self.payload, "content", None)


# ---------------------------------------------------------------------------
# Derived values (never persisted)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldEdit:
    field: str
    value: str


@dataclass(frozen=True)
class IntentSlots:
    audience: str | None = None
    archetype: Archetype | None = None
    offer: str | None = None
    tone: str | None = None
    urgency: bool = False
    cta: str | None = None
    channels: tuple[str, ...] = ()
    field_edit: FieldEdit | None = None

    def as_context(self) -> dict[str, str]:
        """Non-empty slots as display strings, used as preserved routing context."""
        context: dict[str, str] = {}
        if self.audience:
            context["audience"] = self.audience
        if self.archetype is not None:
            context["archetype"] = self.archetype.value
        if self.offer:
            context["offer"] = self.offer
        if self.tone:
            context["tone"] = self.tone
        if self.cta:
            context["cta"] = self.cta
        if self.channels:
            context["channels"] = ",".join(self.channels)
        return context


@dataclass(frozen=True)
class IntentExtraction:
    text: str
    primary_intent: PrimaryIntent
    ambiguous: bool
    slots: IntentSlots

    @property
    def normalized(self) -> str:
        return self.text.strip().lower()


@dataclass(frozen=True)
class RoutingDecision:
    primary_intent: PrimaryIntent
    target_page: Page
    should_navigate: bool
    preserved_slots: dict[str, str] = field(default_factory=dict)
    next_action_hint: str = ""


@dataclass
class WorkflowSelection:
    """Per-page builder draft mirrored from the open campaign or carried in by navigation."""

    archetype: str | None = None
    audience: str | None = None
    channels: list[str] = field(default_factory=list)
    timing: str | None = None
    has_content: bool = False
    campaign_name: str | None = None


@dataclass(frozen=True)
class CampaignSummary:
    """Summary panel projection of the open campaign."""

    campaign_id: str
    name: str
    stage: WorkflowStage
    audience: str
    channels: tuple[str, ...]
    subject: str
    brand_score: int | None
    gates: tuple[tuple[int, bool | None], ...]
    next_step: str
