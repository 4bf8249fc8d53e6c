"""Campaign lifecycle operations.

Each operation takes the session's current campaign, checks that the
operation is legal from its stage, calls collaborators, and returns a
:class:`Transition` carrying the updated copy. The input campaign is never
mutated, and nothing is persisted unless the whole operation succeeded.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, TypeVar

from .collaborators import (
    AudienceService,
    BannerProjection,
    GateService,
    GeneratedContent,
    GenerationRequest,
    GenerationService,
    SiteStateSink,
)
from .errors import ApprovalPending, CollaboratorUnavailable, ErrorKind, IllegalTransition
from .intent import probe_channels
from .models import (
    ApprovalPayload,
    Archetype,
    Campaign,
    CampaignCompletedPayload,
    CampaignCreatedPayload,
    CampaignStatus,
    ContentDraft,
    ContentFixedPayload,
    ContentGeneratedPayload,
    GateResult,
    GateResultsPayload,
    IntentExtraction,
    IntentSlots,
    MessagePayload,
    PatchConfirmationPayload,
    Receipt,
    WorkflowStage,
    check_gate_order,
    utc_now,
)
from .receipts import build_receipt
from .remediation import clean_text, remediate_content
from .settings import RuntimeSettings
from .stages import resolve_stage
from .state_store import CampaignStateStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARCHETYPE_LABELS: dict[Archetype, str] = {
    Archetype.REFERRAL: "Referral",
    Archetype.RECOVERY: "Recovery",
    Archetype.CONQUEST: "Conquest",
    Archetype.WINBACK: "Win-Back",
    Archetype.LOYALTY: "Loyalty",
    Archetype.SERVICE: "Service Reminder",
    Archetype.WELCOME: "Welcome",
    Archetype.BIRTHDAY: "Birthday",
    Archetype.HOLIDAY: "Holiday",
}

_HOLIDAY_LABELS: tuple[tuple[str, str], ...] = (
    ("christmas", "December Holiday"),
    ("december", "December Holiday"),
    ("thanksgiving", "Thanksgiving"),
    ("new year", "New Year"),
    ("black friday", "Black Friday"),
)


@dataclass(frozen=True)
class AudiencePlan:
    name: str
    description: str
    criteria: dict[str, Any]
    estimated_size: int | None = None


ARCHETYPE_AUDIENCES: dict[Archetype, AudiencePlan] = {
    Archetype.REFERRAL: AudiencePlan("5-Star Reviewers", "5-star reviewers", {"review_rating": {"min": 5}, "source": "reviews"}),
    Archetype.RECOVERY: AudiencePlan(
        "Negative Review Customers",
        "Customers with negative reviews",
        {"review_rating": {"max": 2}, "source": "reviews"},
    ),
    Archetype.CONQUEST: AudiencePlan(
        "Competitor Customers", "Customers from competitor dealerships", {"competitor": True, "source": "conquest_list"}, 500
    ),
    Archetype.WINBACK: AudiencePlan(
        "Inactive 90+ Days", "Customers inactive 90+ days", {"inactive_days": {"min": 90}, "source": "crm"}, 847
    ),
    Archetype.LOYALTY: AudiencePlan("Loyalty Program Members", "Loyalty program members", {"loyalty_member": True, "source": "crm"}),
    Archetype.SERVICE: AudiencePlan("Service Due", "Customers due for service", {"service_due": True, "source": "dms"}),
    Archetype.WELCOME: AudiencePlan("New Customers", "New customers", {"customer_age_days": {"max": 30}, "source": "crm"}),
    Archetype.BIRTHDAY: AudiencePlan(
        "Birthdays This Month", "Customers with birthdays this month", {"birthday_month": "current", "source": "crm"}
    ),
}

_LABEL_PREFIX_RE = re.compile(r"^(?:please\s+)?(?:create|make|build|start|launch|generate)\s+(?:a\s+|an\s+|the\s+|new\s+)*", re.IGNORECASE)
_LABEL_CAMPAIGN_RE = re.compile(r"\s*\bcampaign\b.*$", re.IGNORECASE)
_LABEL_FOR_RE = re.compile(r"\s+for\s+.*$", re.IGNORECASE)
_TIME_WINDOW_RE = re.compile(r"(\d+)\s*(day|week|month)s?", re.IGNORECASE)
_WINDOW_DAYS = {"day": 1, "week": 7, "month": 30}


def title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def derive_label(text: str, archetype: Archetype, *, max_length: int = 30) -> str:
    """Short display label: the archetype's name, or a title-cased phrase trimmed from the request."""
    lowered = text.lower()
    if archetype is Archetype.HOLIDAY:
        for keyword, label in _HOLIDAY_LABELS:
            if keyword in lowered:
                return label
    if archetype in ARCHETYPE_LABELS:
        return ARCHETYPE_LABELS[archetype]
    phrase = _LABEL_FOR_RE.sub("", _LABEL_CAMPAIGN_RE.sub("", _LABEL_PREFIX_RE.sub("", text.strip())))
    label = title_case(phrase.strip(" .!?\"'"))[:max_length].strip()
    return label or "Custom Campaign"


def derive_audience(slots: IntentSlots, archetype: Archetype) -> AudiencePlan:
    if slots.audience:
        description = slots.audience
        window = _TIME_WINDOW_RE.search(description)
        if window:
            days = int(window.group(1)) * _WINDOW_DAYS[window.group(2).lower()]
            criteria: dict[str, Any] = {"inactive_days": {"min": days}, "source": "dynamic"}
        else:
            criteria = {"description": description.lower(), "source": "dynamic"}
        return AudiencePlan(title_case(description)[:60], description, criteria)
    if archetype in ARCHETYPE_AUDIENCES:
        return ARCHETYPE_AUDIENCES[archetype]
    return AudiencePlan("Target Customers", "target customers", {"source": "default"})


def custom_instructions(slots: IntentSlots) -> list[str]:
    instructions: list[str] = []
    if slots.offer:
        if slots.offer.startswith("$"):
            instructions.append(f"Include a {slots.offer} offer or credit")
        else:
            instructions.append(f"Include a {slots.offer} discount offer")
    if slots.urgency:
        instructions.append("Add urgency messaging (limited time offer)")
    if slots.tone:
        instructions.append(f"Use a {slots.tone} tone")
    if slots.cta:
        instructions.append(f'Use CTA: "{slots.cta}"')
    return instructions


@dataclass(frozen=True)
class Transition:
    """Result of a lifecycle operation: the campaign to commit and the reply to show."""

    campaign: Campaign | None
    text: str
    payload: MessagePayload | None = None
    receipt: Receipt | None = None


class CampaignLifecycle:
    """Stage-guarded operations over a single campaign draft."""

    def __init__(
        self,
        *,
        settings: RuntimeSettings,
        store: CampaignStateStore,
        generation: GenerationService,
        gates: GateService,
        audiences: AudienceService,
        site_state: SiteStateSink | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.generation = generation
        self.gates = gates
        self.audiences = audiences
        self.site_state = site_state

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(
        campaign: Campaign | None,
        allowed: set[WorkflowStage],
        operation: str,
        hints: dict[WorkflowStage, str] | None = None,
    ) -> Campaign:
        stage = resolve_stage(campaign)
        if campaign is not None and stage in allowed:
            return campaign
        hint = (hints or {}).get(stage, "")
        message = hint or f"{operation} is not allowed while the campaign is at stage {stage.value}"
        if stage is WorkflowStage.AWAITING_APPROVAL:
            raise ApprovalPending(message, operation=operation, stage=stage.value)
        raise IllegalTransition(message, operation=operation, stage=stage.value)

    @staticmethod
    def _call(collaborator: str, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s.%s failed: %s", collaborator, operation, exc)
            raise CollaboratorUnavailable(
                f"The {collaborator} is unavailable right now ({exc}). Nothing was changed; please try again.",
                collaborator=collaborator,
                operation=operation,
            ) from exc

    def _commit(self, campaign: Campaign, event: str, **fields: Any) -> Campaign:
        check_gate_order(campaign.gate_results)
        campaign.updated_at = utc_now()
        self.store.save_campaign(campaign)
        self.store.append_event(event, campaign_id=campaign.campaign_id, stage=resolve_stage(campaign).value, **fields)
        logger.info("Campaign %s: %s -> %s", campaign.campaign_id, event, resolve_stage(campaign).value)
        return campaign

    @staticmethod
    def _with_new_content(campaign: Campaign, content: ContentDraft | None, **updates: Any) -> Campaign:
        # Any content change invalidates every gate decision.
        return campaign.model_copy(
            deep=True,
            update={
                "content": content,
                "gate_results": [],
                "status": CampaignStatus.DRAFT,
                "revision": campaign.revision + 1,
                "reviewed_revision": None,
                **updates,
            },
        )

    def _generate(self, campaign: Campaign, extra_instructions: list[str]) -> GeneratedContent:
        request = GenerationRequest(
            archetype=campaign.archetype.value,
            audience=campaign.audience_description,
            channels=list(campaign.channels),
            goal=campaign.original_request or campaign.name,
            brand_id=self.settings.brand_id,
            custom_instructions=[*campaign.custom_instructions, *extra_instructions],
        )
        return self._call("generation service", "generate_content", self.generation.generate_content, request)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_campaign(self, extraction: IntentExtraction, current: Campaign | None = None, *, replace: bool = False) -> Transition:
        """Create a campaign draft from an extracted request.

        An open, unpublished draft is only replaced when ``replace`` is set
        (an explicit "create ... campaign" command).
        """
        stage = resolve_stage(current)
        if stage not in {WorkflowStage.NO_CAMPAIGN, WorkflowStage.PUBLISHED} and not replace:
            raise IllegalTransition(
                f'A campaign is already in progress ("{current.name if current else ""}"). Say "start new" first.',
                operation="create_campaign",
                stage=stage.value,
            )
        slots = extraction.slots
        archetype = slots.archetype or Archetype.CUSTOM
        label = derive_label(extraction.text, archetype, max_length=self.settings.label_max_length)
        plan = derive_audience(slots, archetype)
        size = plan.estimated_size or self.settings.default_audience_size

        warnings: list[str] = []
        audience_id: str | None = None
        audience_created = False
        try:
            record = self.audiences.find_or_create(plan.name, plan.description, plan.criteria, size)
        except Exception as exc:  # noqa: BLE001
            logger.warning("audience service find_or_create failed: %s", exc)
            warnings.append(f"Audience service unavailable ({exc}); the audience was not saved.")
        else:
            audience_id = record.audience_id
            audience_created = record.created
            size = record.estimated_size

        requested = ["email", *[channel for channel in slots.channels if channel != "email"]]
        allowed = set(self.settings.available_channels)
        valid = [channel for channel in requested if channel in allowed]
        invalid = [channel for channel in requested if channel not in allowed]
        if invalid:
            warnings.append(
                f"Not connected: {', '.join(invalid)}. Available channels: {', '.join(self.settings.available_channels)}."
            )

        campaign = Campaign(
            campaign_id=f"CMP-{uuid.uuid4().hex[:8]}",
            name=f"{label} Campaign - {date.today().isoformat()}",
            archetype=archetype,
            label=label,
            audience_description=plan.description,
            audience_name=plan.name,
            audience_id=audience_id,
            audience_size=size,
            channels=valid or ["email"],
            requested_channels=requested,
            invalid_channels=invalid,
            original_request=extraction.text,
            custom_instructions=custom_instructions(slots),
        )
        if current is not None and stage is not WorkflowStage.PUBLISHED:
            self.store.append_event("campaign_discarded", campaign_id=current.campaign_id, replaced_by=campaign.campaign_id)
        self._commit(campaign, "campaign_created", archetype=archetype.value)
        lines = [
            f"**Campaign Created: {campaign.name}**",
            f"**Type:** {label}",
            f"**Audience:** {campaign.audience_description} ({size})",
            f"**Channels:** {campaign.channel_display}",
            *warnings,
            "",
            'Say **"generate content"** or **"yes"** to write the message.',
        ]
        payload = CampaignCreatedPayload(
            campaign_id=campaign.campaign_id,
            archetype=archetype,
            label=label,
            audience_description=campaign.audience_description,
            audience_size=size,
            audience_created=audience_created,
            channels=list(campaign.channels),
            invalid_channels=invalid,
        )
        return Transition(campaign=campaign, text="\n".join(lines), payload=payload)

    def generate_content(self, campaign: Campaign | None, *, extra_instructions: list[str] | None = None) -> Transition:
        current = self._require(
            campaign,
            {WorkflowStage.CAMPAIGN_CREATED, WorkflowStage.CONTENT_READY, WorkflowStage.GATE_FAILED},
            "generate_content",
            {
                WorkflowStage.NO_CAMPAIGN: 'Please create a campaign first. Try: "Create a winback campaign for inactive customers"',
                WorkflowStage.AWAITING_APPROVAL: "The campaign is awaiting approval. Approve or reject it before regenerating content.",
                WorkflowStage.APPROVED: 'The campaign is approved. Say "publish" to send it, or edit a field to reopen it.',
                WorkflowStage.PUBLISHED: 'The campaign is already published. Say "start new" to begin another.',
            },
        )
        generated = self._generate(current, list(extra_instructions or []))
        draft = generated.to_draft()
        updated = self._with_new_content(
            current,
            draft,
            brand_score=generated.brand_score,
            brand_score_details=dict(generated.brand_score_details),
        )
        self._commit(updated, "content_generated", revision=updated.revision)
        preview = draft.body if len(draft.body) <= 200 else draft.body[:200] + "..."
        text = (
            f"**Content Generated!** Brand Score: **{generated.brand_score}%**\n\n"
            f"**Subject:** {draft.subject or 'N/A'}\n\n**Preview:**\n{preview}\n\n"
            f"**CTA:** {draft.cta or 'N/A'}\n\n"
            '**Ready for review!** Say "review" or "yes" to start the 3-gate review.'
        )
        payload = ContentGeneratedPayload(
            content=draft,
            brand_score=generated.brand_score,
            brand_score_details=dict(generated.brand_score_details),
            channels=list(updated.channels),
            campaign_id=updated.campaign_id,
        )
        return Transition(campaign=updated, text=text, payload=payload)

    def submit_review(self, campaign: Campaign | None) -> Transition:
        """Run gates 1-2 and request approval. Unchanged content is never re-reviewed."""
        stage = resolve_stage(campaign)
        if campaign is not None and stage is WorkflowStage.AWAITING_APPROVAL and campaign.reviewed_revision == campaign.revision:
            raise ApprovalPending(
                "Already submitted: gates 1 and 2 passed and approval was requested. "
                'Say "approve" or "reject" to decide.',
                operation="submit_review",
                stage=stage.value,
            )
        current = self._require(
            campaign,
            {WorkflowStage.CONTENT_READY},
            "submit_review",
            {
                WorkflowStage.NO_CAMPAIGN: "Please create a campaign first before submitting for review.",
                WorkflowStage.CAMPAIGN_CREATED: 'There is no content to review yet. Say "generate content" first.',
                WorkflowStage.GATE_FAILED: 'The last review failed. Say "fix it" or edit the content before resubmitting.',
                WorkflowStage.APPROVED: 'All gates already passed. Say "publish" to send the campaign.',
                WorkflowStage.PUBLISHED: "The campaign is already published.",
            },
        )
        self.store.save_campaign(current)
        outcome = self._call("gate service", "review", self.gates.review, current.campaign_id)
        gates = sorted(outcome.gates, key=lambda result: result.gate)
        check_gate_order(gates)
        gate1 = gates[0] if gates else None
        gate2 = next((result for result in gates if result.gate == 2), None)
        gate3 = next((result for result in gates if result.gate == 3), None)
        if gate1 is None:
            raise CollaboratorUnavailable(
                "The gate service returned no result for gate 1.", collaborator="gate service", operation="review"
            )

        failed = gate1.passed is not True or (gate2 is not None and gate2.passed is not True)
        if failed:
            status = CampaignStatus.REJECTED
        elif gate3 is not None and gate3.passed is True:
            status = CampaignStatus.APPROVED
        else:
            status = CampaignStatus.PENDING_APPROVAL
        updates: dict[str, Any] = {"gate_results": gates, "status": status, "reviewed_revision": current.revision}
        if gate2 is not None and gate2.details.brand_score is not None:
            updates["brand_score"] = gate2.details.brand_score
        updated = current.model_copy(deep=True, update=updates)
        self._commit(updated, "review_submitted", passed=not failed, gates=len(gates))

        failure_reasons: list[str] = []
        lines = ["**3-Gate Approval Process**", ""]
        if gate1.passed:
            lines.append("Gate 1 (Rules): PASSED - all validation rules satisfied")
        else:
            lines.append("Gate 1 (Rules): FAILED")
            blockers = list(dict.fromkeys(gate1.details.guardrail_blockers))
            if blockers:
                lines.extend(f"  - {blocker}" for blocker in blockers)
                failure_reasons.append(f"Content blocked: {', '.join(blockers)}")
            elif gate1.details.error:
                lines.append(f"  Reason: {gate1.details.error}")
                failure_reasons.append(gate1.details.error)
        if gate2 is None:
            lines.append("Gate 2 (Brand Review): Skipped (Gate 1 must pass first)")
        elif gate2.passed:
            lines.append(f"Gate 2 (Brand Review): PASSED - brand score {gate2.details.brand_score}%")
        else:
            reason = gate2.details.error or "Content did not pass brand review"
            lines.append(f"Gate 2 (Brand Review): FAILED - {reason}")
            failure_reasons.append(reason)
        if gate3 is None:
            lines.append("Gate 3 (Human Approval): Awaiting previous gates")
        elif gate3.passed is True:
            lines.append(f"Gate 3 (Human Approval): Approved by {gate3.details.approved_by}")
        else:
            lines.append('Gate 3 (Human Approval): Approval requested. Say "approve" or "reject".')
        if failed:
            lines.extend(["", 'Say **"fix it"** to remove the flagged content, then review again.'])
        elif status is CampaignStatus.APPROVED:
            lines.extend(["", 'Say **"publish"** to send the campaign.'])

        payload = GateResultsPayload(
            gate_results=gates,
            gate2_skipped=gate2 is None,
            passed=not failed,
            failure_reasons=failure_reasons,
            error_kind=ErrorKind.VALIDATION_FAILURE if failed else None,
            failed_content=current.content if failed else None,
        )
        return Transition(campaign=updated, text="\n".join(lines), payload=payload)

    def _decide(self, campaign: Campaign, operation: str, decision_gate: GateResult) -> Campaign:
        gates = [result for result in campaign.gate_results if result.gate != 3] + [decision_gate]
        status = CampaignStatus.APPROVED if decision_gate.passed else CampaignStatus.REJECTED
        updated = campaign.model_copy(deep=True, update={"gate_results": gates, "status": status})
        return self._commit(updated, operation, approver=decision_gate.details.approved_by or decision_gate.details.rejected_by)

    def approve(self, campaign: Campaign | None, approver: str | None = None) -> Transition:
        current = self._require(
            campaign,
            {WorkflowStage.AWAITING_APPROVAL},
            "approve",
            {
                WorkflowStage.NO_CAMPAIGN: "There is no campaign to approve.",
                WorkflowStage.CAMPAIGN_CREATED: "Gates 1 and 2 must pass before approval. Generate content and submit for review.",
                WorkflowStage.CONTENT_READY: 'Gates 1 and 2 must pass before approval. Say "review" first.',
                WorkflowStage.GATE_FAILED: 'The campaign failed review. Say "fix it" and review again before approving.',
                WorkflowStage.APPROVED: 'Already approved. Say "publish" to send.',
                WorkflowStage.PUBLISHED: "The campaign is already published.",
            },
        )
        who = approver or self.settings.approver
        decision = self._call("gate service", "approve", self.gates.approve, current.campaign_id, who)
        if not decision.success or decision.gate is None:
            raise IllegalTransition(decision.error or "Approval was refused", operation="approve", stage="awaiting_approval")
        updated = self._decide(current, "approved", decision.gate)
        return Transition(
            campaign=updated,
            text='**Campaign Approved!**\n\nAll 3 gates passed. Say **"publish"** to send.',
            payload=ApprovalPayload(decision="approved", approver=who),
        )

    def reject(self, campaign: Campaign | None, approver: str | None = None, reason: str = "") -> Transition:
        current = self._require(
            campaign,
            {WorkflowStage.AWAITING_APPROVAL},
            "reject",
            {WorkflowStage.NO_CAMPAIGN: "There is no campaign to reject."},
        )
        who = approver or self.settings.approver
        why = reason or "Rejected by reviewer"
        decision = self._call("gate service", "reject", self.gates.reject, current.campaign_id, who, why)
        if not decision.success or decision.gate is None:
            raise IllegalTransition(decision.error or "Rejection was refused", operation="reject", stage="awaiting_approval")
        updated = self._decide(current, "rejected", decision.gate)
        return Transition(
            campaign=updated,
            text=f"**Campaign Rejected.**\n\nReason: {why}\n\nEdit the content or say \"fix it\", then review again.",
            payload=ApprovalPayload(decision="rejected", approver=who, reason=why),
        )

    def publish(self, campaign: Campaign | None) -> Transition:
        current = self._require(
            campaign,
            {WorkflowStage.APPROVED},
            "publish",
            {
                WorkflowStage.NO_CAMPAIGN: "There is no campaign to publish.",
                WorkflowStage.AWAITING_APPROVAL: 'Waiting for human approval. Say "approve" before publishing.',
                WorkflowStage.PUBLISHED: "This campaign was already published.",
            },
        )
        decision = self._call("gate service", "execute", self.gates.execute, current.campaign_id)
        if not decision.success:
            raise IllegalTransition(
                f"Execution failed: {decision.error or 'unknown error'}. Make sure the campaign has passed all 3 gates.",
                operation="publish",
                stage=WorkflowStage.APPROVED.value,
            )
        gate3 = current.gate(3)
        approver = (gate3.details.approved_by if gate3 else None) or self.settings.approver
        receipt = build_receipt(current, approver=approver)
        updated = current.model_copy(
            deep=True,
            update={"status": CampaignStatus.COMPLETED, "executed_at": receipt.issued_at, "receipt_id": receipt.receipt_id},
        )
        self.store.write_receipt(receipt)
        self._commit(updated, "published", receipt_id=receipt.receipt_id)

        banner_pushed = False
        notes: list[str] = []
        if "website" in updated.channels and self.site_state is not None:
            content = updated.content or ContentDraft()
            banner = BannerProjection(
                headline=content.subject or updated.name,
                body=content.body[:100] or "Check out our latest offers!",
                cta_text=content.cta or "Learn More",
            )
            try:
                self.site_state.push_banner(banner)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Website banner push failed for %s: %s", updated.campaign_id, exc)
                notes.append(f"Warning: the website banner could not be updated ({exc}). The campaign was still sent.")
            else:
                banner_pushed = True
                notes.append("Website banner updated.")

        text = "\n".join(
            [
                "**Campaign Published Successfully!**",
                "",
                f"**Receipt ID:** {receipt.receipt_id}",
                f"**Campaign:** {updated.name}",
                f"**Audience:** {updated.audience_description}",
                f"**Recipients:** {updated.audience_size}",
                f"**Brand Score:** {updated.brand_score if updated.brand_score is not None else 'N/A'}%",
                "Gate 1 (Rules): Passed",
                "Gate 2 (Brand Review): Passed",
                f"Gate 3 (Human): Approved by {approver}",
                *notes,
            ]
        )
        payload = CampaignCompletedPayload(receipt=receipt, banner_pushed=banner_pushed)
        return Transition(campaign=updated, text=text, payload=payload, receipt=receipt)

    def auto_fix(self, campaign: Campaign | None) -> Transition:
        current = self._require(
            campaign,
            {WorkflowStage.GATE_FAILED},
            "auto_fix",
            {
                WorkflowStage.NO_CAMPAIGN: "There is no campaign to fix.",
                WorkflowStage.CAMPAIGN_CREATED: 'There is no content yet. Say "generate content" first.',
                WorkflowStage.CONTENT_READY: '**Content looks good!** No issues to fix. Say "review" to submit for approval.',
                WorkflowStage.APPROVED: "All gates passed; there is nothing to fix.",
                WorkflowStage.PUBLISHED: "The campaign is already published.",
            },
        )
        failing_gate = next((result for result in current.gate_results if result.passed is False), None)
        result = remediate_content(current.content, failing_gate)
        cleaned = result.content
        if cleaned is None or not cleaned.has_body:
            # Nothing usable survived cleaning; write a fresh draft under a negative constraint.
            generated = self._generate(current, [result.avoid_instruction])
            draft = generated.to_draft()
            updated = self._with_new_content(current, draft, brand_score=generated.brand_score)
            self._commit(updated, "content_regenerated", avoid=result.candidate_terms)
            payload = ContentFixedPayload(
                content=draft,
                removed_terms=list(result.removed_terms),
                regenerated=True,
                campaign_id=updated.campaign_id,
            )
            if cleaned is None:
                reason = "There was no content to clean"
            else:
                reason = "Every field was made of flagged terms"
            text = f"**Content Regenerated.** {reason}, so a fresh draft was written avoiding flagged terms."
            return Transition(campaign=updated, text=text, payload=payload)

        updated = self._with_new_content(current, cleaned)
        self._commit(updated, "content_fixed", removed=result.removed_terms)
        removed = ", ".join(f'"{term}"' for term in result.removed_terms) if result.removed_terms else "no flagged terms"
        text = (
            f"**Content Fixed!**\n\nRemoved: {removed}\n\n"
            f"**Subject:** {cleaned.subject}\n**Body:** {cleaned.body}\n\n"
            'Say **"review"** to resubmit.'
        )
        payload = ContentFixedPayload(
            content=cleaned, removed_terms=list(result.removed_terms), campaign_id=updated.campaign_id
        )
        return Transition(campaign=updated, text=text, payload=payload)

    def edit_field(self, campaign: Campaign | None, field: str, value: str) -> Transition:
        """Apply a field edit at any pre-publish stage, invalidating every gate result."""
        current = self._require(
            campaign,
            {
                WorkflowStage.CAMPAIGN_CREATED,
                WorkflowStage.CONTENT_READY,
                WorkflowStage.GATE_FAILED,
                WorkflowStage.AWAITING_APPROVAL,
                WorkflowStage.APPROVED,
            },
            "edit_field",
            {
                WorkflowStage.NO_CAMPAIGN: "There is no campaign to edit. Create one first.",
                WorkflowStage.PUBLISHED: "Published campaigns cannot be edited. Say \"start new\" to begin another.",
            },
        )
        had_gates = bool(current.gate_results)
        if field in {"subject", "body", "cta"}:
            if current.content is None:
                raise IllegalTransition(
                    'No content to edit yet. Generate content first by saying "generate content".',
                    operation="edit_field",
                    stage=resolve_stage(current).value,
                )
            content = current.content.model_copy(update={field: value})
            updated = self._with_new_content(current, content)
        elif field == "audience":
            updated = self._with_new_content(
                current,
                current.content,
                audience_description=value,
                audience_name=title_case(value)[:60],
                audience_id=None,
            )
        elif field == "channels":
            requested = list(probe_channels(value))
            allowed = set(self.settings.available_channels)
            valid = [channel for channel in requested if channel in allowed]
            if not valid:
                raise IllegalTransition(
                    f"No connected channel found in {value!r}. Available: {', '.join(self.settings.available_channels)}.",
                    operation="edit_field",
                    stage=resolve_stage(current).value,
                )
            updated = self._with_new_content(
                current,
                current.content,
                channels=valid,
                requested_channels=requested,
                invalid_channels=[channel for channel in requested if channel not in allowed],
            )
        else:
            raise IllegalTransition(f"Unknown field {field!r}", operation="edit_field", stage=resolve_stage(current).value)
        self._commit(updated, "field_edited", field=field)
        labels = {"subject": "Subject line", "body": "Email body", "cta": "Call to action", "audience": "Audience", "channels": "Channels"}
        shown = value if len(value) <= 100 else value[:100] + "..."
        text = f'**{labels[field]} updated!**\n\nNew value: "{shown}"'
        if had_gates:
            text += '\n\nPrevious gate results were cleared. Say "review" to resubmit.'
        payload = PatchConfirmationPayload(field=field, value=value, gates_invalidated=had_gates)
        return Transition(campaign=updated, text=text, payload=payload)

    def remove_term(self, campaign: Campaign | None, term: str) -> Transition:
        current = self._require(
            campaign,
            {
                WorkflowStage.CONTENT_READY,
                WorkflowStage.GATE_FAILED,
                WorkflowStage.AWAITING_APPROVAL,
                WorkflowStage.APPROVED,
            },
            "remove_term",
            {
                WorkflowStage.NO_CAMPAIGN: "There is no campaign to edit.",
                WorkflowStage.CAMPAIGN_CREATED: 'There is no content yet. Say "generate content" first.',
                WorkflowStage.PUBLISHED: "Published campaigns cannot be edited.",
            },
        )
        if current.content is None:
            raise IllegalTransition(
                'There is no content yet. Say "generate content" first.',
                operation="remove_term",
                stage=resolve_stage(current).value,
            )
        fields: dict[str, str] = {}
        removed: set[str] = set()
        for name, value in current.content.text_fields().items():
            fields[name], hit = clean_text(value, [term.lower()])
            removed |= hit
        if not removed:
            return Transition(campaign=current, text=f'"{term}" does not appear in the content; nothing was changed.')
        content = ContentDraft(**fields, hashtags=list(current.content.hashtags))
        updated = self._with_new_content(current, content)
        self._commit(updated, "content_fixed", removed=[term.lower()])
        payload = ContentFixedPayload(content=content, removed_terms=[term.lower()], campaign_id=updated.campaign_id)
        return Transition(campaign=updated, text=f'**Removed "{term}".** Say "review" to resubmit.', payload=payload)

    def draft_content(self, extraction: IntentExtraction) -> GeneratedContent:
        """Generate content with no campaign attached (e.g. a one-off social post)."""
        slots = extraction.slots
        request = GenerationRequest(
            archetype=(slots.archetype or Archetype.CUSTOM).value,
            audience=slots.audience or "target customers",
            channels=list(slots.channels) or ["email"],
            goal=extraction.text,
            brand_id=self.settings.brand_id,
            custom_instructions=custom_instructions(slots),
        )
        generated = self._call("generation service", "generate_content", self.generation.generate_content, request)
        self.store.append_event("content_drafted", channels=request.channels)
        return generated

    def start_new(self, campaign: Campaign | None) -> Transition:
        if campaign is not None and resolve_stage(campaign) is not WorkflowStage.PUBLISHED:
            self.store.append_event("campaign_discarded", campaign_id=campaign.campaign_id)
        return Transition(
            campaign=None,
            text="**Ready for a new campaign.** Try: \"Create a referral campaign for 5-star reviewers\"",
        )
