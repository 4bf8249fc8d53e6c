"""Ordered command dispatch.

A command is matched against :attr:`CommandDispatcher.rules` top to bottom.
The first rule whose predicate holds runs its handler; a handler may return
:data:`DECLINED` to hand the command to the next rule. Handlers never commit
state themselves: they return a :class:`Reply` and the session applies it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from .collaborators import AugmentationReply, AugmentationResponder, GeneratedContent
from .errors import CampaignError, ErrorKind
from .intent import CLARIFICATION_OPTIONS, CLARIFICATION_TEXT, has_creation_verb, probe_channels
from .lifecycle import CampaignLifecycle, Transition, derive_audience
from .models import (
    Archetype,
    AssistantReplyPayload,
    Campaign,
    ClarificationPayload,
    ContentDraft,
    ContentGeneratedPayload,
    ErrorPayload,
    IntentExtraction,
    IntentSlots,
    ListingPayload,
    MessagePayload,
    Page,
    PrimaryIntent,
    ReceiptPayload,
    StatusPayload,
    WorkflowStage,
)
from .receipts import format_receipt
from .settings import RuntimeSettings
from .stages import NEXT_STEP_HINTS, command_placeholder, context_summary, resolve_stage

logger = logging.getLogger(__name__)


class _Declined:
    def __repr__(self) -> str:
        return "DECLINED"


DECLINED = _Declined()

# ---------------------------------------------------------------------------
# Command vocabulary
# ---------------------------------------------------------------------------

_TRAILING = r"(?:\s+(?:it|this|that|now|please|the campaign|campaign))*[.!?]*$"

AFFIRMATIVE_RE = re.compile(r"^(?:yes|yeah|yep|ok|okay|sure|do it|go ahead|proceed|next|continue)[.!]*$")
STATUS_RE = re.compile(r"\b(?:status|where am i|what'?s next|help me|what now)\b")
RESET_RE = re.compile(r"^(?:start (?:a )?new(?: campaign)?|new campaign|start over|reset)[.!]*$")
RECEIPT_RE = re.compile(r"\b(?:show|view|get|see)\s+(?:the\s+|my\s+)?receipt\b")
REVIEW_RE = re.compile(
    r"^(?:please\s+)?(?:review|submit(?: for (?:review|approval))?|send (?:it )?for (?:review|approval)|"
    r"run (?:the )?gates|check compliance)" + _TRAILING
)
APPROVE_RE = re.compile(r"^(?:please\s+)?(?:approve|approved|lgtm|sign off)" + _TRAILING)
REJECT_RE = re.compile(r"^(?:reject|decline)\b(?:\s+(?:it|this|the campaign))?(?:\s*(?:because|:|-|,)?\s*(?P<reason>.+))?$")
PUBLISH_RE = re.compile(r"^(?:please\s+)?(?:publish|execute|send|launch|go live)" + _TRAILING)
FIX_RE = re.compile(r"^(?:fix|correct|clean up)(?:\s+(?:it|this|the content))?[.!]*$|^make it compliant[.!]*$")
EDIT_RE = re.compile(r"^edit(?:\s+(?:it|this|the content))?[.!]*$")
REMOVE_RE = re.compile(r"^(?:remove|delete|drop)\s+(?:the\s+word\s+)?[\"']?(?P<term>[a-z0-9'-]+)[\"']?[.!]*$")
GENERATE_RE = re.compile(
    r"^(?:please\s+)?(?:generate|write|create|draft|regenerate)(?:\s+(?:the|some|new))?"
    r"\s+(?:content|copy|message|email)" + _TRAILING
)
USE_CHANNELS_RE = re.compile(r"^(?:use|send (?:via|through|on)|switch to)\s+(?P<channels>.+)$")
CAMPAIGN_CREATION_RE = re.compile(r"\b(?:create|make|build|launch|start|set up|plan)\b.*\bcampaigns?\b")
GUARDED_RE = re.compile(
    r"\b(?:review|submit|approve|reject|publish|execute|send|fix|edit|remove|generate|regenerate|receipt)\b"
)
HELP_RE = re.compile(r"^(?:help|\?|what can you do)[.!?]*$")

HELP_TEXT = (
    "**I can help you run a campaign end to end:**\n"
    '- "Create a referral campaign for 5-star reviewers"\n'
    '- "Generate content" or "yes" to write the message\n'
    '- "Change subject to ..." / "use email and sms" to edit\n'
    '- "Review" to run the 3-gate approval, "fix it" if a gate fails\n'
    '- "Approve", "reject because ...", then "publish"\n'
    '- "Status" at any time, "show receipt" after publishing, "start new" to reset'
)

NO_CAMPAIGN_TEXT = 'Please create a campaign first. Try: "Create a referral campaign for 5-star reviewers"'


def is_global_command(text: str, extraction: IntentExtraction) -> bool:
    """Commands that act on the open campaign from any page."""
    return bool(
        AFFIRMATIVE_RE.match(text)
        or STATUS_RE.search(text)
        or RESET_RE.match(text)
        or RECEIPT_RE.search(text)
        or REVIEW_RE.match(text)
        or APPROVE_RE.match(text)
        or REJECT_RE.match(text)
        or PUBLISH_RE.match(text)
        or FIX_RE.match(text)
        or EDIT_RE.match(text)
        or REMOVE_RE.match(text)
        or GENERATE_RE.match(text)
        or USE_CHANNELS_RE.match(text)
        or extraction.slots.field_edit is not None
        or CAMPAIGN_CREATION_RE.search(text)
    )


# ---------------------------------------------------------------------------
# Rule plumbing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandContext:
    """Everything a rule may look at. Built fresh by the session for every command."""

    text: str
    page: Page
    campaign: Campaign | None
    extraction: IntentExtraction
    session_id: str = "default"
    generated_content: ContentDraft | None = None

    @property
    def normalized(self) -> str:
        return self.extraction.normalized

    @property
    def stage(self) -> WorkflowStage:
        return resolve_stage(self.campaign)


@dataclass
class Reply:
    """Outcome of a handled command.

    ``transition`` is set when the campaign changed and must be committed;
    ``generated_content`` when a standalone draft was produced.
    """

    text: str
    payload: MessagePayload | None = None
    transition: Transition | None = None
    generated_content: ContentDraft | None = None
    rule: str = ""

    @classmethod
    def from_transition(cls, transition: Transition) -> "Reply":
        return cls(text=transition.text, payload=transition.payload, transition=transition)


HandlerResult = Reply | _Declined


@dataclass(frozen=True)
class Rule:
    name: str
    predicate: Callable[[CommandContext], bool]
    handler: Callable[[CommandContext], HandlerResult]


@dataclass
class AutomationRule:
    trigger: str
    action: str


_AUTOMATION_RE = re.compile(r"\bwhen\s+(?P<trigger>.+?)\s*(?:,|\bthen\b)\s*(?:then\s+)?(?P<action>.+)$")
_AUDIENCE_NAME_RE = re.compile(r"\b(?:audience|segment)\s+(?:of|for|called|named|with)?\s*[\"']?(?P<name>[^\"']+?)[\"']?[.!]*$")


class CommandDispatcher:
    """Priority-ordered rule table over the campaign lifecycle."""

    def __init__(self, lifecycle: CampaignLifecycle, *, augmentation: AugmentationResponder | None = None) -> None:
        self.lifecycle = lifecycle
        self.augmentation = augmentation
        self.automations: list[AutomationRule] = []
        self.rules: list[Rule] = [
            Rule("clarification", lambda ctx: ctx.extraction.ambiguous, self._clarify),
            Rule("page", lambda ctx: ctx.page is not Page.STUDIO, self._page_handler),
            Rule("create_campaign", self._is_campaign_creation, self._create_campaign),
            Rule("generate_content", self._is_content_generation, self._generate_content),
            Rule("field_edit", self._is_field_edit, self._edit_field),
            Rule("contextual", self._is_contextual, self._contextual),
            Rule("lifecycle", self._is_lifecycle_verb, self._lifecycle_verb),
            Rule("affirmative", lambda ctx: AFFIRMATIVE_RE.match(ctx.normalized) is not None, self._affirmative),
            Rule("status", lambda ctx: STATUS_RE.search(ctx.normalized) is not None, self._status),
            Rule("guarded", self._is_guarded, self._guarded),
            Rule("responder", lambda ctx: True, self._respond),
        ]

    @property
    def settings(self) -> RuntimeSettings:
        return self.lifecycle.settings

    def dispatch(self, ctx: CommandContext) -> Reply:
        """Run the first rule that accepts ``ctx``. Never raises."""
        for rule in self.rules:
            try:
                if not rule.predicate(ctx):
                    continue
                result = rule.handler(ctx)
            except CampaignError as exc:
                logger.info("Command %r refused by %s: %s", ctx.text, rule.name, exc.message)
                return Reply(
                    text=exc.message,
                    payload=ErrorPayload(error_kind=exc.kind, operation=exc.operation or rule.name),
                    rule=rule.name,
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception("Command %r failed in rule %s", ctx.text, rule.name)
                return Reply(
                    text=f"Something went wrong while handling that command ({exc}). Nothing was changed.",
                    payload=ErrorPayload(error_kind=ErrorKind.ILLEGAL_TRANSITION, operation=rule.name),
                    rule=rule.name,
                )
            if isinstance(result, _Declined):
                logger.debug("Rule %s declined %r", rule.name, ctx.text)
                continue
            result.rule = rule.name
            return result
        raise AssertionError("the responder rule always handles")

    # ------------------------------------------------------------------
    # (1) clarification
    # ------------------------------------------------------------------

    def _clarify(self, ctx: CommandContext) -> HandlerResult:
        return Reply(text=CLARIFICATION_TEXT, payload=ClarificationPayload(options=list(CLARIFICATION_OPTIONS)))

    # ------------------------------------------------------------------
    # (2) page-scoped handlers
    # ------------------------------------------------------------------

    def _page_handler(self, ctx: CommandContext) -> HandlerResult:
        text = ctx.normalized
        if is_global_command(text, ctx.extraction):
            return DECLINED
        if ctx.page is Page.CONTENT and self._is_content_generation(ctx):
            return DECLINED
        if self.augmentation is not None:
            reply = self._ask_augmentation(self.augmentation, ctx)
            if reply is not None and reply.intent in {"HELP", "CHAT"} and reply.response.strip():
                return Reply(
                    text=reply.response,
                    payload=AssistantReplyPayload(intent=reply.intent, suggestions=list(reply.suggestions)),
                )
        handlers: dict[Page, Callable[[CommandContext], HandlerResult]] = {
            Page.CAMPAIGNS: self._campaigns_page,
            Page.AUDIENCES: self._audiences_page,
            Page.CONTENT: self._content_page,
            Page.AUTOMATIONS: self._automations_page,
            Page.ANALYTICS: self._analytics_page,
            Page.INTEGRATIONS: self._integrations_page,
        }
        return handlers[ctx.page](ctx)

    def _campaigns_page(self, ctx: CommandContext) -> HandlerResult:
        text = ctx.normalized
        if not re.search(r"\b(?:list|show|all|drafts?|published|pending|approved|failed|filter)\b", text):
            return DECLINED
        wanted: set[WorkflowStage] | None = None
        if "draft" in text:
            wanted = {WorkflowStage.CAMPAIGN_CREATED, WorkflowStage.CONTENT_READY, WorkflowStage.GATE_FAILED}
        elif "published" in text:
            wanted = {WorkflowStage.PUBLISHED}
        elif "pending" in text:
            wanted = {WorkflowStage.AWAITING_APPROVAL}
        elif "approved" in text:
            wanted = {WorkflowStage.APPROVED}
        elif "failed" in text:
            wanted = {WorkflowStage.GATE_FAILED}
        items = [
            f"{campaign.name} [{resolve_stage(campaign).value}]"
            for campaign in self.lifecycle.store.list_campaigns()
            if wanted is None or resolve_stage(campaign) in wanted
        ]
        body = "\n".join(f"- {item}" for item in items) if items else "No matching campaigns."
        return Reply(text=f"**Campaigns ({len(items)})**\n{body}", payload=ListingPayload(page=ctx.page, items=items))

    def _audiences_page(self, ctx: CommandContext) -> HandlerResult:
        text = ctx.normalized
        audiences = self.lifecycle.audiences
        if has_creation_verb(text):
            slots = ctx.extraction.slots
            if slots.audience is None:
                match = _AUDIENCE_NAME_RE.search(ctx.text)
                if match is None:
                    return Reply(
                        text='Describe the audience, for example: "Create an audience for customers inactive 90 days"'
                    )
                slots = IntentSlots(audience=match.group("name").strip(), archetype=slots.archetype)
            plan = derive_audience(slots, slots.archetype or Archetype.CUSTOM)
            record = audiences.find_or_create(
                plan.name,
                plan.description,
                plan.criteria,
                plan.estimated_size or self.settings.default_audience_size,
            )
            verb = "Created" if record.created else "Found existing"
            return Reply(
                text=f"**{verb} audience: {record.name}** ({record.estimated_size} customers)\n\n"
                'Say "create campaign for this audience" to target them.',
                payload=ListingPayload(page=ctx.page, items=[record.name]),
            )
        if re.search(r"\b(?:list|show|all|audiences|segments)\b", text):
            items = [f"{record.name} ({record.estimated_size})" for record in audiences.list_audiences()]
            body = "\n".join(f"- {item}" for item in items) if items else "No audiences yet."
            return Reply(text=f"**Audiences ({len(items)})**\n{body}", payload=ListingPayload(page=ctx.page, items=items))
        return DECLINED

    def _content_page(self, ctx: CommandContext) -> HandlerResult:
        if not re.search(r"\b(?:list|show|library|all|content)\b", ctx.normalized):
            return DECLINED
        items = [
            f"{campaign.name}: {campaign.content.subject or campaign.content.body[:40]}"
            for campaign in self.lifecycle.store.list_campaigns()
            if campaign.content is not None and campaign.content.has_body
        ]
        if ctx.generated_content is not None:
            draft = ctx.generated_content
            items.append(f"Unsaved draft: {draft.subject or draft.social[:40] or draft.body[:40]}")
        body = "\n".join(f"- {item}" for item in items) if items else "The content library is empty."
        return Reply(text=f"**Content Library ({len(items)})**\n{body}", payload=ListingPayload(page=ctx.page, items=items))

    def _automations_page(self, ctx: CommandContext) -> HandlerResult:
        match = _AUTOMATION_RE.search(ctx.normalized)
        if match:
            rule = AutomationRule(trigger=match.group("trigger").strip(), action=match.group("action").strip(" ."))
            self.automations.append(rule)
            return Reply(
                text=f"**Automation saved:** when {rule.trigger} -> {rule.action}",
                payload=ListingPayload(page=ctx.page, items=[f"when {rule.trigger} -> {rule.action}"]),
            )
        if ctx.extraction.primary_intent is PrimaryIntent.AUTOMATION or re.search(r"\b(?:list|show)\b", ctx.normalized):
            items = [f"when {rule.trigger} -> {rule.action}" for rule in self.automations]
            body = "\n".join(f"- {item}" for item in items) if items else 'No automations yet. Try: "when a customer leaves a 5-star review, send a referral email"'
            return Reply(text=f"**Automations ({len(items)})**\n{body}", payload=ListingPayload(page=ctx.page, items=items))
        return DECLINED

    def _analytics_page(self, ctx: CommandContext) -> HandlerResult:
        store = self.lifecycle.store
        receipts = [store.read_receipt(receipt_id) for receipt_id in store.list_receipts()]
        items = [
            f"{receipt.campaign_name}: {receipt.audience_size} recipients, brand score {receipt.brand_score}"
            for receipt in receipts
        ]
        if not receipts:
            return Reply(text="No published campaigns yet.", payload=ListingPayload(page=ctx.page, items=[]))
        total = sum(receipt.audience_size for receipt in receipts)
        scores = [receipt.brand_score for receipt in receipts if receipt.brand_score is not None]
        average = round(sum(scores) / len(scores)) if scores else None
        lines = [
            f"**Published campaigns:** {len(receipts)}",
            f"**Total recipients:** {total}",
            f"**Average brand score:** {average if average is not None else 'N/A'}",
            *(f"- {item}" for item in items),
        ]
        return Reply(text="\n".join(lines), payload=ListingPayload(page=ctx.page, items=items))

    def _integrations_page(self, ctx: CommandContext) -> HandlerResult:
        available = list(self.settings.available_channels)
        requested = [channel for channel in probe_channels(ctx.normalized) if channel not in available]
        lines = [f"**Connected channels:** {', '.join(available)}"]
        if requested:
            lines.append(
                f"Not available: {', '.join(requested)}. Add them to TRUSTEYE_AVAILABLE_CHANNELS to enable them."
            )
        return Reply(text="\n".join(lines), payload=ListingPayload(page=ctx.page, items=available))

    def _ask_augmentation(self, responder: AugmentationResponder, ctx: CommandContext) -> AugmentationReply | None:
        try:
            return responder.process_command(
                ctx.text, ctx.session_id, self.settings.brand_id, self.settings.user_id
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Augmentation responder failed, using local rules: %s", exc)
            return None

    # ------------------------------------------------------------------
    # (3) campaign creation, (4) content generation
    # ------------------------------------------------------------------

    def _is_campaign_creation(self, ctx: CommandContext) -> bool:
        text = ctx.normalized
        if RESET_RE.match(text) or ctx.extraction.slots.field_edit is not None:
            return False
        if CAMPAIGN_CREATION_RE.search(text):
            return True
        open_stages = {WorkflowStage.NO_CAMPAIGN, WorkflowStage.PUBLISHED}
        return (
            ctx.extraction.slots.archetype is not None
            and ctx.stage in open_stages
            and not is_global_command(text, ctx.extraction)
        )

    def _create_campaign(self, ctx: CommandContext) -> HandlerResult:
        explicit = CAMPAIGN_CREATION_RE.search(ctx.normalized) is not None
        transition = self.lifecycle.create_campaign(ctx.extraction, ctx.campaign, replace=explicit)
        return Reply.from_transition(transition)

    def _is_content_generation(self, ctx: CommandContext) -> bool:
        if GENERATE_RE.match(ctx.normalized):
            return self._generates_in_place(ctx)
        return has_creation_verb(ctx.normalized) and ctx.extraction.primary_intent is PrimaryIntent.CONTENT

    @staticmethod
    def _generates_in_place(ctx: CommandContext) -> bool:
        # Only a bare "generate content" rewrites the open campaign; other content requests are standalone drafts.
        return (
            GENERATE_RE.match(ctx.normalized) is not None
            and ctx.campaign is not None
            and ctx.stage is not WorkflowStage.PUBLISHED
        )

    def _generate_content(self, ctx: CommandContext) -> HandlerResult:
        if self._generates_in_place(ctx):
            return Reply.from_transition(self.lifecycle.generate_content(ctx.campaign))
        generated = self.lifecycle.draft_content(ctx.extraction)
        draft = generated.to_draft()
        return Reply(
            text=_format_standalone(generated, draft),
            payload=ContentGeneratedPayload(
                content=draft,
                brand_score=generated.brand_score,
                brand_score_details=dict(generated.brand_score_details),
                channels=list(ctx.extraction.slots.channels) or ["email"],
            ),
            generated_content=draft,
        )

    # ------------------------------------------------------------------
    # (5) field edits, (6) contextual verbs
    # ------------------------------------------------------------------

    def _is_field_edit(self, ctx: CommandContext) -> bool:
        if ctx.extraction.slots.field_edit is not None:
            return True
        match = USE_CHANNELS_RE.match(ctx.normalized)
        return match is not None and bool(probe_channels(match.group("channels")))

    def _edit_field(self, ctx: CommandContext) -> HandlerResult:
        edit = ctx.extraction.slots.field_edit
        if edit is not None:
            field, value = edit.field, edit.value
        else:
            match = USE_CHANNELS_RE.match(ctx.normalized)
            field, value = "channels", match.group("channels") if match else ctx.normalized
        return Reply.from_transition(self.lifecycle.edit_field(ctx.campaign, field, value))

    def _is_contextual(self, ctx: CommandContext) -> bool:
        text = ctx.normalized
        return ctx.campaign is not None and bool(FIX_RE.match(text) or EDIT_RE.match(text) or REMOVE_RE.match(text))

    def _contextual(self, ctx: CommandContext) -> HandlerResult:
        text = ctx.normalized
        if FIX_RE.match(text):
            return Reply.from_transition(self.lifecycle.auto_fix(ctx.campaign))
        removal = REMOVE_RE.match(text)
        if removal:
            return Reply.from_transition(self.lifecycle.remove_term(ctx.campaign, removal.group("term")))
        content = ctx.campaign.content if ctx.campaign is not None else None
        if content is None or not content.has_body:
            return Reply(text='There is no content to edit yet. Say "generate content" first.')
        return Reply(
            text=(
                "**What would you like to change?**\n\n"
                f"**Subject:** {content.subject}\n**Body:** {content.body}\n**CTA:** {content.cta}\n\n"
                'Try: "change subject to ...", "set cta to ...", or "remove <word>".'
            )
        )

    # ------------------------------------------------------------------
    # (7) lifecycle verbs, (8) affirmatives, (9) status
    # ------------------------------------------------------------------

    def _is_lifecycle_verb(self, ctx: CommandContext) -> bool:
        text = ctx.normalized
        if RESET_RE.match(text) or RECEIPT_RE.search(text):
            return True
        if ctx.campaign is None:
            return False
        return bool(REVIEW_RE.match(text) or APPROVE_RE.match(text) or REJECT_RE.match(text) or PUBLISH_RE.match(text))

    def _lifecycle_verb(self, ctx: CommandContext) -> HandlerResult:
        text = ctx.normalized
        if RESET_RE.match(text):
            return Reply.from_transition(self.lifecycle.start_new(ctx.campaign))
        if RECEIPT_RE.search(text):
            return self._show_receipt(ctx)
        if REVIEW_RE.match(text):
            return Reply.from_transition(self.lifecycle.submit_review(ctx.campaign))
        if APPROVE_RE.match(text):
            return Reply.from_transition(self.lifecycle.approve(ctx.campaign))
        rejection = REJECT_RE.match(text)
        if rejection:
            why = ctx.extraction.text[rejection.start("reason"):].strip() if rejection.group("reason") else ""
            return Reply.from_transition(self.lifecycle.reject(ctx.campaign, reason=why))
        return Reply.from_transition(self.lifecycle.publish(ctx.campaign))

    def _show_receipt(self, ctx: CommandContext) -> HandlerResult:
        campaign = ctx.campaign
        if campaign is None or campaign.receipt_id is None:
            return Reply(
                text="No receipt yet. Receipts are issued when a campaign is published.",
                payload=StatusPayload(stage=ctx.stage, next_step=NEXT_STEP_HINTS[ctx.stage]),
            )
        receipt = self.lifecycle.store.read_receipt(campaign.receipt_id)
        return Reply(text=f"**Campaign Receipt**\n\n{format_receipt(receipt)}", payload=ReceiptPayload(receipt=receipt))

    def _affirmative(self, ctx: CommandContext) -> HandlerResult:
        stage = ctx.stage
        campaign = ctx.campaign
        if stage is WorkflowStage.NO_CAMPAIGN:
            return Reply(text=NO_CAMPAIGN_TEXT, payload=StatusPayload(stage=stage, next_step=NEXT_STEP_HINTS[stage]))
        if stage is WorkflowStage.CAMPAIGN_CREATED:
            return Reply.from_transition(self.lifecycle.generate_content(campaign))
        if stage is WorkflowStage.CONTENT_READY:
            return Reply.from_transition(self.lifecycle.submit_review(campaign))
        if stage is WorkflowStage.GATE_FAILED:
            return Reply.from_transition(self.lifecycle.auto_fix(campaign))
        if stage is WorkflowStage.AWAITING_APPROVAL:
            return Reply.from_transition(self.lifecycle.approve(campaign))
        if stage is WorkflowStage.APPROVED:
            return Reply.from_transition(self.lifecycle.publish(campaign))
        return Reply(
            text='**Campaign already published!** Say "show receipt" to see the audit record or "start new" for another.',
            payload=StatusPayload(stage=stage, next_step=NEXT_STEP_HINTS[stage]),
        )

    def _status(self, ctx: CommandContext) -> HandlerResult:
        return Reply(
            text=context_summary(ctx.campaign),
            payload=StatusPayload(stage=ctx.stage, next_step=NEXT_STEP_HINTS[ctx.stage]),
        )

    # ------------------------------------------------------------------
    # (10) guarded verbs, (11) generic responder
    # ------------------------------------------------------------------

    def _is_guarded(self, ctx: CommandContext) -> bool:
        return ctx.campaign is None and GUARDED_RE.search(ctx.normalized) is not None

    def _guarded(self, ctx: CommandContext) -> HandlerResult:
        verb = GUARDED_RE.search(ctx.normalized)
        return Reply(
            text=NO_CAMPAIGN_TEXT,
            payload=ErrorPayload(error_kind=ErrorKind.ILLEGAL_TRANSITION, operation=verb.group(0) if verb else ""),
        )

    def _respond(self, ctx: CommandContext) -> HandlerResult:
        if HELP_RE.match(ctx.normalized):
            return Reply(text=HELP_TEXT, payload=AssistantReplyPayload(intent="HELP", suggestions=[command_placeholder(ctx.campaign)]))
        if self.augmentation is not None:
            reply = self._ask_augmentation(self.augmentation, ctx)
            if reply is not None:
                mapped = self._augmented_action(ctx, reply.intent)
                if mapped is not None:
                    return mapped
                if reply.response.strip():
                    return Reply(
                        text=reply.response,
                        payload=AssistantReplyPayload(intent=reply.intent, suggestions=list(reply.suggestions)),
                    )
        hint = NEXT_STEP_HINTS[ctx.stage]
        return Reply(
            text=f"I'm not sure what you mean. Next step: {hint}.\n\nTry: {command_placeholder(ctx.campaign)}",
            payload=AssistantReplyPayload(intent="CHAT", suggestions=[hint, 'Say "help" to see what I can do']),
        )

    def _augmented_action(self, ctx: CommandContext, intent: str) -> Reply | None:
        """Map a responder intent onto the same stage-guarded lifecycle operations."""
        campaign = ctx.campaign
        if intent == "CREATE_CAMPAIGN":
            return Reply.from_transition(self.lifecycle.create_campaign(ctx.extraction, campaign))
        if intent == "SHOW_STATUS":
            return self._status(ctx)
        if intent == "HELP":
            return Reply(text=HELP_TEXT, payload=AssistantReplyPayload(intent="HELP"))
        if campaign is None:
            return None
        actions: dict[str, Callable[[Campaign], Transition]] = {
            "GENERATE_CONTENT": self.lifecycle.generate_content,
            "REVIEW": self.lifecycle.submit_review,
            "APPROVE": self.lifecycle.approve,
            "PUBLISH": self.lifecycle.publish,
            "FIX_CONTENT": self.lifecycle.auto_fix,
        }
        action = actions.get(intent)
        return Reply.from_transition(action(campaign)) if action is not None else None


def _format_standalone(generated: GeneratedContent, draft: ContentDraft) -> str:
    lines = [f"**Content Generated!** Brand Score: **{generated.brand_score}%**", ""]
    if draft.subject or draft.body:
        lines.extend([f"**Email subject:** {draft.subject}", draft.body, f"**CTA:** {draft.cta}", ""])
    if draft.sms:
        lines.extend([f"**SMS:** {draft.sms}", ""])
    if draft.social:
        lines.extend([f"**Social:** {draft.social}", " ".join(f"#{tag.lstrip('#')}" for tag in draft.hashtags), ""])
    lines.append('Say "create campaign" to use this content in a campaign.')
    return "\n".join(lines)
