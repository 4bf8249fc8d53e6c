"""Per-operator session: page-scoped conversations, routing and command serialization."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .augmentation import LLMAugmentationResponder, LLMGenerationService
from .collaborators import AugmentationResponder, GenerationService, SiteStateSink
from .dispatcher import CommandContext, CommandDispatcher, Reply
from .gates import LocalGateService
from .intent import extract_intent
from .lifecycle import CampaignLifecycle
from .local_services import InMemoryAudienceService, LocalGenerationService
from .models import (
    Campaign,
    CampaignSummary,
    ContentDraft,
    ConversationMessage,
    MessageOrigin,
    MessagePayload,
    NavigationPayload,
    Page,
    PatchConfirmationPayload,
    RoutingDecision,
    WorkflowSelection,
    WorkflowStage,
)
from .routing import decide_route, navigation_notice
from .settings import RuntimeSettings
from .site_state import HttpSiteStateSink
from .stages import resolve_stage, summarize
from .state_store import CampaignStateStore

logger = logging.getLogger(__name__)

_HOT_EDIT_FIELDS = frozenset({"subject", "body", "cta"})


def _empty_conversations() -> dict[Page, list[ConversationMessage]]:
    return {page: [] for page in Page}


@dataclass
class SessionContext:
    """Explicit session state, keyed by page where the UI keeps per-page state."""

    campaign: Campaign | None = None
    active_page: Page = Page.STUDIO
    conversations: dict[Page, list[ConversationMessage]] = field(default_factory=_empty_conversations)
    selections: dict[Page, WorkflowSelection] = field(default_factory=dict)
    generated_content: ContentDraft | None = None
    summary: CampaignSummary | None = None


@dataclass
class CommandResult:
    """What one command changed: new messages per page, the campaign, and the routing decision."""

    conversation_delta: dict[Page, list[ConversationMessage]]
    campaign_delta: Campaign | None
    campaign_changed: bool
    routing_delta: RoutingDecision | None
    page: Page
    stage: WorkflowStage

    @property
    def messages(self) -> list[ConversationMessage]:
        return [message for messages in self.conversation_delta.values() for message in messages]

    @property
    def reply(self) -> ConversationMessage | None:
        """The last assistant message produced by the command."""
        for message in reversed(self.messages):
            if message.origin is MessageOrigin.ASSISTANT:
                return message
        return None


class _TicketLock:
    """FIFO mutual exclusion: waiters are served strictly in arrival order."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0

    @contextmanager
    def hold(self) -> Iterator[None]:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._condition.wait()
        try:
            yield
        finally:
            with self._condition:
                self._now_serving += 1
                self._condition.notify_all()


class Session:
    """Runs operator commands one at a time against a single campaign draft.

    Concurrent :meth:`submit_command` calls queue in FIFO order; the command
    being processed is visible through :attr:`in_flight`.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        session_id: str | None = None,
        context: SessionContext | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.session_id = session_id or f"session-{uuid.uuid4().hex[:8]}"
        self.context = context or SessionContext()
        self._lock = _TicketLock()
        self._in_flight: str | None = None
        self._state_lock = threading.Lock()

    @property
    def campaign(self) -> Campaign | None:
        return self.context.campaign

    @property
    def in_flight(self) -> str | None:
        """Text of the command currently being processed, if any."""
        with self._state_lock:
            return self._in_flight

    def conversation(self, page: Page | None = None) -> list[ConversationMessage]:
        return list(self.context.conversations[page or self.context.active_page])

    def query_workflow_stage(self) -> WorkflowStage:
        return resolve_stage(self.context.campaign)

    def submit_command(self, text: str, page: Page | None = None) -> CommandResult:
        """Process one operator command and return what it changed.

        Args:
            text: Raw command text.
            page: Page the command was typed on. Defaults to the active page.
        """
        with self._lock.hold():
            with self._state_lock:
                self._in_flight = text
            try:
                return self._process(text, page)
            finally:
                with self._state_lock:
                    self._in_flight = None

    # ------------------------------------------------------------------
    # Command processing
    # ------------------------------------------------------------------

    def _process(self, text: str, page: Page | None) -> CommandResult:
        ctx = self.context
        current = page or ctx.active_page
        ctx.active_page = current
        delta: dict[Page, list[ConversationMessage]] = {}
        self._append(current, MessageOrigin.USER, text, None, delta)

        extraction = extract_intent(text)
        decision: RoutingDecision | None = None
        if not extraction.ambiguous:
            decision = decide_route(extraction, current_page=current, has_open_campaign=self._has_open_campaign())
            if decision.should_navigate:
                self._carry_slots(decision)
                self._append(
                    decision.target_page,
                    MessageOrigin.SYSTEM,
                    navigation_notice(decision),
                    NavigationPayload(
                        source_page=current,
                        target_page=decision.target_page,
                        preserved_slots=dict(decision.preserved_slots),
                    ),
                    delta,
                )
                logger.info("Navigated %s -> %s for %r", current.value, decision.target_page.value, text)
                current = decision.target_page
                ctx.active_page = current
                # Re-evaluate on the destination page; the target now equals the current page.
                second = decide_route(extraction, current_page=current, has_open_campaign=self._has_open_campaign())
                if second.should_navigate:
                    logger.warning("Ignoring repeated navigation to %s for %r", second.target_page.value, text)

        reply = self.dispatcher.dispatch(
            CommandContext(
                text=text,
                page=current,
                campaign=ctx.campaign,
                extraction=extraction,
                session_id=self.session_id,
                generated_content=ctx.generated_content,
            )
        )
        changed = self._apply(reply, current)
        self._append(current, MessageOrigin.ASSISTANT, reply.text, reply.payload, delta)
        logger.debug("Command %r handled by rule %s on %s", text, reply.rule, current.value)
        return CommandResult(
            conversation_delta=delta,
            campaign_delta=ctx.campaign if changed else None,
            campaign_changed=changed,
            routing_delta=decision,
            page=current,
            stage=resolve_stage(ctx.campaign),
        )

    def _apply(self, reply: Reply, page: Page) -> bool:
        ctx = self.context
        if reply.generated_content is not None:
            ctx.generated_content = reply.generated_content
        transition = reply.transition
        if transition is None:
            return False
        ctx.campaign = transition.campaign
        if transition.campaign is None:
            ctx.generated_content = None
        self.refresh_projections()
        payload = transition.payload
        if (
            isinstance(payload, PatchConfirmationPayload)
            and payload.field in _HOT_EDIT_FIELDS
            and transition.campaign is not None
            and transition.campaign.content is not None
        ):
            self.replace_latest_content(page, transition.campaign.campaign_id, transition.campaign.content)
        return True

    def _has_open_campaign(self) -> bool:
        stage = resolve_stage(self.context.campaign)
        return stage not in {WorkflowStage.NO_CAMPAIGN, WorkflowStage.PUBLISHED}

    def _append(
        self,
        page: Page,
        origin: MessageOrigin,
        text: str,
        payload: MessagePayload | None,
        delta: dict[Page, list[ConversationMessage]],
    ) -> ConversationMessage:
        message = ConversationMessage(
            message_id=f"msg-{uuid.uuid4().hex[:12]}",
            origin=origin,
            text=text,
            payload=payload,
        )
        self.context.conversations[page].append(message)
        delta.setdefault(page, []).append(message)
        return message

    def _carry_slots(self, decision: RoutingDecision) -> None:
        selection = self.context.selections.setdefault(decision.target_page, WorkflowSelection())
        slots = decision.preserved_slots
        if "archetype" in slots:
            selection.archetype = slots["archetype"]
        if "audience" in slots:
            selection.audience = slots["audience"]
        if "channels" in slots:
            selection.channels = slots["channels"].split(",")

    # ------------------------------------------------------------------
    # Derived projections
    # ------------------------------------------------------------------

    def refresh_projections(self) -> None:
        """Recompute the summary panel and the studio workflow selection from the campaign."""
        ctx = self.context
        campaign = ctx.campaign
        ctx.summary = summarize(campaign) if campaign is not None else None
        if campaign is None or resolve_stage(campaign) is WorkflowStage.PUBLISHED:
            ctx.selections.pop(Page.STUDIO, None)
            return
        ctx.selections[Page.STUDIO] = WorkflowSelection(
            archetype=campaign.archetype.value,
            audience=campaign.audience_description,
            channels=list(campaign.channels),
            has_content=campaign.content is not None and campaign.content.has_body,
            campaign_name=campaign.name,
        )

    def replace_latest_content(self, page: Page, campaign_id: str, content: ContentDraft) -> bool:
        """Swap the content on the most recent message of ``page`` that carries ``campaign_id``'s content.

        Standalone drafts (no campaign id) are never touched. This is the only
        in-place change ever made to a conversation.
        """
        messages = self.context.conversations[page]
        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            if message.content is None or message.payload is None:
                continue
            if getattr(message.payload, "campaign_id", None) != campaign_id:
                continue
            payload = message.payload.model_copy(update={"content": content})
            messages[index] = message.model_copy(update={"payload": payload})
            return True
        return False


def build_session(
    settings: RuntimeSettings | None = None,
    *,
    repo_root: Path | None = None,
    generation: GenerationService | None = None,
    augmentation: AugmentationResponder | None = None,
    site_state: SiteStateSink | None = None,
) -> Session:
    """Wire a session with the local reference collaborators (or the LLM ones when enabled)."""
    resolved = settings or RuntimeSettings.from_env()
    root = repo_root if repo_root is not None else Path.cwd()
    store = CampaignStateStore(resolved.state_store_path(root))
    env_file = root / ".env"
    if generation is None:
        generation = (
            LLMGenerationService(model_name=resolved.model_name, env_file=env_file)
            if resolved.use_llm
            else LocalGenerationService()
        )
    if augmentation is None and resolved.use_llm:
        augmentation = LLMAugmentationResponder(model_name=resolved.model_name, env_file=env_file)
    lifecycle = CampaignLifecycle(
        settings=resolved,
        store=store,
        generation=generation,
        gates=LocalGateService(store=store, settings=resolved),
        audiences=InMemoryAudienceService(),
        site_state=site_state or HttpSiteStateSink(resolved.site_state_url),
    )
    return Session(CommandDispatcher(lifecycle, augmentation=augmentation))
