from __future__ import annotations

import pytest

from conftest import FakeGeneration
from trusteye.collaborators import AugmentationReply
from trusteye.dispatcher import CommandContext, CommandDispatcher, is_global_command
from trusteye.errors import ErrorKind
from trusteye.intent import extract_intent
from trusteye.lifecycle import CampaignLifecycle
from trusteye.models import (
    ApprovalPayload,
    Archetype,
    AssistantReplyPayload,
    Campaign,
    CampaignCreatedPayload,
    ClarificationPayload,
    ContentFixedPayload,
    ContentGeneratedPayload,
    ErrorPayload,
    GateResultsPayload,
    ListingPayload,
    Page,
    PatchConfirmationPayload,
    StatusPayload,
    WorkflowStage,
)
from trusteye.stages import resolve_stage


def _ctx(text: str, campaign: Campaign | None = None, page: Page = Page.STUDIO) -> CommandContext:
    return CommandContext(text=text, page=page, campaign=campaign, extraction=extract_intent(text))


def _created(lifecycle: CampaignLifecycle) -> Campaign:
    campaign = lifecycle.create_campaign(extract_intent("Create a referral campaign for 5-star reviewers")).campaign
    assert campaign is not None
    return campaign


def _ready(lifecycle: CampaignLifecycle) -> Campaign:
    campaign = lifecycle.generate_content(_created(lifecycle)).campaign
    assert campaign is not None
    return campaign


class ScriptedAugmentation:
    def __init__(self, reply: AugmentationReply | None = None) -> None:
        self.reply = reply
        self.calls: list[str] = []

    def process_command(self, message: str, session_id: str, brand_id: str, user_id: str) -> AugmentationReply:
        self.calls.append(message)
        if self.reply is None:
            raise RuntimeError("responder offline")
        return self.reply


def test_rule_order(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    assert [rule.name for rule in dispatcher.rules] == [
        "clarification",
        "page",
        "create_campaign",
        "generate_content",
        "field_edit",
        "contextual",
        "lifecycle",
        "affirmative",
        "status",
        "guarded",
        "responder",
    ]


def test_ambiguous_creation_asks_for_clarification(lifecycle: CampaignLifecycle) -> None:
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("create template"))
    assert reply.rule == "clarification"
    assert isinstance(reply.payload, ClarificationPayload)
    assert reply.payload.error_kind is ErrorKind.AMBIGUOUS_COMMAND
    assert len(reply.payload.options) == 4
    assert reply.transition is None


def test_explicit_creation_replaces_open_draft(lifecycle: CampaignLifecycle) -> None:
    draft = _created(lifecycle)
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("Create a winback campaign for lapsed owners", draft))
    assert reply.rule == "create_campaign"
    assert reply.transition is not None and reply.transition.campaign is not None
    assert reply.transition.campaign.archetype is Archetype.WINBACK
    assert reply.transition.campaign.campaign_id != draft.campaign_id


def test_archetype_only_creates_only_without_open_draft(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    fresh = dispatcher.dispatch(_ctx("winback for lapsed owners"))
    assert fresh.rule == "create_campaign"
    assert isinstance(fresh.payload, CampaignCreatedPayload)

    open_draft = dispatcher.dispatch(_ctx("winback for lapsed owners", _created(lifecycle)))
    assert open_draft.rule == "responder"
    assert open_draft.transition is None


@pytest.mark.parametrize(
    ("steps", "expected_payload"),
    [
        (0, ContentGeneratedPayload),
        (1, GateResultsPayload),
    ],
)
def test_affirmative_runs_next_step(lifecycle: CampaignLifecycle, steps: int, expected_payload: type) -> None:
    campaign = _created(lifecycle) if steps == 0 else _ready(lifecycle)
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("yes", campaign))
    assert reply.rule == "affirmative"
    assert isinstance(reply.payload, expected_payload)


def test_affirmative_without_campaign_points_to_creation(lifecycle: CampaignLifecycle) -> None:
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("ok"))
    assert isinstance(reply.payload, StatusPayload)
    assert reply.payload.stage is WorkflowStage.NO_CAMPAIGN
    assert reply.transition is None


def test_affirmative_fixes_failed_content(lifecycle: CampaignLifecycle, generation: FakeGeneration) -> None:
    generation.body = "Deals that kill, [First Name]."
    failed = lifecycle.submit_review(_ready(lifecycle)).campaign
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("go ahead", failed))
    assert isinstance(reply.payload, ContentFixedPayload)
    assert reply.payload.removed_terms == ["kill"]


def test_illegal_transition_becomes_error_message(lifecycle: CampaignLifecycle) -> None:
    ready = _ready(lifecycle)
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("publish", ready))
    assert reply.rule == "lifecycle"
    assert reply.transition is None
    assert isinstance(reply.payload, ErrorPayload)
    assert reply.payload.error_kind is ErrorKind.ILLEGAL_TRANSITION
    assert reply.payload.operation == "publish"
    assert resolve_stage(ready) is WorkflowStage.CONTENT_READY


def test_approval_pending_on_repeat_review(lifecycle: CampaignLifecycle) -> None:
    awaiting = lifecycle.submit_review(_ready(lifecycle)).campaign
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("review", awaiting))
    assert isinstance(reply.payload, ErrorPayload)
    assert reply.payload.error_kind is ErrorKind.APPROVAL_PENDING


def test_unexpected_failure_is_reported_not_raised(lifecycle: CampaignLifecycle, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args: object, **kwargs: object) -> None:
        raise KeyError("boom")

    monkeypatch.setattr(lifecycle, "generate_content", boom)
    campaign = _created(lifecycle)
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("yes", campaign))
    assert isinstance(reply.payload, ErrorPayload)
    assert reply.payload.error_kind is ErrorKind.ILLEGAL_TRANSITION
    assert reply.transition is None


def test_reject_keeps_reason_casing(lifecycle: CampaignLifecycle) -> None:
    awaiting = lifecycle.submit_review(_ready(lifecycle)).campaign
    reply = CommandDispatcher(lifecycle).dispatch(_ctx("Reject because Tone is off", awaiting))
    assert isinstance(reply.payload, ApprovalPayload)
    assert reply.payload.decision == "rejected"
    assert reply.payload.reason == "Tone is off"


def test_channel_edit_and_term_removal(lifecycle: CampaignLifecycle, generation: FakeGeneration) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    edited = dispatcher.dispatch(_ctx("use email and sms", _created(lifecycle)))
    assert edited.rule == "field_edit"
    assert isinstance(edited.payload, PatchConfirmationPayload)
    assert edited.transition is not None and edited.transition.campaign is not None
    assert edited.transition.campaign.channels == ["email", "sms"]

    generation.body = "Hi [First Name], damn good deals."
    removed = dispatcher.dispatch(_ctx("remove damn", _ready(lifecycle)))
    assert removed.rule == "contextual"
    assert isinstance(removed.payload, ContentFixedPayload)
    assert removed.payload.content.body == "Hi [First Name], good deals."


def test_contextual_verbs_before_content(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    created = _created(lifecycle)

    edit = dispatcher.dispatch(_ctx("edit it", created))
    assert edit.rule == "contextual"
    assert edit.transition is None
    assert "no content to edit yet" in edit.text

    removal = dispatcher.dispatch(_ctx("remove damn", created))
    assert isinstance(removal.payload, ErrorPayload)
    assert removal.payload.error_kind is ErrorKind.ILLEGAL_TRANSITION
    assert removal.payload.operation == "remove_term"


def test_content_request_with_open_campaign_is_standalone(lifecycle: CampaignLifecycle, generation: FakeGeneration) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    ready = _ready(lifecycle)
    reply = dispatcher.dispatch(_ctx("Create an SMS for the spring sale", ready))
    assert reply.rule == "generate_content"
    assert reply.transition is None
    assert reply.generated_content is not None
    assert generation.requests[-1].channels == ["sms"]
    assert isinstance(reply.payload, ContentGeneratedPayload)
    assert reply.payload.channels == ["sms"]
    assert reply.payload.campaign_id is None

    regenerated = dispatcher.dispatch(_ctx("generate content", ready))
    assert regenerated.transition is not None and regenerated.transition.campaign is not None
    assert regenerated.transition.campaign.revision == ready.revision + 1


def test_guarded_verbs_without_campaign(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    for text in ("approve", "fix it", "publish now"):
        reply = dispatcher.dispatch(_ctx(text))
        assert reply.rule == "guarded", text
        assert isinstance(reply.payload, ErrorPayload)
        assert reply.payload.error_kind is ErrorKind.ILLEGAL_TRANSITION


def test_help_and_fallback(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    helped = dispatcher.dispatch(_ctx("help"))
    assert isinstance(helped.payload, AssistantReplyPayload)
    assert helped.payload.intent == "HELP"
    fallback = dispatcher.dispatch(_ctx("what a lovely day"))
    assert fallback.rule == "responder"
    assert isinstance(fallback.payload, AssistantReplyPayload)
    assert fallback.payload.intent == "CHAT"


def test_page_handler_declines_global_commands(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    reply = dispatcher.dispatch(_ctx("yes", _created(lifecycle), page=Page.ANALYTICS))
    assert reply.rule == "affirmative"
    listing = dispatcher.dispatch(_ctx("show me everything", page=Page.ANALYTICS))
    assert listing.rule == "page"
    assert isinstance(listing.payload, ListingPayload)


def test_automation_rules_are_saved(lifecycle: CampaignLifecycle) -> None:
    dispatcher = CommandDispatcher(lifecycle)
    reply = dispatcher.dispatch(
        _ctx("when a customer leaves a 5-star review, send a thank you note", page=Page.AUTOMATIONS)
    )
    assert reply.rule == "page"
    assert dispatcher.automations[0].trigger == "a customer leaves a 5-star review"
    assert dispatcher.automations[0].action == "send a thank you note"


def test_augmentation_intent_maps_to_lifecycle(lifecycle: CampaignLifecycle) -> None:
    augmentation = ScriptedAugmentation(AugmentationReply(intent="REVIEW", response="Submitting for review"))
    dispatcher = CommandDispatcher(lifecycle, augmentation=augmentation)
    reply = dispatcher.dispatch(_ctx("this looks great to me", _ready(lifecycle)))
    assert reply.rule == "responder"
    assert isinstance(reply.payload, GateResultsPayload)
    assert augmentation.calls == ["this looks great to me"]


def test_augmentation_failure_falls_back_to_page_rules(lifecycle: CampaignLifecycle) -> None:
    augmentation = ScriptedAugmentation(None)
    dispatcher = CommandDispatcher(lifecycle, augmentation=augmentation)
    reply = dispatcher.dispatch(_ctx("how are we doing", page=Page.ANALYTICS))
    assert reply.rule == "page"
    assert reply.text == "No published campaigns yet."
    assert augmentation.calls == ["how are we doing"]


def test_is_global_command() -> None:
    for text in ("yes", "status", "start new", "show receipt", "approve", "change subject to hi"):
        assert is_global_command(text, extract_intent(text)), text
    assert not is_global_command("list all audiences", extract_intent("list all audiences"))
