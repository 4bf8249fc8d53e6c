from __future__ import annotations

import threading
from pathlib import Path

from conftest import FakeGeneration
from trusteye.dispatcher import CommandDispatcher
from trusteye.errors import ErrorKind
from trusteye.gates import LocalGateService
from trusteye.lifecycle import CampaignLifecycle
from trusteye.local_services import InMemoryAudienceService
from trusteye.models import (
    CampaignCompletedPayload,
    CampaignCreatedPayload,
    ClarificationPayload,
    ContentGeneratedPayload,
    ErrorPayload,
    GateResultsPayload,
    MessageOrigin,
    NavigationPayload,
    Page,
    ReceiptPayload,
    StatusPayload,
    WorkflowStage,
)
from trusteye.session import Session, build_session
from trusteye.settings import RuntimeSettings
from trusteye.site_state import RecordingSiteStateSink
from trusteye.state_store import CampaignStateStore

REFERRAL_REQUEST = "Create a referral campaign for 5-star reviewers"


def test_ambiguous_command_asks_and_changes_nothing(session: Session) -> None:
    result = session.submit_command("create template")
    assert isinstance(result.reply.payload, ClarificationPayload)
    assert result.reply.payload.error_kind is ErrorKind.AMBIGUOUS_COMMAND
    assert result.campaign_changed is False
    assert result.routing_delta is None
    assert session.campaign is None
    assert session.query_workflow_stage() is WorkflowStage.NO_CAMPAIGN


def test_full_command_flow(session: Session, store: CampaignStateStore) -> None:
    created = session.submit_command(REFERRAL_REQUEST)
    assert isinstance(created.reply.payload, CampaignCreatedPayload)
    assert created.stage is WorkflowStage.CAMPAIGN_CREATED
    assert created.campaign_changed is True
    assert session.context.selections[Page.STUDIO].archetype == "referral"

    generated = session.submit_command("yes")
    assert isinstance(generated.reply.payload, ContentGeneratedPayload)
    assert generated.stage is WorkflowStage.CONTENT_READY

    reviewed = session.submit_command("yes")
    assert isinstance(reviewed.reply.payload, GateResultsPayload)
    assert reviewed.stage is WorkflowStage.AWAITING_APPROVAL

    approved = session.submit_command("approve")
    assert approved.stage is WorkflowStage.APPROVED

    published = session.submit_command("publish")
    assert isinstance(published.reply.payload, CampaignCompletedPayload)
    assert published.stage is WorkflowStage.PUBLISHED
    receipt_id = published.reply.payload.receipt.receipt_id
    assert store.list_receipts() == [receipt_id]

    shown = session.submit_command("show receipt")
    assert isinstance(shown.reply.payload, ReceiptPayload)
    assert shown.reply.payload.receipt.receipt_id == receipt_id
    assert receipt_id in shown.reply.text

    # user + assistant for each of the six commands, all in the studio
    assert len(session.conversation(Page.STUDIO)) == 12
    assert session.context.summary is not None
    assert session.context.summary.stage is WorkflowStage.PUBLISHED


def test_publish_before_review_leaves_campaign_unchanged(session: Session) -> None:
    session.submit_command(REFERRAL_REQUEST)
    session.submit_command("generate content")
    before = session.campaign
    assert before is not None
    result = session.submit_command("publish")
    assert isinstance(result.reply.payload, ErrorPayload)
    assert result.reply.payload.error_kind is ErrorKind.ILLEGAL_TRANSITION
    assert result.campaign_changed is False
    assert session.campaign is before
    assert result.stage is WorkflowStage.CONTENT_READY


def test_navigation_notice_lands_on_destination_only(session: Session) -> None:
    first = session.submit_command("Create an audience for inactive customers")
    assert first.routing_delta is not None and first.routing_delta.should_navigate is True
    assert first.page is Page.AUDIENCES
    assert session.context.active_page is Page.AUDIENCES

    studio = session.conversation(Page.STUDIO)
    assert [message.origin for message in studio] == [MessageOrigin.USER]
    audiences = session.conversation(Page.AUDIENCES)
    assert [message.origin for message in audiences] == [MessageOrigin.SYSTEM, MessageOrigin.ASSISTANT]
    notice = audiences[0]
    assert isinstance(notice.payload, NavigationPayload)
    assert notice.payload.source_page is Page.STUDIO
    assert notice.text == 'Navigated to Audiences with audience: "inactive customers"'
    assert "Created audience" in audiences[1].text
    assert session.context.selections[Page.AUDIENCES].audience == "inactive customers"

    second = session.submit_command("Create an audience for inactive customers")
    assert second.routing_delta is not None and second.routing_delta.should_navigate is False
    assert "Found existing audience" in second.reply.text
    assert not any(isinstance(message.payload, NavigationPayload) for message in second.messages)


def test_guarded_commands_without_campaign(session: Session) -> None:
    for text in ("approve", "fix it"):
        result = session.submit_command(text)
        assert isinstance(result.reply.payload, ErrorPayload), text
        assert "create a campaign first" in result.reply.text
    assert session.campaign is None


def test_subject_edit_updates_latest_content_message(session: Session) -> None:
    session.submit_command(REFERRAL_REQUEST)
    session.submit_command("yes")
    result = session.submit_command("change subject to Spring savings inside")
    assert result.campaign_changed is True
    assert session.campaign is not None and session.campaign.content is not None
    assert session.campaign.content.subject == "Spring savings inside"

    content_messages = [
        message for message in session.conversation(Page.STUDIO) if isinstance(message.payload, ContentGeneratedPayload)
    ]
    assert len(content_messages) == 1
    assert content_messages[0].payload.content.subject == "Spring savings inside"


def test_standalone_content_goes_to_content_page(session: Session) -> None:
    result = session.submit_command("Create an Instagram post for the spring sale")
    assert result.page is Page.CONTENT
    assert isinstance(result.reply.payload, ContentGeneratedPayload)
    assert result.reply.payload.channels == ["social"]
    assert session.campaign is None
    assert session.context.generated_content is not None
    assert session.context.generated_content.social


def test_channel_content_request_keeps_open_campaign(session: Session) -> None:
    session.submit_command(REFERRAL_REQUEST)
    session.submit_command("yes")
    before = session.campaign
    assert before is not None

    result = session.submit_command("Create an SMS for the spring sale")
    assert isinstance(result.reply.payload, ContentGeneratedPayload)
    assert result.reply.payload.channels == ["sms"]
    assert result.reply.payload.campaign_id is None
    assert result.campaign_changed is False
    assert session.campaign is before
    assert session.campaign.revision == before.revision
    assert session.campaign.channels == ["email"]
    assert session.context.generated_content is not None
    assert session.context.generated_content.sms


def test_campaign_subject_edit_leaves_standalone_draft_alone(session: Session) -> None:
    session.submit_command("Create an Instagram post for the spring sale", page=Page.CONTENT)
    standalone = [
        message for message in session.conversation(Page.CONTENT) if isinstance(message.payload, ContentGeneratedPayload)
    ]
    assert len(standalone) == 1
    original_subject = standalone[0].payload.content.subject

    session.submit_command(REFERRAL_REQUEST, page=Page.STUDIO)
    session.submit_command("yes", page=Page.STUDIO)
    session.submit_command("change subject to Totally new subject", page=Page.CONTENT)

    assert session.campaign is not None and session.campaign.content is not None
    assert session.campaign.content.subject == "Totally new subject"
    still_standalone = [
        message
        for message in session.conversation(Page.CONTENT)
        if isinstance(message.payload, ContentGeneratedPayload) and message.payload.campaign_id is None
    ]
    assert len(still_standalone) == 1
    assert still_standalone[0].payload.content.subject == original_subject


def test_status_from_another_page(session: Session) -> None:
    session.submit_command(REFERRAL_REQUEST)
    result = session.submit_command("status", page=Page.ANALYTICS)
    assert result.page is Page.ANALYTICS
    assert isinstance(result.reply.payload, StatusPayload)
    assert result.reply.payload.stage is WorkflowStage.CAMPAIGN_CREATED


def test_start_new_clears_campaign(session: Session) -> None:
    session.submit_command(REFERRAL_REQUEST)
    result = session.submit_command("start new")
    assert result.campaign_changed is True
    assert session.campaign is None
    assert Page.STUDIO not in session.context.selections


def test_commands_are_serialized_in_arrival_order(
    settings: RuntimeSettings,
    store: CampaignStateStore,
    gates: LocalGateService,
    site_state: RecordingSiteStateSink,
) -> None:
    generation = FakeGeneration()
    lifecycle = CampaignLifecycle(
        settings=settings,
        store=store,
        generation=generation,
        gates=gates,
        audiences=InMemoryAudienceService(),
        site_state=site_state,
    )
    session = Session(CommandDispatcher(lifecycle), session_id="concurrency")
    session.submit_command(REFERRAL_REQUEST)
    generation.release = threading.Event()

    results: dict[str, object] = {}

    def run(name: str, text: str) -> None:
        results[name] = session.submit_command(text)

    first = threading.Thread(target=run, args=("first", "yes"))
    first.start()
    assert generation.entered.wait(timeout=5)
    assert session.in_flight == "yes"

    second = threading.Thread(target=run, args=("second", "status"))
    second.start()
    second.join(timeout=0.2)
    assert second.is_alive()
    assert "second" not in results

    generation.release.set()
    first.join(timeout=5)
    second.join(timeout=5)
    assert session.in_flight is None
    status = results["second"]
    assert status.stage is WorkflowStage.CONTENT_READY  # type: ignore[attr-defined]
    assert isinstance(status.reply.payload, StatusPayload)  # type: ignore[attr-defined]


def test_build_session_uses_local_services(tmp_path: Path) -> None:
    settings = RuntimeSettings(state_store_root="store").normalized()
    session = build_session(settings, repo_root=tmp_path, site_state=RecordingSiteStateSink())
    result = session.submit_command(REFERRAL_REQUEST)
    assert result.stage is WorkflowStage.CAMPAIGN_CREATED
    assert (tmp_path / "store" / "campaigns").is_dir()
