from __future__ import annotations

from trusteye.intent import extract_intent
from trusteye.models import Page
from trusteye.routing import decide_route, navigation_notice


def test_audience_intent_navigates_and_preserves_slots() -> None:
    decision = decide_route(
        extract_intent("Create an audience for inactive customers"),
        current_page=Page.STUDIO,
        has_open_campaign=False,
    )
    assert decision.should_navigate is True
    assert decision.target_page is Page.AUDIENCES
    assert decision.preserved_slots["audience"] == "inactive customers"
    assert navigation_notice(decision) == 'Navigated to Audiences with audience: "inactive customers"'


def test_second_pass_on_destination_never_navigates() -> None:
    extraction = extract_intent("Create an audience for inactive customers")
    first = decide_route(extraction, current_page=Page.STUDIO, has_open_campaign=False)
    second = decide_route(extraction, current_page=first.target_page, has_open_campaign=False)
    assert second.should_navigate is False


def test_campaign_and_content_intents_stay_in_studio_with_open_draft() -> None:
    campaign = decide_route(
        extract_intent("Create a winback campaign"), current_page=Page.STUDIO, has_open_campaign=True
    )
    content = decide_route(
        extract_intent("Create an Instagram post for the spring sale"), current_page=Page.STUDIO, has_open_campaign=True
    )
    assert campaign.should_navigate is False
    assert content.should_navigate is False
    assert content.target_page is Page.CONTENT


def test_content_intent_without_draft_navigates_to_content() -> None:
    decision = decide_route(
        extract_intent("Create an Instagram post for the spring sale"), current_page=Page.STUDIO, has_open_campaign=False
    )
    assert decision.should_navigate is True
    assert decision.target_page is Page.CONTENT


def test_campaign_intent_from_other_page_goes_to_studio() -> None:
    decision = decide_route(
        extract_intent("Create a referral campaign"), current_page=Page.ANALYTICS, has_open_campaign=True
    )
    assert decision.should_navigate is True
    assert decision.target_page is Page.STUDIO


def test_chat_and_field_edits_never_navigate() -> None:
    chat = decide_route(extract_intent("thanks!"), current_page=Page.AUDIENCES, has_open_campaign=False)
    edit = decide_route(extract_intent("change audience to VIP owners"), current_page=Page.STUDIO, has_open_campaign=True)
    assert chat.should_navigate is False
    assert chat.target_page is Page.AUDIENCES
    assert edit.should_navigate is False
