from __future__ import annotations

import logging

from .models import IntentExtraction, Page, PrimaryIntent, RoutingDecision

logger = logging.getLogger(__name__)

INTENT_PAGES: dict[PrimaryIntent, Page] = {
    PrimaryIntent.CAMPAIGN: Page.STUDIO,
    PrimaryIntent.CONTENT: Page.CONTENT,
    PrimaryIntent.AUDIENCE: Page.AUDIENCES,
    PrimaryIntent.AUTOMATION: Page.AUTOMATIONS,
    PrimaryIntent.ANALYTICS: Page.ANALYTICS,
    PrimaryIntent.INTEGRATION: Page.INTEGRATIONS,
}

NEXT_ACTION_HINTS: dict[PrimaryIntent, str] = {
    PrimaryIntent.CAMPAIGN: 'After creating, say "generate content" to create the message.',
    PrimaryIntent.CONTENT: 'After creating, say "create campaign" to use it.',
    PrimaryIntent.AUDIENCE: 'After creating, say "create campaign for this audience" to target them.',
    PrimaryIntent.AUTOMATION: "After creating, the rule will run automatically when triggered.",
}


def target_page_for(intent: PrimaryIntent, current_page: Page) -> Page:
    """Chat stays on the current page; every other intent has a home page."""
    return INTENT_PAGES.get(intent, current_page)


def decide_route(
    extraction: IntentExtraction,
    *,
    current_page: Page,
    has_open_campaign: bool,
) -> RoutingDecision:
    """Decide whether a command should move the session to another page.

    Navigation is suppressed while a campaign draft is open in the studio and
    the command is about that campaign or its content, and for field edits,
    which always apply to the open draft.

    Args:
        extraction: Result of :func:`trusteye.intent.extract_intent`.
        current_page: Page the command was submitted on.
        has_open_campaign: Whether the session has a campaign draft.

    Returns:
        The routing decision. ``preserved_slots`` carries every extracted slot
        so the destination page can seed its workflow selection.
    """
    intent = extraction.primary_intent
    target = target_page_for(intent, current_page)
    in_studio_with_draft = has_open_campaign and current_page is Page.STUDIO
    suppressed = (
        (intent is PrimaryIntent.CAMPAIGN and in_studio_with_draft)
        or (intent is PrimaryIntent.CONTENT and in_studio_with_draft)
        or extraction.slots.field_edit is not None
    )
    should_navigate = intent is not PrimaryIntent.CHAT and target is not current_page and not suppressed
    decision = RoutingDecision(
        primary_intent=intent,
        target_page=target,
        should_navigate=should_navigate,
        preserved_slots=extraction.slots.as_context(),
        next_action_hint=NEXT_ACTION_HINTS.get(intent, ""),
    )
    logger.debug(
        "Routing %r on %s: intent=%s target=%s navigate=%s",
        extraction.text,
        current_page.value,
        intent.value,
        decision.target_page.value,
        should_navigate,
    )
    return decision


def navigation_notice(decision: RoutingDecision) -> str:
    """System notice appended to the destination page's conversation."""
    text = f"Navigated to {decision.target_page.value.capitalize()}"
    audience = decision.preserved_slots.get("audience")
    if audience:
        text += f' with audience: "{audience}"'
    return text
