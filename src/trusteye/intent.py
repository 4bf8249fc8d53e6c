"""Rule-based intent and slot extraction for operator commands.

Everything here is a pure function of the command text: identical input
always yields an identical :class:`~trusteye.models.IntentExtraction`.
"""

from __future__ import annotations

import re

from .models import Archetype, FieldEdit, IntentExtraction, IntentSlots, PrimaryIntent

CREATION_VERB_RE = re.compile(r"\b(?:create|make|generate|build)")

# Ordered: the first matching explicit noun decides the intent.
_TARGET_NOUNS: tuple[tuple[PrimaryIntent, tuple[str, ...]], ...] = (
    (PrimaryIntent.CAMPAIGN, ("campaign",)),
    (PrimaryIntent.AUDIENCE, ("audience", "segment")),
    (PrimaryIntent.AUTOMATION, ("automation", "rule")),
    (PrimaryIntent.ANALYTICS, ("analytics", "metrics", "performance")),
    (PrimaryIntent.INTEGRATION, ("integration", "connect")),
)

# "template" is deliberately absent: it only counts when qualified by one of these.
CONTENT_NOUNS: tuple[str, ...] = (
    "content",
    "post",
    "email",
    "sms",
    "text message",
    "instagram",
    "linkedin",
    "twitter",
    "facebook",
    "social",
    "banner",
    "copy",
)

_PRONOUN_OBJECT_RE = re.compile(r"\b(?:create|make|generate|build)\s+(?:it|this|that|them)\b")

ARCHETYPE_ALIASES: dict[Archetype, tuple[str, ...]] = {
    Archetype.REFERRAL: ("refer a friend", "5 star", "5-star", "five star", "happy customer"),
    Archetype.RECOVERY: ("bad review", "negative review", "unhappy", "1 star", "2 star", "1-star", "2-star"),
    Archetype.CONQUEST: ("competitor",),
    Archetype.WINBACK: ("win back", "win-back", "inactive", "lapsed"),
    Archetype.LOYALTY: ("vip", "reward", "points"),
    Archetype.SERVICE: ("maintenance", "service reminder", "oil change"),
    Archetype.WELCOME: ("new customer", "onboarding"),
    Archetype.BIRTHDAY: ("birthdays",),
    Archetype.HOLIDAY: ("christmas", "thanksgiving", "new year", "seasonal", "black friday"),
}

TONE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("friendly", ("friendly", "warm")),
    ("professional", ("professional", "formal")),
    ("casual", ("casual", "fun", "playful")),
    ("urgent", ("urgent",)),
)

_URGENCY_RE = re.compile(r"\b(?:urgent|limited[- ]time|expires?|hurry|last chance|ends? (?:soon|today))\b")

# Channel vocabulary in canonical order.
CHANNEL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("email", ("email", "e-mail")),
    ("sms", ("sms", "text message", "texting")),
    ("slack", ("slack",)),
    ("website", ("website", "site banner", "banner", "web site")),
    ("push", ("push",)),
    ("social", ("social", "instagram", "facebook", "linkedin", "twitter")),
)

_AUDIENCE_NOUNS = (
    r"customers?|users?|reviewers?|buyers?|members?|owners?|visitors?|leads?|"
    r"subscribers?|drivers?|clients?|shoppers?|families|students|parents|bookers?"
)
_AUDIENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"\b(?:for|targeting|target|to)\s+(?:the\s+|our\s+|all\s+)?((?:[\w$%'+-]+\s+){{0,4}}?(?:{_AUDIENCE_NOUNS}))\b",
        re.IGNORECASE,
    ),
    re.compile(r"\baudience\s*[:=]?\s*[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(
        r"\bfor\s+(?![\d$])(?:the\s+|our\s+)?(.+?)(?:\s+(?:campaign|via|with|on|using|by|at|in|to|through)\b|[.,!?]|$)",
        re.IGNORECASE,
    ),
)

_PERCENT_OFFER_RE = re.compile(r"(\d{1,3})\s*(?:%|percent)\s*(?:off|discount)?", re.IGNORECASE)
_DOLLAR_OFFER_RE = re.compile(r"\$\s?(\d+(?:\.\d{2})?)")
_CTA_RE = re.compile(
    r"\b(?:cta|call to action|button)(?:\s+text)?\s*(?:[:=]|to|as|of|saying|reading)?\s*[\"“']([^\"”']+)[\"”']",
    re.IGNORECASE,
)

EDITABLE_FIELDS: dict[str, str] = {
    "subject line": "subject",
    "subject": "subject",
    "email body": "body",
    "body": "body",
    "message": "body",
    "call to action": "cta",
    "cta": "cta",
    "button": "cta",
    "target audience": "audience",
    "audience": "audience",
    "channels": "channels",
    "channel": "channels",
}
_FIELD_EDIT_RE = re.compile(
    r"^\s*(?:set|change|edit|update|make)\s+(?:the\s+)?("
    + "|".join(re.escape(name) for name in EDITABLE_FIELDS)
    + r")\s+(?:to|as|=|:)\s*(.+?)\s*$",
    re.IGNORECASE | re.DOTALL,
)

CLARIFICATION_OPTIONS: tuple[str, ...] = (
    "Campaign - marketing outreach (referral, recovery, winback)",
    "Content - email, SMS, or social post",
    "Audience - customer segment for targeting",
    "Automation - rule (when X happens, do Y)",
)
CLARIFICATION_TEXT = (
    "**What would you like to create?**\n\n"
    + "\n".join(f"- {option}" for option in CLARIFICATION_OPTIONS)
    + '\n\nTry: "Create a referral campaign" or "Create an Instagram post for the spring sale"'
)


def _has_keyword(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}", text) is not None


def has_creation_verb(text: str) -> bool:
    return CREATION_VERB_RE.search(text.lower()) is not None


def detect_primary_intent(text: str, *, archetype: Archetype | None = None) -> PrimaryIntent:
    """Map command text to a primary intent.

    Explicit target nouns win over a creation-verb-plus-content-noun signal. A
    creation verb paired with an archetype keyword ("make a winback for lapsed
    owners") is treated as a campaign request.
    """
    lowered = text.lower()
    for intent, nouns in _TARGET_NOUNS:
        if any(_has_keyword(lowered, noun) for noun in nouns):
            return intent
    if has_creation_verb(lowered):
        if any(_has_keyword(lowered, noun) for noun in CONTENT_NOUNS):
            return PrimaryIntent.CONTENT
        if archetype is not None:
            return PrimaryIntent.CAMPAIGN
    return PrimaryIntent.CHAT


def is_ambiguous_creation(text: str, *, slots: IntentSlots | None = None) -> bool:
    """A creation verb with no recognized target noun needs clarification."""
    lowered = text.lower()
    if not has_creation_verb(lowered):
        return False
    if slots is not None and (slots.field_edit is not None or slots.archetype is not None):
        return False
    if _PRONOUN_OBJECT_RE.search(lowered):
        return False
    nouns = [noun for _, group in _TARGET_NOUNS for noun in group] + list(CONTENT_NOUNS)
    return not any(_has_keyword(lowered, noun) for noun in nouns)


# ---------------------------------------------------------------------------
# Slot probes (independent; first match per category wins)
# ---------------------------------------------------------------------------


def probe_audience(text: str) -> str | None:
    for pattern in _AUDIENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            value = match.group(1).strip().strip("\"'")
            if value:
                return value
    return None


def probe_archetype(text: str) -> Archetype | None:
    """Vocabulary keywords are checked first, then aliases, both in vocabulary order."""
    lowered = text.lower()
    for archetype in ARCHETYPE_ALIASES:
        if _has_keyword(lowered, archetype.value):
            return archetype
    for archetype, aliases in ARCHETYPE_ALIASES.items():
        if any(_has_keyword(lowered, alias) for alias in aliases):
            return archetype
    return None


def probe_offer(text: str) -> str | None:
    percent = _PERCENT_OFFER_RE.search(text)
    if percent:
        return f"{percent.group(1)}% off"
    dollar = _DOLLAR_OFFER_RE.search(text)
    if dollar:
        return f"${dollar.group(1)}"
    return None


def probe_tone(text: str) -> str | None:
    lowered = text.lower()
    for tone, keywords in TONE_KEYWORDS:
        if any(_has_keyword(lowered, keyword) for keyword in keywords):
            return tone
    return None


def probe_urgency(text: str) -> bool:
    return _URGENCY_RE.search(text.lower()) is not None


def probe_cta(text: str) -> str | None:
    match = _CTA_RE.search(text)
    return match.group(1).strip() if match else None


def probe_channels(text: str) -> tuple[str, ...]:
    lowered = text.lower()
    return tuple(
        channel for channel, keywords in CHANNEL_KEYWORDS if any(_has_keyword(lowered, keyword) for keyword in keywords)
    )


def probe_field_edit(text: str) -> FieldEdit | None:
    match = _FIELD_EDIT_RE.match(text)
    if not match:
        return None
    value = match.group(2).strip().strip("\"'“”").strip()
    if not value:
        return None
    return FieldEdit(field=EDITABLE_FIELDS[match.group(1).lower()], value=value)


def extract_slots(text: str) -> IntentSlots:
    return IntentSlots(
        audience=probe_audience(text),
        archetype=probe_archetype(text),
        offer=probe_offer(text),
        tone=probe_tone(text),
        urgency=probe_urgency(text),
        cta=probe_cta(text),
        channels=probe_channels(text),
        field_edit=probe_field_edit(text),
    )


def extract_intent(text: str) -> IntentExtraction:
    """Extract the primary intent, ambiguity flag and slots from a command."""
    stripped = text.strip()
    slots = extract_slots(stripped)
    return IntentExtraction(
        text=stripped,
        primary_intent=detect_primary_intent(stripped, archetype=slots.archetype),
        ambiguous=is_ambiguous_creation(stripped, slots=slots),
        slots=slots,
    )


def needs_clarification(extraction: IntentExtraction) -> bool:
    return extraction.ambiguous
