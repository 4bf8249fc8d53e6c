"""Deterministic in-process collaborators.

These let the command core run end to end (CLI, tests) without any network
service. They honor the same contracts as the remote services in
:mod:`trusteye.collaborators`.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Any

from .collaborators import AudienceRecord, EmailContent, GeneratedContent, GenerationRequest, SocialContent
from .guardrails import score_brand_voice, term_pattern
from .receipts import canonical_json
from .remediation import AVOID_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Template:
    subject: str
    opening: str
    cta: str
    sms: str
    social: str
    hashtags: tuple[str, ...]


_TEMPLATES: dict[str, _Template] = {
    "referral": _Template(
        "Thank you for the kind words, [First Name]",
        "Your review made our day. Know someone who would love the same experience? Refer a friend and you both get a reward.",
        "Refer a Friend",
        "Thanks for the great review! Refer a friend to {brand} and you both earn a reward.",
        "Our customers say it best. Thank you for every review this month.",
        ("#ThankYou", "#ReferAFriend"),
    ),
    "recovery": _Template(
        "We hear you, [First Name], and we want to make it right",
        "We read your feedback and we are sorry your visit fell short. Our service manager would like to speak with you personally.",
        "Talk to Our Team",
        "{brand}: we are sorry about your recent visit. Reply to set up a call with our service manager.",
        "Every piece of feedback helps us get better. Thank you for telling us.",
        ("#CustomerCare",),
    ),
    "conquest": _Template(
        "See what driving with {brand} feels like",
        "Thinking about your next vehicle? Book a test drive and see why drivers across town are choosing {brand}.",
        "Book a Test Drive",
        "{brand}: your next vehicle is waiting. Book a test drive this week.",
        "New season, new ride. Come see the lineup.",
        ("#TestDrive",),
    ),
    "winback": _Template(
        "We miss you, [First Name]",
        "It has been a while since your last visit. Your [Vehicle] deserves the best care, and we would love to see you again.",
        "Schedule a Visit",
        "We miss you at {brand}! Schedule your next visit with a reply.",
        "It has been too long. Come back and see what is new.",
        ("#WelcomeBack",),
    ),
    "loyalty": _Template(
        "Your loyalty rewards are waiting, [First Name]",
        "As a valued member you have earned points toward service and accessories. Redeem them on your next visit.",
        "View My Rewards",
        "{brand}: you have loyalty points waiting. Redeem them on your next visit.",
        "Members get more. Check your rewards balance today.",
        ("#Rewards",),
    ),
    "service": _Template(
        "Your [Vehicle] is due for service",
        "Keep your vehicle running smoothly. Our certified technicians are ready when you are, with convenient appointment times.",
        "Book Service",
        "{brand}: your vehicle is due for service. Reply to book a time.",
        "Routine care keeps you on the road. Book your next service online.",
        ("#ServiceReminder",),
    ),
    "welcome": _Template(
        "Welcome to the {brand} family, [First Name]",
        "Thank you for choosing us. Here is everything you need to get the most from your new vehicle and our service team.",
        "Get Started",
        "Welcome to {brand}! Reply with any questions about your new vehicle.",
        "Say hello to our newest drivers.",
        ("#Welcome",),
    ),
    "birthday": _Template(
        "Happy birthday, [First Name]!",
        "Everyone at {brand} wishes you a wonderful birthday. Enjoy a special gift on us at your next visit.",
        "Claim My Gift",
        "Happy birthday from {brand}! A gift is waiting at your next visit.",
        "Celebrating our customers this month.",
        ("#HappyBirthday",),
    ),
    "holiday": _Template(
        "Season's greetings from {brand}",
        "Celebrate the season with special offers on service and accessories for you and your family.",
        "See Holiday Offers",
        "Season's greetings from {brand}! Holiday offers are live now.",
        "Happy holidays from all of us.",
        ("#HappyHolidays",),
    ),
}

_DEFAULT_TEMPLATE = _Template(
    "{topic} at {brand}",
    "Hi [First Name], we put together something special for you: {topic}.",
    "Learn More",
    "{brand}: {topic}. Reply to learn more.",
    "{topic}. Come see us.",
    ("#News",),
)

_GOAL_PREFIX_RE = re.compile(
    r"^(?:please\s+)?(?:create|make|build|start|launch|generate|write|draft)\s+(?:a\s+|an\s+|the\s+)?",
    re.IGNORECASE,
)
_GOAL_SUFFIX_RE = re.compile(r"\s+(?:campaign|content|email|post)\b.*$|\s+for\s+.*$", re.IGNORECASE)
_CTA_INSTRUCTION_RE = re.compile(r'Use CTA: "(.+)"')
_OFFER_INSTRUCTION_RE = re.compile(r"Include an? (.+?) (?:offer|discount)")
_TONE_INSTRUCTION_RE = re.compile(r"Use an? (\w+) tone")

_TONE_SIGNOFFS = {
    "friendly": "We can't wait to see you!",
    "professional": "We look forward to serving you.",
    "casual": "See you soon!",
    "urgent": "Reserve your spot today.",
}


def brand_display_name(brand_id: str) -> str:
    return " ".join(part.capitalize() for part in brand_id.replace("_", "-").split("-") if part)


def goal_topic(goal: str) -> str:
    """Reduce the operator's original request to a short topic phrase."""
    topic = _GOAL_SUFFIX_RE.sub("", _GOAL_PREFIX_RE.sub("", goal.strip())).strip(" .!?")
    return topic[:1].upper() + topic[1:] if topic else "Our latest offers"


class LocalGenerationService:
    """Template-based content generator.

    Honors offer, tone, urgency, CTA and avoid-terms instructions, and scores
    its own output with the same brand-voice checks the quality gate uses.
    """

    def generate_content(self, request: GenerationRequest) -> GeneratedContent:
        brand = brand_display_name(request.brand_id)
        template = _TEMPLATES.get(request.archetype.replace("-", ""), _DEFAULT_TEMPLATE)
        topic = goal_topic(request.goal)

        avoid_terms: list[str] = []
        cta_override: str | None = None
        offer: str | None = None
        tone: str | None = None
        urgency = False
        for instruction in request.custom_instructions:
            if instruction.startswith(AVOID_PREFIX):
                avoid_terms.extend(term.strip() for term in instruction[len(AVOID_PREFIX):].split(",") if term.strip())
            elif match := _CTA_INSTRUCTION_RE.search(instruction):
                cta_override = match.group(1)
            elif match := _OFFER_INSTRUCTION_RE.search(instruction):
                offer = match.group(1)
            elif match := _TONE_INSTRUCTION_RE.search(instruction):
                tone = match.group(1).lower()
            elif "urgency" in instruction.lower():
                urgency = True

        values = {"brand": brand, "topic": topic}
        subject = template.subject.format(**values)
        body_parts = [template.opening.format(**values)]
        if template is not _DEFAULT_TEMPLATE and topic:
            body_parts.append(f"This one is all about {topic[:1].lower() + topic[1:]}.")
        if offer:
            body_parts.append(f"Enjoy {offer} when you book with us.")
            subject = f"{subject} ({offer})"
        if urgency:
            body_parts.append("This offer ends soon, so reserve your spot this week.")
        if tone in _TONE_SIGNOFFS:
            body_parts.append(_TONE_SIGNOFFS[tone])
        body_parts.append(f"The {brand} Team")
        body = " ".join(body_parts)
        cta = cta_override or template.cta
        sms = template.sms.format(**values)
        social = template.social.format(**values)

        if avoid_terms:
            subject, body, cta, sms, social = (
                _strip_terms(text, avoid_terms) for text in (subject, body, cta, sms, social)
            )

        channels = set(request.channels)
        email = EmailContent(subject=subject, body=body, cta=cta)
        score, details, suggestions = score_brand_voice(f"{subject}\n{body}\n{cta}")
        logger.debug("Generated %s content for %s (score=%d)", request.archetype, sorted(channels), score)
        return GeneratedContent(
            email=email,
            sms=sms if "sms" in channels else None,
            social=SocialContent(post=social, hashtags=list(template.hashtags)) if "social" in channels else None,
            brand_score=score,
            brand_score_details=details,
            suggestions=suggestions,
        )


def _strip_terms(text: str, terms: list[str]) -> str:
    for term in terms:
        text = term_pattern(term).sub("", text)
    return re.sub(r"\s+([.,!?])", r"\1", re.sub(r"\s+", " ", text)).strip()


class InMemoryAudienceService:
    """Idempotent find-or-create keyed by audience name plus canonical criteria."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_key: dict[tuple[str, str], AudienceRecord] = {}

    def find_or_create(
        self,
        name: str,
        description: str,
        criteria: dict[str, Any],
        estimated_size: int,
    ) -> AudienceRecord:
        key = (name.strip().lower(), canonical_json(criteria))
        with self._lock:
            existing = self._by_key.get(key)
            if existing is not None:
                return existing.model_copy(update={"created": False})
            record = AudienceRecord(
                audience_id=f"AUD-{uuid.uuid4().hex[:8]}",
                name=name,
                description=description,
                criteria=dict(criteria),
                estimated_size=estimated_size,
                created=True,
            )
            self._by_key[key] = record
            logger.info("Created audience %s (%s)", record.audience_id, name)
            return record

    def list_audiences(self) -> list[AudienceRecord]:
        with self._lock:
            return list(self._by_key.values())
