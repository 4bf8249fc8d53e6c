"""Content guardrails shared by the rules gate, the brand gate and remediation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# Terms that block publication and that remediation strips from content.
DENYLIST: tuple[str, ...] = (
    "fuck",
    "shit",
    "damn",
    "ass",
    "bitch",
    "crap",
    "hell",
    "bastard",
    "piss",
    "dick",
    "cock",
    "pussy",
    "whore",
    "slut",
    "asshole",
    "bullshit",
    "goddamn",
    "sex",
    "sexual",
    "explicit",
    "porn",
    "xxx",
    "nude",
    "erotic",
    "kill",
    "hurt",
    "attack",
    "destroy",
    "violence",
    "threat",
)

_THREAT_TERMS = ("kill", "hurt", "attack", "destroy", "violence", "threat")
_EXPLICIT_TERMS = ("xxx", "porn", "nude", "explicit", "sexual", "sex", "erotic")
_PROFANITY_TERMS = tuple(term for term in DENYLIST if term not in _THREAT_TERMS and term not in _EXPLICIT_TERMS)


@dataclass(frozen=True)
class BrandCheck:
    check_id: str
    name: str
    severity: str
    patterns: tuple[str, ...]
    case_sensitive: bool = False


# Brand-voice checks evaluated by the quality gate. "error" severity fails the gate.
BRAND_CHECKS: tuple[BrandCheck, ...] = (
    BrandCheck(
        "no-pressure-tactics",
        "No Pressure Tactics",
        "warning",
        ("act now", "limited time", "don't miss out", "expires soon", r"only \d+ left", "before it's too late"),
    ),
    BrandCheck("no-fear-messaging", "No Fear-Based Messaging", "warning", ("break down", "danger", "unsafe")),
    BrandCheck("no-all-caps", "No ALL CAPS", "error", (r"\b[A-Z]{4,}\b",), case_sensitive=True),
    BrandCheck("no-excessive-punctuation", "No Excessive Punctuation", "warning", (r"!{2,}", r"\?{2,}")),
    BrandCheck(
        "no-misleading-claims",
        "No Misleading Claims",
        "warning",
        ("best in", "lowest price", "guaranteed", "#1", "number one"),
    ),
    BrandCheck(
        "no-competitor-negativity",
        "No Competitor Negativity",
        "warning",
        ("unlike", "better than", "other dealers"),
    ),
)


@dataclass
class GuardrailReport:
    blockers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.blockers


def term_pattern(term: str) -> re.Pattern[str]:
    """Whole-word match for ``term`` that also covers trailing-letter inflections."""
    return re.compile(rf"\b{re.escape(term)}[a-z]*\b", re.IGNORECASE)


def _detect_pattern(term: str) -> re.Pattern[str]:
    # Detection only accepts common suffixes so "hello" is not flagged as "hell".
    return re.compile(rf"\b{re.escape(term)}(?:s|es|ed|ing|er|ers|y)?\b", re.IGNORECASE)


def find_denylisted_terms(text: str) -> list[str]:
    """Return denylist terms with at least one word-level occurrence in ``text``, in denylist order."""
    if not text:
        return []
    return [term for term in DENYLIST if _detect_pattern(term).search(text)]


def run_guardrails(text: str) -> GuardrailReport:
    """Run the blocking content-safety rules over combined content text.

    The explicit-material rule names the offending term; the threat rule does
    not, so callers that need the term must scan the content itself.
    """
    report = GuardrailReport()
    if any(_detect_pattern(term).search(text) for term in _THREAT_TERMS):
        report.blockers.append("Content contains threatening language")
    explicit = next((term for term in _EXPLICIT_TERMS if _detect_pattern(term).search(text)), None)
    if explicit is not None:
        report.blockers.append(f'Content contains explicit material: "{explicit}"')
    profanity = next(
        (term for term in _PROFANITY_TERMS if re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE)),
        None,
    )
    if profanity is not None:
        report.blockers.append(f'Content contains profanity: "{profanity}"')
    if re.search(r"\b(?:lorem ipsum|\[insert)", text, re.IGNORECASE):
        report.warnings.append("Content contains placeholder text")
    return report


def run_brand_checks(text: str) -> list[tuple[BrandCheck, str | None]]:
    """Evaluate each brand check, returning ``(check, first_match)`` pairs; ``None`` means passed."""
    results: list[tuple[BrandCheck, str | None]] = []
    for check in BRAND_CHECKS:
        flags = 0 if check.case_sensitive else re.IGNORECASE
        found: str | None = None
        for pattern in check.patterns:
            match = re.search(pattern, text, flags)
            if match:
                found = match.group(0)
                break
        results.append((check, found))
    return results


def score_brand_voice(text: str) -> tuple[int, dict[str, int], list[str]]:
    """Deterministic brand-voice score for combined content text.

    Returns:
        ``(overall, details, suggestions)`` where ``details`` holds the
        tone/voice/clarity/relevance sub-scores (0-100).
    """
    details = {"tone_alignment": 92, "voice_consistency": 90, "message_clarity": 94, "audience_relevance": 88}
    suggestions: list[str] = []
    for check, found in run_brand_checks(text):
        if found is None:
            continue
        suggestions.append(f'{check.name}: Found "{found}"')
        if check.severity == "error":
            details["voice_consistency"] -= 15
            details["tone_alignment"] -= 10
        else:
            details["tone_alignment"] -= 5
            details["voice_consistency"] -= 3
    words = len(text.split())
    if words > 200:
        details["message_clarity"] -= 10
        suggestions.append(f"Email Length Check: {words} words (recommended: under 150)")
    if re.search(r"\[(?:First Name|Name|Vehicle)\]", text):
        details["audience_relevance"] += 6
    else:
        suggestions.append("Uses Personalization: consider adding [First Name] or [Vehicle] placeholders")
    details = {key: max(0, min(100, value)) for key, value in details.items()}
    overall = round(sum(details.values()) / len(details))
    return overall, details, suggestions[:5]
