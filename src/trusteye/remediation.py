from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .guardrails import DENYLIST, find_denylisted_terms, term_pattern
from .models import ContentDraft, GateResult

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?;:])")


@dataclass(frozen=True)
class RemediationResult:
    """Outcome of a remediation pass.

    ``content`` is None when there was nothing to clean; the caller then
    regenerates using ``avoid_instruction``.
    """

    content: ContentDraft | None
    removed_terms: list[str] = field(default_factory=list)
    candidate_terms: list[str] = field(default_factory=list)
    avoid_instruction: str = ""

    @property
    def needs_regeneration(self) -> bool:
        return self.content is None


def _dedupe(terms: list[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for term in terms:
        key = term.lower()
        if key not in seen:
            seen.add(key)
            unique.append(key)
    return unique


def candidate_terms(failing_gate: GateResult | None, content: ContentDraft | None) -> list[str]:
    """Collect offending terms from the failing gate's messages and from the content itself."""
    from_gate: list[str] = []
    if failing_gate is not None:
        details = failing_gate.details
        messages = [*details.errors, *details.guardrail_blockers]
        if details.error:
            messages.append(details.error)
        from_gate = find_denylisted_terms(" ".join(messages))
    from_content: list[str] = []
    if content is not None:
        from_content = find_denylisted_terms(" ".join(content.text_fields().values()))
    return _dedupe(from_gate + from_content)


def clean_text(text: str, terms: list[str]) -> tuple[str, set[str]]:
    """Strip every occurrence of ``terms`` from ``text`` and tidy the spacing.

    Returns:
        The cleaned text and the subset of ``terms`` that actually matched.
    """
    if not text:
        return text, set()
    cleaned = text
    removed: set[str] = set()
    for term in terms:
        cleaned, count = term_pattern(term).subn("", cleaned)
        if count:
            removed.add(term)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    cleaned = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", cleaned)
    return cleaned.strip(), removed


AVOID_PREFIX = "Do not use any of these terms or their variants: "


def avoid_instruction(terms: list[str]) -> str:
    listed = terms or list(DENYLIST)
    return AVOID_PREFIX + ", ".join(listed)


def remediate_content(content: ContentDraft | None, failing_gate: GateResult | None) -> RemediationResult:
    """Remove denylisted terms from ``content``.

    Args:
        content: Current campaign content, or None if none was generated yet.
        failing_gate: The gate whose failure triggered remediation, if any.

    Returns:
        The cleaned content with the exact terms removed, or a regeneration
        request carrying a negative-constraint instruction when there is no
        content.
    """
    candidates = candidate_terms(failing_gate, content)
    if content is None or not content.has_body:
        logger.info("No content to remediate; requesting regeneration avoiding %s", candidates or "denylist")
        return RemediationResult(
            content=None,
            candidate_terms=candidates,
            avoid_instruction=avoid_instruction(candidates),
        )

    removed: set[str] = set()
    fields: dict[str, str] = {}
    for name, value in content.text_fields().items():
        fields[name], field_removed = clean_text(value, candidates)
        removed |= field_removed
    hashtags: list[str] = []
    for tag in content.hashtags:
        if any(term_pattern(term).search(tag.lstrip("#")) for term in candidates):
            removed |= {term for term in candidates if term_pattern(term).search(tag.lstrip("#"))}
            continue
        hashtags.append(tag)

    fixed = ContentDraft(**fields, hashtags=hashtags)
    removed_terms = [term for term in candidates if term in removed]
    logger.info("Remediation removed %d term(s): %s", len(removed_terms), removed_terms)
    return RemediationResult(
        content=fixed,
        removed_terms=removed_terms,
        candidate_terms=candidates,
        avoid_instruction=avoid_instruction(candidates),
    )
