from __future__ import annotations

import json
import urllib.error
from typing import Any

import pytest

from trusteye import site_state as site_state_module
from trusteye.collaborators import BannerProjection, GenerationRequest
from trusteye.guardrails import find_denylisted_terms
from trusteye.local_services import InMemoryAudienceService, LocalGenerationService, brand_display_name, goal_topic
from trusteye.remediation import avoid_instruction
from trusteye.site_state import HttpSiteStateSink


def _request(**updates: Any) -> GenerationRequest:
    base = GenerationRequest(
        archetype="winback",
        audience="Customers inactive 90+ days",
        channels=["email"],
        goal="Create a winback campaign for lapsed owners",
        brand_id="premier-nissan",
    )
    return base.model_copy(update=updates)


def test_brand_and_topic_helpers() -> None:
    assert brand_display_name("premier-nissan") == "Premier Nissan"
    assert goal_topic("Create a spring tire sale campaign for families") == "Spring tire sale"
    assert goal_topic("") == "Our latest offers"


def test_generation_honors_instructions() -> None:
    generated = LocalGenerationService().generate_content(
        _request(
            channels=["email", "sms"],
            custom_instructions=[
                "Include a 15% off discount offer",
                "Add urgency messaging (limited time offer)",
                "Use a friendly tone",
                'Use CTA: "Book Now"',
            ],
        )
    )
    assert generated.email is not None
    assert generated.email.subject == "We miss you, [First Name] (15% off)"
    assert "Enjoy 15% off when you book with us." in generated.email.body
    assert "ends soon" in generated.email.body
    assert "We can't wait to see you!" in generated.email.body
    assert generated.email.cta == "Book Now"
    assert generated.sms is not None
    assert generated.social is None


def test_generation_strips_avoided_terms() -> None:
    generated = LocalGenerationService().generate_content(
        _request(
            goal="Create a campaign to kill the competition",
            archetype="custom",
            custom_instructions=[avoid_instruction(["kill"])],
        )
    )
    draft = generated.to_draft()
    assert find_denylisted_terms(" ".join(draft.text_fields().values())) == []


def test_social_channel_gets_post_and_hashtags() -> None:
    generated = LocalGenerationService().generate_content(_request(channels=["social"]))
    assert generated.social is not None
    assert generated.social.hashtags == ["#WelcomeBack"]


def test_audience_find_or_create_is_idempotent() -> None:
    service = InMemoryAudienceService()
    first = service.find_or_create("Inactive 90+ Days", "Customers inactive 90+ days", {"inactive_days": {"min": 90}}, 847)
    again = service.find_or_create(" inactive 90+ days ", "different text", {"inactive_days": {"min": 90}}, 10)
    other = service.find_or_create("Inactive 90+ Days", "Customers inactive 60+ days", {"inactive_days": {"min": 60}}, 10)
    assert first.created is True
    assert again.created is False
    assert again.audience_id == first.audience_id
    assert again.estimated_size == 847
    assert other.audience_id != first.audience_id
    assert len(service.list_audiences()) == 2


def test_http_site_state_posts_banner(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: dict[str, Any] = {}

    class _Response:
        def __enter__(self) -> "_Response":
            return self

        def __exit__(self, *exc: object) -> None:
            return None

        def read(self) -> bytes:
            return b'{"ok": true}'

    def fake_urlopen(request: Any, timeout: int) -> _Response:  # noqa: ANN401
        sent["url"] = request.full_url
        sent["body"] = json.loads(request.data.decode("utf-8"))
        return _Response()

    monkeypatch.setattr(site_state_module.urllib.request, "urlopen", fake_urlopen)
    HttpSiteStateSink("http://localhost:3001/api/state").push_banner(
        BannerProjection(headline="Spring Service", body="Book today", cta_text="Book")
    )
    assert sent["url"] == "http://localhost:3001/api/state"
    assert sent["body"]["displayAd"]["ctaUrl"] == "/inventory"


def test_http_site_state_unreachable_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(request: Any, timeout: int) -> None:  # noqa: ANN401
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(site_state_module.urllib.request, "urlopen", refuse)
    with pytest.raises(RuntimeError, match="unreachable"):
        HttpSiteStateSink("http://localhost:3001/api/state").push_banner(BannerProjection(headline="h", body="b"))
