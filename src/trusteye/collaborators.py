"""Contracts for the external services the command core depends on.

Only the shapes live here. Local reference implementations are in
:mod:`trusteye.local_services` and :mod:`trusteye.gates`; LLM-backed ones in
:mod:`trusteye.augmentation`.
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, Field

from .models import ContentDraft, GateResult


class GenerationRequest(BaseModel):
    archetype: str
    audience: str
    channels: list[str]
    goal: str
    brand_id: str
    custom_instructions: list[str] = Field(default_factory=list)


class EmailContent(BaseModel):
    subject: str
    body: str
    cta: str = "Learn More"


class SocialContent(BaseModel):
    post: str
    hashtags: list[str] = Field(default_factory=list)


class GeneratedContent(BaseModel):
    email: EmailContent | None = None
    sms: str | None = None
    social: SocialContent | None = None
    brand_score: int = 85
    brand_score_details: dict[str, int] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)

    def to_draft(self) -> ContentDraft:
        email = self.email
        return ContentDraft(
            subject=email.subject if email else "",
            body=email.body if email else "",
            cta=email.cta if email else "",
            sms=self.sms or "",
            social=self.social.post if self.social else "",
            hashtags=list(self.social.hashtags) if self.social else [],
        )


class ReviewOutcome(BaseModel):
    """Gate results produced by a review, in gate order.

    Gate 2 is absent when gate 1 failed; gate 3 is present (pending or
    auto-approved) only when gates 1 and 2 passed.
    """

    campaign_id: str
    gates: list[GateResult]


class GateDecision(BaseModel):
    success: bool
    campaign_id: str
    gate: GateResult | None = None
    error: str | None = None


class AudienceRecord(BaseModel):
    audience_id: str
    name: str
    description: str
    criteria: dict[str, Any] = Field(default_factory=dict)
    estimated_size: int
    created: bool = False


class AugmentationReply(BaseModel):
    intent: str = "CHAT"
    response: str = ""
    actions: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class BannerProjection(BaseModel):
    """Denormalized website banner pushed when a campaign with the website channel publishes."""

    headline: str
    body: str
    cta_text: str = "Learn More"
    cta_url: str = "/inventory"

    def to_payload(self) -> dict[str, Any]:
        return {
            "displayAd": {
                "headline": self.headline,
                "body": self.body,
                "ctaText": self.cta_text,
                "ctaUrl": self.cta_url,
            }
        }


class GenerationService(Protocol):
    def generate_content(self, request: GenerationRequest) -> GeneratedContent:
        ...


class GateService(Protocol):
    def review(self, campaign_id: str) -> ReviewOutcome:
        ...

    def approve(self, campaign_id: str, approver: str) -> GateDecision:
        ...

    def reject(self, campaign_id: str, approver: str, reason: str) -> GateDecision:
        ...

    def execute(self, campaign_id: str) -> GateDecision:
        ...


class AudienceService(Protocol):
    def find_or_create(
        self,
        name: str,
        description: str,
        criteria: dict[str, Any],
        estimated_size: int,
    ) -> AudienceRecord:
        ...

    def list_audiences(self) -> list[AudienceRecord]:
        ...


class AugmentationResponder(Protocol):
    def process_command(self, message: str, session_id: str, brand_id: str, user_id: str) -> AugmentationReply:
        ...


class SiteStateSink(Protocol):
    def push_banner(self, banner: BannerProjection) -> None:
        ...
