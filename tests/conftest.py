from __future__ import annotations

import threading
from pathlib import Path

import pytest

from trusteye.collaborators import BannerProjection, EmailContent, GeneratedContent, GenerationRequest
from trusteye.dispatcher import CommandDispatcher
from trusteye.gates import LocalGateService
from trusteye.lifecycle import CampaignLifecycle
from trusteye.local_services import InMemoryAudienceService, LocalGenerationService
from trusteye.session import Session
from trusteye.settings import RuntimeSettings
from trusteye.site_state import RecordingSiteStateSink
from trusteye.state_store import CampaignStateStore


class FakeGeneration:
    """Generation service returning fixed copy and recording every request."""

    def __init__(
        self,
        *,
        subject: str = "Spring service special, [First Name]",
        body: str = "Hi [First Name], enjoy a spring service special at Premier Nissan.",
        cta: str = "Book Service",
        fail: bool = False,
    ) -> None:
        self.subject = subject
        self.body = body
        self.cta = cta
        self.fail = fail
        self.requests: list[GenerationRequest] = []
        self.entered = threading.Event()
        self.release: threading.Event | None = None

    def generate_content(self, request: GenerationRequest) -> GeneratedContent:
        self.requests.append(request)
        self.entered.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.fail:
            raise RuntimeError("generation backend down")
        return GeneratedContent(
            email=EmailContent(subject=self.subject, body=self.body, cta=self.cta),
            brand_score=90,
            brand_score_details={"tone_alignment": 90},
        )


class FailingSiteState:
    def push_banner(self, banner: BannerProjection) -> None:
        raise RuntimeError("site state endpoint unreachable")


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings().normalized()


@pytest.fixture
def store(tmp_path: Path) -> CampaignStateStore:
    return CampaignStateStore(tmp_path / "state_store")


@pytest.fixture
def site_state() -> RecordingSiteStateSink:
    return RecordingSiteStateSink()


@pytest.fixture
def generation() -> FakeGeneration:
    return FakeGeneration()


@pytest.fixture
def gates(store: CampaignStateStore, settings: RuntimeSettings) -> LocalGateService:
    return LocalGateService(store=store, settings=settings)


@pytest.fixture
def lifecycle(
    settings: RuntimeSettings,
    store: CampaignStateStore,
    generation: FakeGeneration,
    gates: LocalGateService,
    site_state: RecordingSiteStateSink,
) -> CampaignLifecycle:
    return CampaignLifecycle(
        settings=settings,
        store=store,
        generation=generation,
        gates=gates,
        audiences=InMemoryAudienceService(),
        site_state=site_state,
    )


@pytest.fixture
def session(
    settings: RuntimeSettings,
    store: CampaignStateStore,
    gates: LocalGateService,
    site_state: RecordingSiteStateSink,
) -> Session:
    lifecycle = CampaignLifecycle(
        settings=settings,
        store=store,
        generation=LocalGenerationService(),
        gates=gates,
        audiences=InMemoryAudienceService(),
        site_state=site_state,
    )
    return Session(CommandDispatcher(lifecycle), session_id="test-session")
