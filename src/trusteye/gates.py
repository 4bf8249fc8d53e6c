from __future__ import annotations

import logging
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph
from langgraph.types import Command

from .collaborators import GateDecision, ReviewOutcome
from .guardrails import run_brand_checks, run_guardrails, score_brand_voice
from .models import Campaign, GateDetails, GateResult, utc_now
from .settings import RuntimeSettings
from .state_store import CampaignStateStore

logger = logging.getLogger(__name__)


class ReviewState(TypedDict, total=False):
    campaign_id: str
    campaign: Campaign
    gates: list[GateResult]


def _content_text(campaign: Campaign) -> str:
    content = campaign.content
    if content is None:
        return ""
    return "\n".join(value for value in content.text_fields().values() if value)


class LocalGateService:
    """In-process three-gate reviewer: rules -> route -> brand review | skip -> approval request.

    Campaigns are read from the shared state store; the caller persists the
    returned gate results. Approval notifications are recorded per campaign
    revision so a repeated review of unchanged content never notifies twice.
    """

    def __init__(self, *, store: CampaignStateStore, settings: RuntimeSettings) -> None:
        self.store = store
        self.settings = settings
        self.notifications: list[tuple[str, int]] = []
        self.graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(ReviewState)
        graph.add_node("load", self._load)
        graph.add_node("rules_gate", self._rules_gate)
        graph.add_node("route_rules", self._route_rules)
        graph.add_node("brand_gate", self._brand_gate)
        graph.add_node("route_brand", self._route_brand)
        graph.add_node("approval_request", self._approval_request)
        graph.add_node("finish", self._finish)

        graph.add_edge(START, "load")
        graph.add_edge("load", "rules_gate")
        graph.add_edge("rules_gate", "route_rules")
        graph.add_edge("brand_gate", "route_brand")
        graph.add_edge("approval_request", "finish")
        graph.add_edge("finish", END)
        return graph

    def _load(self, state: ReviewState) -> dict[str, Any]:
        return {"campaign": self.store.load_campaign(state["campaign_id"]), "gates": []}

    def _rules_gate(self, state: ReviewState) -> dict[str, Any]:
        campaign = state["campaign"]
        errors: list[str] = []
        if not campaign.name.strip():
            errors.append("Missing required parameter: name")
        if not campaign.channels:
            errors.append("Missing required parameter: channels")
        content = campaign.content
        if content is None or not content.has_body:
            errors.append("Missing required parameter: content")
        elif "email" in campaign.channels and not content.subject.strip():
            errors.append("Missing required parameter: subject")
        report = run_guardrails(_content_text(campaign))
        errors.extend(f"Guardrail blocked: {blocker}" for blocker in report.blockers)
        details = GateDetails(
            errors=errors,
            guardrail_blockers=list(report.blockers),
            guardrail_warnings=list(report.warnings),
            error="; ".join(errors) if errors else None,
        )
        result = GateResult(gate=1, passed=not errors, details=details, timestamp=utc_now())
        logger.info("Gate 1 for %s: passed=%s errors=%s", campaign.campaign_id, result.passed, errors)
        return {"gates": [*state.get("gates", []), result]}

    def _route_rules(self, state: ReviewState) -> Command[str]:
        if state["gates"][-1].passed:
            return Command(goto="brand_gate")
        return Command(goto="finish")

    def _brand_gate(self, state: ReviewState) -> dict[str, Any]:
        campaign = state["campaign"]
        text = _content_text(campaign)
        score, score_details, suggestions = score_brand_voice(text)
        failures = [f"{check.name}: {found}" for check, found in run_brand_checks(text) if found and check.severity == "error"]
        warnings = [f"{check.name}: {found}" for check, found in run_brand_checks(text) if found and check.severity != "error"]
        minimum = self.settings.min_brand_score
        passed = not failures and score >= minimum
        error: str | None = None
        if failures:
            error = "Brand check failed: " + "; ".join(failures)
        elif score < minimum:
            error = f"Brand score {score} below minimum {minimum}"
        risk_level = "low" if passed and not warnings else ("medium" if passed else "high")
        details = GateDetails(
            errors=failures,
            guardrail_warnings=warnings,
            brand_score=score,
            brand_score_details=score_details,
            risk_level=risk_level,
            suggestions=suggestions,
            error=error,
        )
        result = GateResult(gate=2, passed=passed, details=details, timestamp=utc_now())
        logger.info("Gate 2 for %s: passed=%s score=%d", campaign.campaign_id, passed, score)
        return {"gates": [*state["gates"], result]}

    def _route_brand(self, state: ReviewState) -> Command[str]:
        if state["gates"][-1].passed:
            return Command(goto="approval_request")
        return Command(goto="finish")

    def _approval_request(self, state: ReviewState) -> dict[str, Any]:
        campaign = state["campaign"]
        if not self.settings.requires_human_approval:
            details = GateDetails(status="approved", approved_by="auto-approval", notification_sent=False)
            result = GateResult(gate=3, passed=True, details=details, timestamp=utc_now())
            return {"gates": [*state["gates"], result]}
        key = (campaign.campaign_id, campaign.revision)
        sent = key not in self.notifications
        if sent:
            self.notifications.append(key)
            logger.info("Approval requested for %s (revision %d)", campaign.campaign_id, campaign.revision)
        details = GateDetails(status="pending", notification_sent=sent)
        result = GateResult(gate=3, passed=None, details=details, timestamp=utc_now())
        return {"gates": [*state["gates"], result]}

    def _finish(self, state: ReviewState) -> dict[str, Any]:
        return {}

    # ------------------------------------------------------------------
    # GateService contract
    # ------------------------------------------------------------------

    def review(self, campaign_id: str) -> ReviewOutcome:
        result = self.graph.invoke({"campaign_id": campaign_id})
        return ReviewOutcome(campaign_id=campaign_id, gates=list(result["gates"]))

    def _pending_approval(self, campaign_id: str) -> tuple[Campaign | None, str | None]:
        campaign = self.store.load_campaign(campaign_id)
        gate1, gate2, gate3 = campaign.gate(1), campaign.gate(2), campaign.gate(3)
        if gate1 is None or gate1.passed is not True or gate2 is None or gate2.passed is not True:
            return None, "Gates 1 and 2 must pass before a human decision"
        if gate3 is None or gate3.passed is not None:
            return None, "No approval is pending for this campaign"
        return campaign, None

    def approve(self, campaign_id: str, approver: str) -> GateDecision:
        campaign, error = self._pending_approval(campaign_id)
        if campaign is None:
            return GateDecision(success=False, campaign_id=campaign_id, error=error)
        now = utc_now()
        details = GateDetails(status="approved", approved_by=approver, notification_sent=True)
        logger.info("Campaign %s approved by %s", campaign_id, approver)
        return GateDecision(
            success=True,
            campaign_id=campaign_id,
            gate=GateResult(gate=3, passed=True, details=details, timestamp=now),
        )

    def reject(self, campaign_id: str, approver: str, reason: str) -> GateDecision:
        campaign, error = self._pending_approval(campaign_id)
        if campaign is None:
            return GateDecision(success=False, campaign_id=campaign_id, error=error)
        details = GateDetails(status="rejected", rejected_by=approver, reason=reason, error=reason, notification_sent=True)
        logger.info("Campaign %s rejected by %s: %s", campaign_id, approver, reason)
        return GateDecision(
            success=True,
            campaign_id=campaign_id,
            gate=GateResult(gate=3, passed=False, details=details, timestamp=utc_now()),
        )

    def execute(self, campaign_id: str) -> GateDecision:
        campaign = self.store.load_campaign(campaign_id)
        missing = [number for number in (1, 2, 3) if (gate := campaign.gate(number)) is None or gate.passed is not True]
        if missing:
            return GateDecision(
                success=False,
                campaign_id=campaign_id,
                error=f"Campaign has not passed gate(s) {', '.join(str(number) for number in missing)}",
            )
        logger.info("Executing campaign %s on %s", campaign_id, campaign.channels)
        return GateDecision(success=True, campaign_id=campaign_id)
