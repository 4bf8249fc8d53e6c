"""Workflow stage resolution and the operator guidance derived from it.

Every consumer that needs to know "where is this campaign" (dispatcher
precedence, status text, placeholders, next-step hints) goes through
:func:`resolve_stage`.
"""

from __future__ import annotations

from .models import Campaign, CampaignStatus, CampaignSummary, WorkflowStage

_PUBLISHED_STATUSES = frozenset({CampaignStatus.COMPLETED, CampaignStatus.RUNNING})


def resolve_stage(campaign: Campaign | None) -> WorkflowStage:
    """Derive the lifecycle stage of ``campaign``; first matching rule wins."""
    if campaign is None:
        return WorkflowStage.NO_CAMPAIGN
    if campaign.status in _PUBLISHED_STATUSES:
        return WorkflowStage.PUBLISHED
    gate1 = campaign.gate(1)
    gate2 = campaign.gate(2)
    gate3 = campaign.gate(3)
    if (gate1 is not None and gate1.passed is False) or (gate2 is not None and gate2.passed is False):
        return WorkflowStage.GATE_FAILED
    # A human rejection is a failed gate too.
    if gate3 is not None and gate3.passed is False:
        return WorkflowStage.GATE_FAILED
    gates_1_2_passed = gate1 is not None and gate1.passed is True and gate2 is not None and gate2.passed is True
    if gates_1_2_passed and gate3 is not None and gate3.passed is True:
        return WorkflowStage.APPROVED
    if gates_1_2_passed:
        return WorkflowStage.AWAITING_APPROVAL
    if campaign.content is None or not campaign.content.has_body:
        return WorkflowStage.CAMPAIGN_CREATED
    return WorkflowStage.CONTENT_READY


def failed_gate_number(campaign: Campaign) -> int | None:
    for result in campaign.gate_results:
        if result.passed is False:
            return result.gate
    return None


NEXT_STEP_HINTS: dict[WorkflowStage, str] = {
    WorkflowStage.NO_CAMPAIGN: "Create a campaign to get started",
    WorkflowStage.CAMPAIGN_CREATED: "Generate content",
    WorkflowStage.CONTENT_READY: "Submit for review",
    WorkflowStage.GATE_FAILED: "Fix the content issues",
    WorkflowStage.AWAITING_APPROVAL: "Approve or reject the campaign",
    WorkflowStage.APPROVED: "Publish the campaign",
    WorkflowStage.PUBLISHED: "Campaign sent! Create another?",
}

PLACEHOLDERS: dict[WorkflowStage, str] = {
    WorkflowStage.NO_CAMPAIGN: "Create a referral campaign for 5-star reviewers...",
    WorkflowStage.CAMPAIGN_CREATED: 'Say "generate content" or "yes" to continue...',
    WorkflowStage.CONTENT_READY: 'Say "review" to submit for approval...',
    WorkflowStage.GATE_FAILED: 'Say "fix it" to auto-correct, or edit manually...',
    WorkflowStage.AWAITING_APPROVAL: 'Say "approve" or "reject"...',
    WorkflowStage.APPROVED: 'Say "publish" or "execute" to send the campaign...',
    WorkflowStage.PUBLISHED: "Campaign sent! Create another campaign...",
}


def next_step_hint(campaign: Campaign | None) -> str:
    return NEXT_STEP_HINTS[resolve_stage(campaign)]


def command_placeholder(campaign: Campaign | None) -> str:
    return PLACEHOLDERS[resolve_stage(campaign)]


def context_summary(campaign: Campaign | None) -> str:
    """Markdown status block shown for "status" / "what's next"."""
    stage = resolve_stage(campaign)
    if campaign is None:
        return "**No campaign in progress.**\n\nStart by creating a campaign, for example a referral campaign."
    header = f"**Campaign:** {campaign.name}\n"
    if stage is WorkflowStage.CAMPAIGN_CREATED:
        return (
            f"{header}**Stage:** Content needed\n**Audience:** {campaign.audience_description}\n"
            f'**Channel:** {campaign.channel_display}\n\n-> Say **"generate content"** or **"yes"** to continue.'
        )
    if stage is WorkflowStage.CONTENT_READY:
        subject = campaign.content.subject if campaign.content and campaign.content.subject else "N/A"
        return f'{header}**Stage:** Ready for review\n**Subject:** {subject}\n\n-> Say **"review"** to submit for approval.'
    if stage is WorkflowStage.GATE_FAILED:
        gate = failed_gate_number(campaign)
        return (
            f"{header}**Stage:** Gate {gate if gate is not None else '?'} failed\n**Issue:** Content needs revision\n\n"
            '-> Say **"fix it"** to remove the flagged terms.'
        )
    if stage is WorkflowStage.AWAITING_APPROVAL:
        return f'{header}**Stage:** Awaiting human approval\n**Gates 1 & 2:** Passed\n\n-> Say **"approve"** or **"reject"**.'
    if stage is WorkflowStage.APPROVED:
        return (
            f"{header}**Stage:** Approved - ready to publish\n**All Gates:** Passed\n\n"
            '-> Say **"publish"** or **"execute"** to send.'
        )
    return f'{header}**Stage:** Published\n**Status:** {campaign.status.value}\n\n-> Say **"show receipt"** or **"start new"**.'


def summarize(campaign: Campaign) -> CampaignSummary:
    """Build the summary panel projection for ``campaign``."""
    return CampaignSummary(
        campaign_id=campaign.campaign_id,
        name=campaign.name,
        stage=resolve_stage(campaign),
        audience=campaign.audience_description,
        channels=tuple(campaign.channels),
        subject=campaign.content.subject if campaign.content else "",
        brand_score=campaign.brand_score,
        gates=tuple((result.gate, result.passed) for result in campaign.gate_results),
        next_step=next_step_hint(campaign),
    )
