from importlib.metadata import version

from .dispatcher import DECLINED, CommandContext, CommandDispatcher, Reply
from .errors import ApprovalPending, CampaignError, CollaboratorUnavailable, ErrorKind, IllegalTransition
from .intent import extract_intent, needs_clarification
from .lifecycle import CampaignLifecycle, Transition
from .models import (
    Archetype,
    Campaign,
    CampaignStatus,
    ContentDraft,
    ConversationMessage,
    GateResult,
    IntentExtraction,
    IntentSlots,
    Page,
    PrimaryIntent,
    Receipt,
    RoutingDecision,
    WorkflowSelection,
    WorkflowStage,
)
from .receipts import build_receipt
from .remediation import remediate_content
from .routing import decide_route
from .session import CommandResult, Session, SessionContext, build_session
from .settings import RuntimeSettings
from .stages import resolve_stage
from .state_store import CampaignStateStore


def get_version() -> str:
    try:
        return version("trusteye-command-core")
    except Exception:
        return "0.0.0"


__all__ = [
    "ApprovalPending",
    "Archetype",
    "Campaign",
    "CampaignError",
    "CampaignLifecycle",
    "CampaignStateStore",
    "CampaignStatus",
    "CollaboratorUnavailable",
    "CommandContext",
    "CommandDispatcher",
    "CommandResult",
    "ContentDraft",
    "ConversationMessage",
    "DECLINED",
    "ErrorKind",
    "GateResult",
    "IllegalTransition",
    "IntentExtraction",
    "IntentSlots",
    "Page",
    "PrimaryIntent",
    "Receipt",
    "Reply",
    "RoutingDecision",
    "RuntimeSettings",
    "Session",
    "SessionContext",
    "Transition",
    "WorkflowSelection",
    "WorkflowStage",
    "build_receipt",
    "build_session",
    "decide_route",
    "extract_intent",
    "needs_clarification",
    "remediate_content",
    "resolve_stage",
]
