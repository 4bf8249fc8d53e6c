"""LLM-backed collaborators, enabled with ``TRUSTEYE_USE_LLM=1``.

The dispatcher never depends on these: with them absent every command is
handled by the local rule table. Both collaborators send a system/human
message pair to a chat model bound to a pydantic schema and validate the
reply before anything reaches the lifecycle.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Protocol, TypeVar, get_args

from dotenv import load_dotenv
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, ValidationError

from .collaborators import AugmentationReply, EmailContent, GeneratedContent, GenerationRequest, SocialContent
from .guardrails import score_brand_voice

logger = logging.getLogger(__name__)

ReplyT = TypeVar("ReplyT", bound=BaseModel)

_REQUEST_TIMEOUT_SECONDS = 60
_MAX_RETRIES = 2

AugmentationIntent = Literal[
    "CREATE_CAMPAIGN",
    "GENERATE_CONTENT",
    "EDIT_CONTENT",
    "FIX_CONTENT",
    "REVIEW",
    "APPROVE",
    "PUBLISH",
    "SHOW_STATUS",
    "CHANGE_AUDIENCE",
    "CHANGE_CHANNEL",
    "HELP",
    "CHAT",
]

INTERPRETER_SYSTEM_PROMPT = (
    "You are the assistant for TrustEye, a marketing campaign platform. Operators run one campaign at a "
    "time through three gates: automated rules, brand review and human approval. Classify the operator's "
    "message into exactly one intent and write a one or two sentence reply. Never claim an action was "
    "performed; the platform performs it after your classification."
)

COPYWRITER_SYSTEM_PROMPT = (
    "You write marketing copy for a car dealership group. Use [First Name] personalization, no ALL CAPS "
    "words and no more than one exclamation mark in a row. Keep the email body under 150 words, the SMS "
    "under 160 characters and the social post short. Follow every additional instruction exactly."
)


class ChatRunnable(Protocol):
    """A chat model already bound to a reply schema."""

    def invoke(self, input: list[BaseMessage]) -> Any:  # noqa: ANN401 - provider payload.
        ...


class CommandInterpretation(BaseModel):
    intent: AugmentationIntent
    response: str = Field(description="One or two sentence reply to show the operator")
    suggestions: list[str] = Field(description="Up to three follow-up commands the operator could type")


class GeneratedCopy(BaseModel):
    subject: str
    body: str
    cta: str
    sms: str
    social_post: str
    hashtags: list[str]


def load_api_key(env_file: Path | None = None) -> str:
    """Return OPENAI_API_KEY, reading ``env_file`` (default ``./.env``) first when it exists.

    Raises:
        RuntimeError: If the key is still unset.
    """
    path = env_file if env_file is not None else Path.cwd() / ".env"
    if path.is_file():
        load_dotenv(path)
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise RuntimeError("OPENAI_API_KEY is required when TRUSTEYE_USE_LLM is enabled")
    return key


def bind_chat_model(
    schema: type[BaseModel],
    *,
    model_name: str,
    temperature: float,
    env_file: Path | None = None,
) -> ChatRunnable:
    """Build a ChatOpenAI client whose replies are function-called into ``schema``."""
    if not model_name.strip():
        raise ValueError("model_name must be a non-empty string")
    load_api_key(env_file)
    model = ChatOpenAI(
        model=model_name,
        temperature=temperature,
        timeout=_REQUEST_TIMEOUT_SECONDS,
        max_retries=_MAX_RETRIES,
    )
    return model.with_structured_output(schema, method="function_calling", strict=True)


def parse_reply(raw: Any, schema: type[ReplyT]) -> ReplyT:  # noqa: ANN401
    """Validate a bound model's reply as ``schema``.

    Raises:
        RuntimeError: If the reply is not a model or mapping, or fails validation.
    """
    if isinstance(raw, schema):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json")
    if not isinstance(raw, dict):
        raise RuntimeError(f"Chat model returned {type(raw).__name__}, expected {schema.__name__}")
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        raise RuntimeError(f"Chat model reply did not match {schema.__name__}: {exc}") from exc


def interpretation_messages(message: str, session_id: str, brand_id: str, user_id: str) -> list[BaseMessage]:
    intents = ", ".join(get_args(AugmentationIntent))
    return [
        SystemMessage(content=f"{INTERPRETER_SYSTEM_PROMPT} Brand: '{brand_id}'. Intents: {intents}."),
        HumanMessage(content=f"[session {session_id}, operator {user_id}] {message}"),
    ]


def copy_messages(request: GenerationRequest) -> list[BaseMessage]:
    instructions = "\n".join(f"- {item}" for item in request.custom_instructions) or "- none"
    return [
        SystemMessage(content=COPYWRITER_SYSTEM_PROMPT),
        HumanMessage(
            content=(
                f"Brand: '{request.brand_id}'. Campaign type: {request.archetype}. "
                f"Audience: {request.audience}. Channels: {', '.join(request.channels)}.\n"
                f"The operator's request, verbatim: {request.goal!r}\n"
                f"Additional instructions:\n{instructions}"
            )
        ),
    ]


class LLMAugmentationResponder:
    """Classifies free text the rule table could not place into one of the known actions."""

    def __init__(self, *, model_name: str, model: ChatRunnable | None = None, env_file: Path | None = None) -> None:
        self.model_name = model_name
        self._model = model or bind_chat_model(
            CommandInterpretation, model_name=model_name, temperature=0.0, env_file=env_file
        )

    def process_command(self, message: str, session_id: str, brand_id: str, user_id: str) -> AugmentationReply:
        raw = self._model.invoke(interpretation_messages(message, session_id, brand_id, user_id))
        interpretation = parse_reply(raw, CommandInterpretation)
        logger.debug("Augmentation intent for %r: %s", message, interpretation.intent)
        return AugmentationReply(
            intent=interpretation.intent,
            response=interpretation.response,
            actions=[interpretation.intent],
            suggestions=interpretation.suggestions[:3],
        )


class LLMGenerationService:
    """Generation service that writes copy with a chat model and scores it locally."""

    def __init__(self, *, model_name: str, model: ChatRunnable | None = None, env_file: Path | None = None) -> None:
        self.model_name = model_name
        self._model = model or bind_chat_model(GeneratedCopy, model_name=model_name, temperature=0.4, env_file=env_file)

    def generate_content(self, request: GenerationRequest) -> GeneratedContent:
        copy = parse_reply(self._model.invoke(copy_messages(request)), GeneratedCopy)
        score, details, suggestions = score_brand_voice(f"{copy.subject}\n{copy.body}\n{copy.cta}")
        channels = set(request.channels)
        return GeneratedContent(
            email=EmailContent(subject=copy.subject, body=copy.body, cta=copy.cta or "Learn More"),
            sms=copy.sms if "sms" in channels else None,
            social=SocialContent(post=copy.social_post, hashtags=copy.hashtags) if "social" in channels else None,
            brand_score=score,
            brand_score_details=details,
            suggestions=suggestions,
        )
