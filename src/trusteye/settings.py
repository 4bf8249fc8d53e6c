from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_CHANNELS: tuple[str, ...] = ("email", "slack", "sms", "website")


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    brand_id: str = "premier-nissan"
    user_id: str = "operator"
    approver: str = "demo@trusteye.com"
    available_channels: tuple[str, ...] = _DEFAULT_CHANNELS
    state_store_root: str = "state_store"
    use_llm: bool = False
    model_name: str = "gpt-4o-mini"
    min_brand_score: int = 70
    label_max_length: int = 30
    default_audience_size: int = 500
    requires_human_approval: bool = True
    site_state_url: str = "http://localhost:3001/api/state"

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            brand_id=os.getenv("TRUSTEYE_BRAND_ID", "premier-nissan"),
            user_id=os.getenv("TRUSTEYE_USER_ID", "operator"),
            approver=os.getenv("TRUSTEYE_APPROVER", "demo@trusteye.com"),
            available_channels=_get_env_list("TRUSTEYE_AVAILABLE_CHANNELS", default=_DEFAULT_CHANNELS),
            state_store_root=os.getenv("TRUSTEYE_STATE_STORE_ROOT", "state_store"),
            use_llm=_get_env_bool("TRUSTEYE_USE_LLM", default=False),
            model_name=os.getenv("TRUSTEYE_MODEL", "gpt-4o-mini"),
            min_brand_score=_get_env_int("TRUSTEYE_MIN_BRAND_SCORE", default=70, minimum=0, maximum=100),
            label_max_length=_get_env_int("TRUSTEYE_LABEL_MAX_LENGTH", default=30, minimum=8, maximum=120),
            default_audience_size=_get_env_int("TRUSTEYE_DEFAULT_AUDIENCE_SIZE", default=500, minimum=1),
            requires_human_approval=_get_env_bool("TRUSTEYE_REQUIRES_HUMAN_APPROVAL", default=True),
            site_state_url=os.getenv("TRUSTEYE_SITE_STATE_URL", "http://localhost:3001/api/state"),
        ).normalized()

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        # -- Identity validation --
        brand_id = self.brand_id.strip()
        if not brand_id:
            raise ValueError("TRUSTEYE_BRAND_ID must be non-empty")
        user_id = self.user_id.strip()
        if not user_id:
            raise ValueError("TRUSTEYE_USER_ID must be non-empty")
        approver = self.approver.strip()
        if not approver:
            raise ValueError("TRUSTEYE_APPROVER must be non-empty")

        # -- Channel allow-list validation --
        channels: list[str] = []
        for channel in self.available_channels:
            value = channel.strip().lower()
            if value and value not in channels:
                channels.append(value)
        if not channels:
            raise ValueError("TRUSTEYE_AVAILABLE_CHANNELS must list at least one channel")
        if "email" not in channels:
            raise ValueError("TRUSTEYE_AVAILABLE_CHANNELS must include the default 'email' channel")

        # -- String field validation --
        model_name = self.model_name.strip()
        if not model_name:
            raise ValueError("TRUSTEYE_MODEL must be non-empty")
        if not self.state_store_root.strip():
            raise ValueError("TRUSTEYE_STATE_STORE_ROOT must be non-empty")
        site_state_url = self.site_state_url.strip()
        if not site_state_url.startswith(("http://", "https://")):
            raise ValueError(f"TRUSTEYE_SITE_STATE_URL must be an http(s) URL, got: {self.site_state_url!r}")

        # -- Numeric bounds validation --
        if not 0 <= self.min_brand_score <= 100:
            raise ValueError(f"TRUSTEYE_MIN_BRAND_SCORE must be within [0, 100], got: {self.min_brand_score}")
        if self.label_max_length < 8:
            raise ValueError(f"TRUSTEYE_LABEL_MAX_LENGTH must be >= 8, got: {self.label_max_length}")
        return RuntimeSettings(
            brand_id=brand_id,
            user_id=user_id,
            approver=approver,
            available_channels=tuple(channels),
            state_store_root=self.state_store_root,
            use_llm=self.use_llm,
            model_name=model_name,
            min_brand_score=self.min_brand_score,
            label_max_length=self.label_max_length,
            default_audience_size=self.default_audience_size,
            requires_human_approval=self.requires_human_approval,
            site_state_url=site_state_url,
        )

    def state_store_path(self, repo_root: Path) -> Path:
        path = Path(self.state_store_root)
        return path if path.is_absolute() else repo_root / path


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound (default 10M, prevents absurd values).

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_bool(name: str, default: bool) -> bool:
    """Parse a boolean flag (1/0, true/false, yes/no, on/off)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"{name} must be a boolean flag, got: {raw!r}")


def _get_env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())
