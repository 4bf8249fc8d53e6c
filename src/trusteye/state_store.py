from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from pydantic import ValidationError

from .models import Campaign, Receipt, utc_now

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

# ---------------------------------------------------------------------------
# File locking helpers
# ---------------------------------------------------------------------------

_LOCK_SUFFIX = ".lock"


@contextmanager
def _locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive ``fcntl`` lock on a ``.lock`` sidecar of *path*.

    The sidecar lets the data file itself be swapped with ``os.replace``
    while the lock handle stays valid.
    """
    lock_path = path.with_suffix(path.suffix + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to a temp file beside *path*, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _safe_read_json(path: Path, model_name: str) -> str:
    """Read a JSON file and raise a clear error if missing or unreadable.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is empty or contains non-UTF-8 data.
    """
    if not path.is_file():
        raise FileNotFoundError(f"{model_name} not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"{model_name} at {path} contains invalid UTF-8 data") from exc
    if not text.strip():
        raise ValueError(f"{model_name} at {path} is empty")
    return text


def _checked_id(value: str, label: str) -> str:
    if not _SAFE_ID_RE.match(value):
        raise ValueError(f"{label} contains unsupported characters: {value!r}")
    return value


# ---------------------------------------------------------------------------
# CampaignStateStore
# ---------------------------------------------------------------------------


class CampaignStateStore:
    """Filesystem persistence for campaigns, publish receipts and the lifecycle event log.

    Campaign writes are atomic (temp file then rename) and serialized per
    campaign with an ``fcntl`` lock. Receipts are write-once. Events are
    appended as JSON lines under a lock on the log file.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.campaigns_dir = self.root / "campaigns"
        self.receipts_dir = self.root / "receipts"
        self.ensure_structure()

    def ensure_structure(self) -> None:
        """Create all required directories if they do not exist."""
        for directory in (self.root, self.campaigns_dir, self.receipts_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Path properties
    # ------------------------------------------------------------------

    @property
    def events_path(self) -> Path:
        """Path to the append-only lifecycle event log."""
        return self.root / "events.jsonl"

    def campaign_path(self, campaign_id: str) -> Path:
        return self.campaigns_dir / f"{_checked_id(campaign_id, 'campaign_id')}.json"

    def receipt_path(self, receipt_id: str) -> Path:
        return self.receipts_dir / f"{_checked_id(receipt_id, 'receipt_id')}.json"

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def save_campaign(self, campaign: Campaign) -> Path:
        """Persist a campaign snapshot, replacing any previous version.

        Args:
            campaign: Validated Campaign model.

        Returns:
            Path to the written file.
        """
        path = self.campaign_path(campaign.campaign_id)
        with _locked_file(path):
            _atomic_write_text(path, campaign.model_dump_json(indent=2))
        return path

    def load_campaign(self, campaign_id: str) -> Campaign:
        """Read a campaign by ID.

        Raises:
            FileNotFoundError: If the campaign does not exist.
            ValueError: If the file is corrupt or fails validation.
        """
        path = self.campaign_path(campaign_id)
        text = _safe_read_json(path, "campaign")
        try:
            return Campaign.model_validate_json(text)
        except ValidationError as exc:
            raise ValueError(f"campaign at {path} failed validation: {exc}") from exc

    def has_campaign(self, campaign_id: str) -> bool:
        return self.campaign_path(campaign_id).is_file()

    def list_campaigns(self) -> list[Campaign]:
        """Return every stored campaign, oldest first."""
        campaigns = [self.load_campaign(path.stem) for path in self.campaigns_dir.glob("*.json")]
        return sorted(campaigns, key=lambda campaign: (campaign.created_at, campaign.campaign_id))

    # ------------------------------------------------------------------
    # Receipts (write-once)
    # ------------------------------------------------------------------

    def write_receipt(self, receipt: Receipt) -> Path:
        """Persist a receipt. Receipts are immutable once written.

        Raises:
            FileExistsError: If a receipt with the same ID already exists.
        """
        path = self.receipt_path(receipt.receipt_id)
        with _locked_file(path):
            if path.exists():
                raise FileExistsError(f"receipt {receipt.receipt_id} already written: {path}")
            _atomic_write_text(path, receipt.model_dump_json(indent=2))
        return path

    def read_receipt(self, receipt_id: str) -> Receipt:
        path = self.receipt_path(receipt_id)
        text = _safe_read_json(path, "receipt")
        try:
            return Receipt.model_validate_json(text)
        except ValidationError as exc:
            raise ValueError(f"receipt at {path} failed validation: {exc}") from exc

    def list_receipts(self) -> list[str]:
        """Return a sorted list of all stored receipt IDs."""
        return sorted(p.stem for p in self.receipts_dir.glob("*.json"))

    # ------------------------------------------------------------------
    # Lifecycle event log
    # ------------------------------------------------------------------

    def append_event(self, event: str, *, campaign_id: str | None = None, **fields: Any) -> None:
        """Append one lifecycle event to ``events.jsonl``."""
        record = {"event": event, "campaign_id": campaign_id, "at": utc_now().isoformat(), **fields}
        line = json.dumps(record, sort_keys=True, default=str)
        with _locked_file(self.events_path):
            with self.events_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def read_events(self, campaign_id: str | None = None) -> list[dict[str, Any]]:
        if not self.events_path.is_file():
            return []
        events: list[dict[str, Any]] = []
        for line in self.events_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            if campaign_id is None or record.get("campaign_id") == campaign_id:
                events.append(record)
        return events
