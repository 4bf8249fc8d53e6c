from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from .collaborators import BannerProjection

logger = logging.getLogger(__name__)

_SITE_STATE_TIMEOUT_SECONDS = 10


def _http_post_json(url: str, payload: dict[str, Any], *, timeout: int = _SITE_STATE_TIMEOUT_SECONDS) -> dict[str, Any]:
    """Send a JSON POST request and return the parsed JSON response.

    Raises:
        RuntimeError: If the HTTP request fails or the response is not valid JSON.
    """
    request = urllib.request.Request(
        url,
        method="POST",
        headers={"Content-Type": "application/json"},
        data=json.dumps(payload).encode("utf-8"),
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            data = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")[:500]
        logger.error("HTTP %d from %s: %s", exc.code, url, body)
        raise RuntimeError(f"site state update failed with HTTP {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f"site state endpoint unreachable: {exc.reason}") from exc
    if not data.strip():
        return {}
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"site state endpoint returned invalid JSON: {data[:200]!r}") from exc


class HttpSiteStateSink:
    """Pushes the published website banner to the demo site's state endpoint."""

    def __init__(self, url: str) -> None:
        self.url = url

    def push_banner(self, banner: BannerProjection) -> None:
        result = _http_post_json(self.url, banner.to_payload())
        logger.info("Website banner updated at %s: %s", self.url, result)


class RecordingSiteStateSink:
    """Keeps pushed banners in memory; used when no site endpoint is configured."""

    def __init__(self) -> None:
        self.banners: list[BannerProjection] = []

    def push_banner(self, banner: BannerProjection) -> None:
        self.banners.append(banner)
