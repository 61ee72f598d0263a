"""
Rebuild notifier: one POST (no body) to the site's build hook after a
successful write. The data is already saved by then, so a failed trigger is
reported but never undoes or fails the submission.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from campaign_tracker.errors import NotifyFailure

logger = logging.getLogger(__name__)


class RebuildNotifier:
    def __init__(self, timeout_s: float = 10.0, transport: httpx.BaseTransport | None = None) -> None:
        self._client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RebuildNotifier":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def trigger(self, hook_url: str) -> None:
        """POST to the hook. Raises NotifyFailure if unreachable or non-2xx."""
        if not hook_url:
            raise NotifyFailure("No build hook configured")
        try:
            resp = self._client.post(hook_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotifyFailure(f"Failed to trigger site rebuild: {e}") from e
        if resp.is_error:
            raise NotifyFailure(
                f"Failed to trigger site rebuild: status={resp.status_code} {resp.reason_phrase}"
            )

    def try_trigger(self, hook_url: str) -> bool:
        """Trigger and report success; failures are logged, never raised."""
        try:
            self.trigger(hook_url)
        except NotifyFailure as e:
            logger.warning("Site rebuild not triggered: %s", e.message)
            return False
        logger.info("Site rebuild triggered")
        return True
