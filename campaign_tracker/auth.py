"""
Admin credential check for score adjustment and player deletion.
No accounts: one shared admin key, configured out of band.
"""
from __future__ import annotations

import hmac

from campaign_tracker.errors import Unauthorized


def admin_key_matches(submitted: str | None, expected: str) -> bool:
    # An unset secret never matches, not even an empty submission.
    if not expected or not submitted:
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))


def require_admin(submitted: str | None, expected: str) -> None:
    """Raise Unauthorized unless the submitted key equals the configured one."""
    if not admin_key_matches(submitted, expected):
        raise Unauthorized("Unauthorized: Incorrect Admin Key.")
