"""
Configuration for the submission service.

All settings are loaded from environment variables into one Settings object
that every handler receives. NO SECRETS ARE STORED IN CODE.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

APP_NAME = "Campaign Tracker Submissions"
APP_VERSION = "0.1.0"

STORE_BACKENDS = ("github", "memory")


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Deployment configuration. Build with Settings.from_env() or directly in tests."""

    # --- Secrets ---
    admin_key: str = ""
    github_token: str = ""

    # --- Document store ---
    store_backend: str = "github"
    github_api_url: str = "https://api.github.com"
    repo_owner: str = ""
    repo_name: str = ""
    branch: str = "main"
    players_path: str = "players.json"
    leaderboard_path: str = "leaderboard.json"
    game_results_path: str = "game_results.json"

    # --- Rebuild hooks (one per kind of submission) ---
    registration_build_hook_url: str = ""
    game_build_hook_url: str = ""
    admin_build_hook_url: str = ""

    # --- Outbound calls ---
    http_timeout_seconds: float = 10.0
    max_write_attempts: int = 3

    # --- HTTP surface ---
    route_prefix: str = "/.netlify/functions"
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        origins = tuple(o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip())
        return cls(
            admin_key=env.get("ADMIN_KEY", ""),
            github_token=env.get("GITHUB_TOKEN", ""),
            store_backend=env.get("STORE_BACKEND", "github").strip().lower() or "github",
            github_api_url=env.get("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            repo_owner=env.get("GITHUB_REPO_OWNER", ""),
            repo_name=env.get("GITHUB_REPO_NAME", ""),
            branch=env.get("GITHUB_BRANCH", "main") or "main",
            players_path=env.get("PLAYERS_PATH", "players.json"),
            leaderboard_path=env.get("LEADERBOARD_PATH", "leaderboard.json"),
            game_results_path=env.get("GAME_RESULTS_PATH", "game_results.json"),
            registration_build_hook_url=env.get("REGISTRATION_BUILD_HOOK_URL", ""),
            game_build_hook_url=env.get("GAME_BUILD_HOOK_URL", ""),
            admin_build_hook_url=env.get("ADMIN_BUILD_HOOK_URL", ""),
            http_timeout_seconds=_float(env, "HTTP_TIMEOUT_SECONDS", 10.0),
            max_write_attempts=max(1, _int(env, "MAX_WRITE_ATTEMPTS", 3)),
            route_prefix=env.get("ROUTE_PREFIX", "/.netlify/functions").rstrip("/"),
            cors_origins=origins or ("*",),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def validate_config(settings: Settings) -> list[str]:
    """
    Validate critical configuration.
    Returns list of error messages (empty if valid).
    """
    errors: list[str] = []

    if not settings.admin_key:
        errors.append("ADMIN_KEY not set (admin submissions will be rejected)")

    if settings.store_backend not in STORE_BACKENDS:
        errors.append(f"STORE_BACKEND must be one of {STORE_BACKENDS}, got '{settings.store_backend}'")

    if settings.store_backend == "github":
        if not settings.github_token:
            errors.append("GITHUB_TOKEN not set")
        if not settings.repo_owner or not settings.repo_name:
            errors.append("GITHUB_REPO_OWNER and GITHUB_REPO_NAME must both be set")

    for name, url in (
        ("REGISTRATION_BUILD_HOOK_URL", settings.registration_build_hook_url),
        ("GAME_BUILD_HOOK_URL", settings.game_build_hook_url),
        ("ADMIN_BUILD_HOOK_URL", settings.admin_build_hook_url),
    ):
        if not url:
            errors.append(f"{name} not set (site will not be rebuilt after those submissions)")

    if settings.http_timeout_seconds <= 0:
        errors.append("HTTP_TIMEOUT_SECONDS must be positive")

    if not isinstance(logging.getLevelName(settings.log_level), int):
        errors.append(f"LOG_LEVEL '{settings.log_level}' is not a logging level (using INFO)")

    return errors
