"""
Shared fixtures: a fake GitHub (contents + git data API) behind
httpx.MockTransport, a recording build hook, and test settings.
"""
from __future__ import annotations

import base64
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from campaign_tracker.config import Settings
from campaign_tracker.services import RebuildNotifier, SubmissionService
from campaign_tracker.store import GitHubDocumentStore, InMemoryDocumentStore, git_blob_sha

OWNER = "campaign-org"
REPO = "campaign-site"
ADMIN_KEY = "letmein"
FIXED_NOW = datetime(2025, 3, 14, 18, 30, 5, 123000, tzinfo=timezone.utc)


def _sha(*parts: Any) -> str:
    return hashlib.sha1(json.dumps(parts, sort_keys=True, default=str).encode("utf-8")).hexdigest()


class FakeGitHub:
    """
    Just enough of the GitHub REST API for GitHubDocumentStore.
    Every accepted write creates a commit holding a full snapshot of the files.
    """

    def __init__(self, files: dict[str, bytes] | None = None, branch: str = "main") -> None:
        self.branch = branch
        self.blobs: dict[str, bytes] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[tuple[str, str], int] = {}  # (method, route) -> status to return
        self.large_files: set[str] = set()
        self.before_request: Callable[[str, str], None] | None = None
        self.head = self._commit(None, "Initial commit", self._tree(self._blob_map(files or {})))

    # ---------- object helpers ----------

    def _blob(self, content: bytes) -> str:
        sha = git_blob_sha(content)
        self.blobs[sha] = content
        return sha

    def _blob_map(self, files: dict[str, bytes]) -> dict[str, str]:
        return {path: self._blob(content) for path, content in files.items()}

    def _tree(self, entries: dict[str, str]) -> str:
        sha = _sha("tree", sorted(entries.items()), len(self.trees))
        self.trees[sha] = dict(entries)
        return sha

    def _commit(self, parent: str | None, message: str, tree: str) -> str:
        sha = _sha("commit", parent, message, tree, len(self.commits))
        self.commits[sha] = {"parent": parent, "message": message, "tree": tree}
        return sha

    def files_at(self, ref: str | None = None) -> dict[str, bytes]:
        commit = self.commits[ref or self.head]
        return {path: self.blobs[sha] for path, sha in self.trees[commit["tree"]].items()}

    def push_external(self, path: str, content: bytes, message: str = "External edit") -> str:
        """Simulate another writer committing to the branch."""
        entries = dict(self.trees[self.commits[self.head]["tree"]])
        entries[path] = self._blob(content)
        self.head = self._commit(self.head, message, self._tree(entries))
        return self.head

    def head_message(self) -> str:
        return self.commits[self.head]["message"]

    # ---------- transport ----------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        prefix = f"/repos/{OWNER}/{REPO}"
        path = request.url.path
        assert path.startswith(prefix), path
        route = path[len(prefix):]
        self.calls.append((request.method, route))
        if self.before_request is not None:
            self.before_request(request.method, route)
        for (method, fail_route), status in self.fail.items():
            if request.method == method and route.startswith(fail_route):
                return httpx.Response(status, json={"message": "Server Error"})
        body = json.loads(request.content) if request.content else {}

        if route.startswith("/contents/"):
            file_path = route[len("/contents/"):]
            if request.method == "GET":
                return self._get_contents(file_path, request.url.params.get("ref"))
            if request.method == "PUT":
                return self._put_contents(file_path, body)
        if request.method == "GET" and route.startswith("/git/blobs/"):
            sha = route.rsplit("/", 1)[-1]
            content = base64.b64encode(self.blobs[sha]).decode("ascii")
            return httpx.Response(200, json={"sha": sha, "encoding": "base64", "content": content})
        if request.method == "GET" and route == f"/git/ref/heads/{self.branch}":
            return httpx.Response(200, json={"ref": f"refs/heads/{self.branch}", "object": {"sha": self.head}})
        if request.method == "GET" and route.startswith("/git/commits/"):
            sha = route.rsplit("/", 1)[-1]
            if sha not in self.commits:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"sha": sha, "tree": {"sha": self.commits[sha]["tree"]}})
        if request.method == "POST" and route == "/git/blobs":
            assert body["encoding"] == "base64"
            return httpx.Response(201, json={"sha": self._blob(base64.b64decode(body["content"]))})
        if request.method == "POST" and route == "/git/trees":
            entries = dict(self.trees[body["base_tree"]])
            for item in body["tree"]:
                entries[item["path"]] = item["sha"]
            return httpx.Response(201, json={"sha": self._tree(entries)})
        if request.method == "POST" and route == "/git/commits":
            sha = self._commit(body["parents"][0], body["message"], body["tree"])
            return httpx.Response(201, json={"sha": sha})
        if request.method == "PATCH" and route == f"/git/refs/heads/{self.branch}":
            new = body["sha"]
            if not body.get("force") and self.commits[new]["parent"] != self.head:
                return httpx.Response(422, json={"message": "Update is not a fast forward"})
            self.head = new
            return httpx.Response(200, json={"object": {"sha": new}})
        return httpx.Response(404, json={"message": "Not Found"})

    def _get_contents(self, file_path: str, ref: str | None) -> httpx.Response:
        commit = self.head if ref in (None, self.branch) else ref
        if commit not in self.commits:
            return httpx.Response(404, json={"message": "No commit found for the ref"})
        entries = self.trees[self.commits[commit]["tree"]]
        if file_path not in entries:
            return httpx.Response(404, json={"message": "Not Found"})
        sha = entries[file_path]
        if file_path in self.large_files:
            return httpx.Response(200, json={"sha": sha, "encoding": "none", "content": ""})
        encoded = base64.encodebytes(self.blobs[sha]).decode("ascii")  # GitHub wraps lines too
        return httpx.Response(200, json={"sha": sha, "encoding": "base64", "content": encoded})

    def _put_contents(self, file_path: str, body: dict[str, Any]) -> httpx.Response:
        entries = dict(self.trees[self.commits[self.head]["tree"]])
        current = entries.get(file_path)
        supplied = body.get("sha")
        if current is not None and supplied is None:
            return httpx.Response(422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if supplied != current:
            return httpx.Response(409, json={"message": f"{file_path} does not match {supplied}"})
        entries[file_path] = self._blob(base64.b64decode(body["content"]))
        self.head = self._commit(self.head, body["message"], self._tree(entries))
        return httpx.Response(200, json={"content": {"sha": entries[file_path]}, "commit": {"sha": self.head}})


class HookRecorder:
    """Build hook endpoint that records POSTs and answers with a fixed status."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.calls: list[str] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        return httpx.Response(self.status)

    def notifier(self) -> RebuildNotifier:
        return RebuildNotifier(timeout_s=5.0, transport=httpx.MockTransport(self.handle))


def encode(rows: list[dict[str, Any]]) -> bytes:
    return json.dumps(rows, indent=2).encode("utf-8")


def decode(content: bytes) -> list[dict[str, Any]]:
    return json.loads(content.decode("utf-8"))


# ---------- fixtures ----------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        admin_key=ADMIN_KEY,
        github_token="test-token",
        repo_owner=OWNER,
        repo_name=REPO,
        players_path="players.json",
        leaderboard_path="leaderboard.json",
        game_results_path="data/game_results.json",
        registration_build_hook_url="https://hooks.example/registration",
        game_build_hook_url="https://hooks.example/game",
        admin_build_hook_url="https://hooks.example/admin",
        max_write_attempts=3,
    )


@pytest.fixture
def seed_files() -> dict[str, bytes]:
    players = [
        {"id": "alice12345", "name": "Alice", "faction": "Iron Golems", "warband_name": "The Anvils"},
        {"id": "bob54321", "name": "Bob", "faction": "Spire Tyrants", "warband_name": "Bloodbound"},
    ]
    leaderboard = [
        {"player_id": "bob54321", "player_name": "Bob", "faction": "Spire Tyrants",
         "warband_name": "Bloodbound", "campaign_points": 12, "territories_held": 2},
        {"player_id": "alice12345", "player_name": "Alice", "faction": "Iron Golems",
         "warband_name": "The Anvils", "campaign_points": 7, "territories_held": 1},
    ]
    return {"players.json": encode(players), "leaderboard.json": encode(leaderboard)}


@pytest.fixture
def fake_github(seed_files) -> FakeGitHub:
    return FakeGitHub(seed_files)


@pytest.fixture
def github_store(fake_github, settings) -> GitHubDocumentStore:
    store = GitHubDocumentStore.from_settings(settings, transport=fake_github.transport())
    yield store
    store.close()


@pytest.fixture
def memory_store(seed_files) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(seed_files)


@pytest.fixture
def hook() -> HookRecorder:
    return HookRecorder()


@pytest.fixture
def service(memory_store, hook, settings) -> SubmissionService:
    return SubmissionService(memory_store, hook.notifier(), settings, clock=lambda: FIXED_NOW)
