"""
GitHub-backed document store.

Documents are files on one branch of the site repository.
- Single-document writes go through the contents API, conditioned on the
  file's blob SHA (GitHub answers 409 when it is stale).
- Multi-document commits go through the git data API: blobs -> tree ->
  commit -> non-forced ref update. Nothing is visible until the ref moves,
  and the ref only moves if the branch is still at the parent commit.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from campaign_tracker.config import Settings
from campaign_tracker.errors import DocumentNotFound, RemoteStoreError, VersionConflict
from campaign_tracker.store.base import StoredDocument

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
FILE_MODE = "100644"


def _is_conflict(resp: httpx.Response) -> bool:
    if resp.status_code == 409:
        return True
    if resp.status_code != 422:
        return False
    text = resp.text.lower()
    # 422 covers both "sha wasn't supplied" (file created meanwhile) and
    # "update is not a fast forward" (branch moved); other 422s are real errors.
    return "sha" in text or "fast forward" in text


class GitHubDocumentStore:
    """DocumentStore over the GitHub REST API (httpx, bounded timeout on every call)."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not owner or not repo:
            raise ValueError("owner and repo are required")
        self.owner = owner
        self.repo = repo
        self.branch = branch
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "campaign-tracker-submissions",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.BaseTransport | None = None) -> "GitHubDocumentStore":
        return cls(
            owner=settings.repo_owner,
            repo=settings.repo_name,
            token=settings.github_token,
            branch=settings.branch,
            api_url=settings.github_api_url,
            timeout_s=settings.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubDocumentStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ---------- HTTP plumbing ----------

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _request(self, method: str, url: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("GitHub %s failed: %s", what, e)
            raise RemoteStoreError(f"Failed to {what} on GitHub. (Error: {e})") from e

    def _check(self, resp: httpx.Response, what: str, conflict_ok: bool = False) -> dict[str, Any]:
        # Only conditional writes (contents PUT, ref PATCH) can conflict; a 409
        # anywhere else (e.g. "Git Repository is empty") is a store failure.
        if conflict_ok and _is_conflict(resp):
            logger.warning("GitHub %s rejected as conflict: status=%s", what, resp.status_code)
            raise VersionConflict(f"Failed to {what}: the branch changed since it was read. Please retry.")
        if resp.status_code >= 400:
            logger.error("GitHub %s failed: status=%s body=%s", what, resp.status_code, resp.text[:500])
            raise RemoteStoreError(f"Failed to {what} on GitHub. (status={resp.status_code})")
        try:
            payload = resp.json()
        except ValueError as e:
            raise RemoteStoreError(f"Failed to {what}: response was not JSON") from e
        if not isinstance(payload, dict):
            raise RemoteStoreError(f"Failed to {what}: unexpected response shape")
        return payload

    # ---------- Reads ----------

    def read_document(self, path: str, ref: str | None = None) -> StoredDocument:
        what = f"retrieve {path}"
        resp = self._request(
            "GET",
            f"{self._repo_path}/contents/{quote(path, safe='/')}",
            what,
            params={"ref": ref or self.branch},
        )
        if resp.status_code == 404:
            logger.info("%s not found on %s; treating as empty", path, ref or self.branch)
            raise DocumentNotFound(path)
        data = self._check(resp, what)
        sha = str(data.get("sha") or "")
        if not sha:
            raise RemoteStoreError(f"Failed to {what}: response has no sha (is it a directory?)")
        if data.get("encoding") == "base64":
            content = base64.b64decode(data.get("content") or "")
        else:
            # Files over 1 MB come back with encoding "none"; fetch the blob instead.
            content = self._read_blob(sha, what)
        return StoredDocument(path=path, content=content, version=sha)

    def _read_blob(self, sha: str, what: str) -> bytes:
        resp = self._request("GET", f"{self._repo_path}/git/blobs/{sha}", what)
        data = self._check(resp, what)
        if data.get("encoding") != "base64":
            raise RemoteStoreError(f"Failed to {what}: unsupported blob encoding {data.get('encoding')!r}")
        return base64.b64decode(data.get("content") or "")

    def head_commit(self) -> str:
        what = f"resolve branch {self.branch}"
        resp = self._request("GET", f"{self._repo_path}/git/ref/heads/{self.branch}", what)
        data = self._check(resp, what)
        sha = (data.get("object") or {}).get("sha")
        if not sha:
            raise RemoteStoreError(f"Failed to {what}: ref has no object sha")
        return str(sha)

    # ---------- Writes ----------

    def write_document(self, path: str, content: bytes, version: str | None, message: str) -> str:
        what = f"update {path}"
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if version is not None:
            body["sha"] = version
        resp = self._request("PUT", f"{self._repo_path}/contents/{quote(path, safe='/')}", what, json=body)
        data = self._check(resp, what, conflict_ok=True)
        new_sha = (data.get("content") or {}).get("sha")
        logger.info("Updated %s on %s (%s)", path, self.branch, message)
        return str(new_sha or "")

    def commit_multiple(self, changes: Mapping[str, bytes], parent: str, message: str) -> str:
        if not changes:
            raise ValueError("commit_multiple needs at least one change")
        head = self.head_commit()
        if head != parent:
            raise VersionConflict("Branch moved since the documents were read. Please retry.")

        commit = self._check(
            self._request("GET", f"{self._repo_path}/git/commits/{parent}", "read base commit"),
            "read base commit",
        )
        base_tree = (commit.get("tree") or {}).get("sha")
        if not base_tree:
            raise RemoteStoreError("Failed to read base commit: no tree sha")

        entries = []
        for path, content in changes.items():
            blob = self._check(
                self._request(
                    "POST",
                    f"{self._repo_path}/git/blobs",
                    f"create blob for {path}",
                    json={"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"},
                ),
                f"create blob for {path}",
            )
            entries.append({"path": path, "mode": FILE_MODE, "type": "blob", "sha": blob["sha"]})

        tree = self._check(
            self._request(
                "POST",
                f"{self._repo_path}/git/trees",
                "create tree",
                json={"base_tree": base_tree, "tree": entries},
            ),
            "create tree",
        )
        new_commit = self._check(
            self._request(
                "POST",
                f"{self._repo_path}/git/commits",
                "create commit",
                json={"message": message, "tree": tree["sha"], "parents": [parent]},
            ),
            "create commit",
        )
        # The only step other readers can observe.
        self._check(
            self._request(
                "PATCH",
                f"{self._repo_path}/git/refs/heads/{self.branch}",
                f"update branch {self.branch}",
                json={"sha": new_commit["sha"], "force": False},
            ),
            f"update branch {self.branch}",
            conflict_ok=True,
        )
        logger.info("Committed %s to %s as %s", ", ".join(changes), self.branch, new_commit["sha"])
        return str(new_commit["sha"])
