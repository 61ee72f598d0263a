"""
In-process document store with the same version semantics as the GitHub store.
Used for local development (STORE_BACKEND=memory) and tests.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Mapping

from campaign_tracker.errors import DocumentNotFound, RemoteStoreError, VersionConflict
from campaign_tracker.store.base import StoredDocument, git_blob_sha

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Commit:
    id: str
    parent: str | None
    message: str
    files: dict[str, bytes]


class InMemoryDocumentStore:
    """
    Every write creates a commit holding a full snapshot of the branch.
    Document versions are git blob SHAs; the branch head is the latest commit.
    """

    def __init__(self, files: Mapping[str, bytes] | None = None) -> None:
        self._lock = threading.Lock()
        self._commits: dict[str, _Commit] = {}
        root = self._new_commit(None, "Initial commit", dict(files or {}))
        self._head = root.id

    # ---------- inspection (tests, local dev) ----------

    @property
    def head(self) -> str:
        return self._head

    @property
    def commit_count(self) -> int:
        return len(self._commits)

    def commit_message(self, commit_id: str) -> str:
        return self._commits[commit_id].message

    def files(self) -> dict[str, bytes]:
        return dict(self._commits[self._head].files)

    # ---------- DocumentStore ----------

    def read_document(self, path: str, ref: str | None = None) -> StoredDocument:
        with self._lock:
            commit = self._commits.get(ref or self._head)
            if commit is None:
                raise RemoteStoreError(f"Unknown ref: {ref}")
            if path not in commit.files:
                raise DocumentNotFound(path)
            content = commit.files[path]
        return StoredDocument(path=path, content=content, version=git_blob_sha(content))

    def write_document(self, path: str, content: bytes, version: str | None, message: str) -> str:
        with self._lock:
            files = dict(self._commits[self._head].files)
            current = files.get(path)
            current_version = git_blob_sha(current) if current is not None else None
            if current_version != version:
                logger.warning("Stale version for %s: have %s, expected %s", path, version, current_version)
                raise VersionConflict(f"{path} was modified by another submission. Please retry.")
            files[path] = content
            commit = self._new_commit(self._head, message, files)
            self._head = commit.id
        return git_blob_sha(content)

    def head_commit(self) -> str:
        return self._head

    def commit_multiple(self, changes: Mapping[str, bytes], parent: str, message: str) -> str:
        with self._lock:
            if parent != self._head:
                raise VersionConflict("Branch moved since the documents were read. Please retry.")
            files = dict(self._commits[parent].files)
            files.update(changes)
            commit = self._new_commit(parent, message, files)
            self._head = commit.id
        return commit.id

    def close(self) -> None:
        pass

    def _new_commit(self, parent: str | None, message: str, files: dict[str, bytes]) -> _Commit:
        h = hashlib.sha1()
        h.update((parent or "").encode("ascii"))
        h.update(message.encode("utf-8"))
        for path in sorted(files):
            h.update(path.encode("utf-8"))
            h.update(git_blob_sha(files[path]).encode("ascii"))
        h.update(str(len(self._commits)).encode("ascii"))
        commit = _Commit(id=h.hexdigest(), parent=parent, message=message, files=files)
        self._commits[commit.id] = commit
        return commit
