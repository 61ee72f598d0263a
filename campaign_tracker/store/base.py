"""
Document store interface.

A store holds named documents on one branch. Reads return the bytes plus a
version token; single-document writes are conditioned on that token, and
multi-document commits are conditioned on the commit the documents were read at.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Mapping, Protocol


@dataclass(frozen=True)
class StoredDocument:
    path: str
    content: bytes
    version: str  # opaque; pass back unchanged to write_document


class DocumentStore(Protocol):
    def read_document(self, path: str, ref: str | None = None) -> StoredDocument:
        """Raises DocumentNotFound if the document does not exist (at ref, if given)."""
        ...

    def write_document(self, path: str, content: bytes, version: str | None, message: str) -> str:
        """
        Replace one document if its current version is still `version`
        (None: create, must not exist). Returns the new version.
        Raises VersionConflict or RemoteStoreError.
        """
        ...

    def head_commit(self) -> str:
        """Current commit of the branch."""
        ...

    def commit_multiple(self, changes: Mapping[str, bytes], parent: str, message: str) -> str:
        """
        Commit every document in `changes` as one commit on top of `parent`
        and advance the branch to it. All or nothing: on any failure the
        branch is left where it was. Returns the new commit id.
        Raises VersionConflict if the branch is no longer at `parent`.
        """
        ...

    def close(self) -> None:
        """Release connections held by the store."""
        ...


def git_blob_sha(content: bytes) -> str:
    """SHA-1 git assigns to a blob with this content."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()
