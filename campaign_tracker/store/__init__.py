"""
Document store layer: where the campaign JSON documents live.
No campaign logic here, only reads, writes and commits of named documents.
"""
from .base import DocumentStore, StoredDocument, git_blob_sha
from .github import GitHubDocumentStore
from .memory import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "StoredDocument",
    "git_blob_sha",
    "GitHubDocumentStore",
    "InMemoryDocumentStore",
]
