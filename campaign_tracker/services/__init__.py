"""
Service layer: the submission pipeline and the rebuild notifier.
Campaign rules live in campaign_tracker.transforms; storage in campaign_tracker.store.
"""
from .notifier import RebuildNotifier
from .submission_service import Mutation, SubmissionResult, SubmissionService

__all__ = [
    "RebuildNotifier",
    "Mutation",
    "SubmissionResult",
    "SubmissionService",
]
