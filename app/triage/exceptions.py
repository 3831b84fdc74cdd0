"""
Triage exceptions.

Only storage failures are fatal for a batch. Intelligence failures are
caught where they happen and replaced by the rule-based fallback.
"""

from typing import Optional


class TriageException(Exception):
    """Base exception for all triage errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class StorageException(TriageException):
    """The record store failed; carries the pipeline stage that was running."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[dict] = None):
        self.stage = stage
        super().__init__(message, details)


class IntelligenceUnavailable(TriageException):
    """Classification or embedding could not be produced."""


class ClusterNotFound(TriageException):

    def __init__(self, cluster_id: str):
        self.cluster_id = cluster_id
        super().__init__(f"Cluster with id '{cluster_id}' not found")


class InvalidFeedback(TriageException):
    """Ingestion payload is missing content or names an unknown source."""


class DuplicateFeedback(TriageException):
    """A feedback item with this id is already stored."""

    def __init__(self, feedback_id: str):
        self.feedback_id = feedback_id
        super().__init__(f"Feedback with id '{feedback_id}' already exists")
