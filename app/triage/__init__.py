from .entities import (
    Category,
    Classification,
    Cluster,
    Digest,
    DigestEntry,
    FeedbackItem,
    FixStatus,
    PriorityResult,
    Severity,
    Source,
)
from .exceptions import (
    ClusterNotFound,
    IntelligenceUnavailable,
    InvalidFeedback,
    StorageException,
    TriageException,
)

__all__ = [
    'Category', 'Classification', 'Cluster', 'Digest', 'DigestEntry', 'FeedbackItem',
    'FixStatus', 'PriorityResult', 'Severity', 'Source',
    'ClusterNotFound', 'IntelligenceUnavailable', 'InvalidFeedback', 'StorageException', 'TriageException',
]
