from .database import Base, UTCDateTime, init_db, make_engine, make_session_factory
from .feedback import Feedback
from .cluster import ClusterRecord, ClusterMember
from .digest import DigestRecord, InstantAlert
from .store import FeedbackStore

__all__ = [
    'Base', 'UTCDateTime', 'init_db', 'make_engine', 'make_session_factory',
    'Feedback', 'ClusterRecord', 'ClusterMember',
    'DigestRecord', 'InstantAlert', 'FeedbackStore'
]
