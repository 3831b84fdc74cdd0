"""
Shared fixtures for DigestSync tests
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from app.api.app import create_app
from app.models.database import Base, init_db, make_engine, make_session_factory
from app.models.store import FeedbackStore
from app.nlp.intelligence import IntelligenceService
from app.triage.entities import Category, Cluster, FeedbackItem, Severity, Source
from config.config import TestingConfig
from tests.fakes import DIMENSION, FakeClassifier, FakeEmbedder, FakeNotifier

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = make_engine('sqlite://')
    init_db(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return FeedbackStore(db_session)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def intelligence(classifier, embedder):
    return IntelligenceService(classifier, embedder, dimension=DIMENSION, timeout=5, max_workers=2)


@pytest.fixture
def make_item(now):
    """Factory for feedback items; timestamps count up from one hour before `now`."""
    counter = {'n': 0}

    def _make(content, item_id=None, source=Source.SUPPORT, timestamp=None, author=None, link=None):
        counter['n'] += 1
        return FeedbackItem(
            id=item_id or f"fb-{counter['n']}",
            content=content,
            source=source,
            timestamp=timestamp or (now - timedelta(hours=1) + timedelta(minutes=counter['n'])),
            author=author,
            link=link,
        )

    return _make


@pytest.fixture
def make_cluster(now):
    """Factory for clusters with sensible defaults."""
    counter = {'n': 0}

    def _make(
        representative_text='app crashes on resume',
        centroid=(1.0, 0.0, 0.0),
        count=1,
        category=Category.CRASH,
        severity=Severity.P0,
        last_seen=None,
        **fields,
    ):
        counter['n'] += 1
        seen = last_seen or now - timedelta(hours=2)
        return Cluster(
            id=fields.pop('id', f"cluster-{counter['n']}"),
            category=category,
            severity=severity,
            centroid=np.array(centroid, dtype=float),
            count=count,
            first_seen=fields.pop('first_seen', seen),
            last_seen=seen,
            representative_id=fields.pop('representative_id', f"rep-{counter['n']}"),
            representative_text=representative_text,
            sources=fields.pop('sources', [Source.SUPPORT]),
            **fields,
        )

    return _make


@pytest.fixture
def services(session_factory, intelligence, notifier):
    return {
        'config': TestingConfig,
        'session_factory': session_factory,
        'intelligence': intelligence,
        'notifier': notifier,
    }


@pytest.fixture
def app(services):
    """Create a test Flask application."""
    return create_app('testing', services=services)


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()
