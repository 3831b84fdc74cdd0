"""
Basic tests for DigestSync application
"""

import pytest
from app.api.app import create_app


def test_health_endpoint(client):
    """Test the health check endpoint."""
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'healthy'
    assert response.json['service'] == 'DigestSync API'


def test_404_error(client):
    """Test 404 error handling."""
    response = client.get('/nonexistent')
    assert response.status_code == 404
    assert 'error' in response.json


def test_app_creation(services):
    """Test that the Flask app can be created."""
    app = create_app('testing', services=services)
    assert app is not None
    assert app.config['TESTING'] is True
    assert app.extensions['digestsync'] is services


def test_database_models_importable():
    """Test that all database models can be imported."""
    try:
        from app.models.feedback import Feedback
        from app.models.cluster import ClusterRecord, ClusterMember
        from app.models.digest import DigestRecord, InstantAlert
        from app.models.store import FeedbackStore
        assert True
    except ImportError as e:
        pytest.fail(f"Failed to import database models: {e}")


def test_nlp_components_importable():
    """Test that all NLP components can be imported."""
    try:
        from app.nlp.classifier import FeedbackClassifier
        from app.nlp.embedder import TextEmbedder
        from app.nlp.intelligence import IntelligenceService
        from app.nlp.heuristics import is_user_specific
        assert True
    except ImportError as e:
        pytest.fail(f"Failed to import NLP components: {e}")


def test_workers_importable():
    """Test that all worker components can be imported."""
    try:
        from app.workers.digest_worker import DigestWorker
        from app.workers.alert_worker import AlertWorker
        assert True
    except ImportError as e:
        pytest.fail(f"Failed to import worker components: {e}")


def test_testing_config_has_no_delivery_credentials():
    from config.config import get_config

    config = get_config('testing')
    assert config.TELEGRAM_BOT_TOKEN is None
    assert any('TELEGRAM' in problem for problem in config.validate())


def test_seconds_until_next_digest_hour(now):
    from main import seconds_until

    assert seconds_until(17, now) == 5 * 3600
    assert seconds_until(12, now) == 24 * 3600
    assert 0 < seconds_until(17) <= 24 * 3600
