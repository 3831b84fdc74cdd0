from flask import Flask
from flask_cors import CORS
import logging

from app.api.routes import feedback_bp, digest_bp, clusters_bp, admin_bp
from app.models.database import init_db, make_engine, make_session_factory
from app.nlp.classifier import FeedbackClassifier
from app.nlp.embedder import TextEmbedder
from app.nlp.intelligence import IntelligenceService
from app.notify.telegram import TelegramNotifier
from config.config import get_config

logger = logging.getLogger(__name__)

ENDPOINTS = {
    'POST /api/feedback': 'Submit one feedback item (instant alert when P0 or confident P1)',
    'POST /api/seed': 'Load sample feedback',
    'POST /api/digest/run': 'Generate and send the morning digest',
    'GET /api/digest': 'Latest digest (JSON)',
    'GET /api/digest/view': 'Latest digest as sent to Telegram (HTML)',
    'POST /api/clusters/<id>/mark-fixed': 'Record a deployed fix and start monitoring',
    'POST /api/telegram/test': 'Test the Telegram connection',
    'POST /api/reset': 'Delete all stored data',
    'GET /health': 'Health check',
}


def build_services(config_cls) -> dict:
    """Database, intelligence and delivery collaborators for a config."""
    db_engine = make_engine(config_cls.DATABASE_URL)
    init_db(db_engine)
    return {
        'config': config_cls,
        'session_factory': make_session_factory(db_engine),
        'intelligence': IntelligenceService.from_config(
            config_cls,
            FeedbackClassifier.from_config(config_cls),
            TextEmbedder.from_config(config_cls),
        ),
        'notifier': TelegramNotifier.from_config(config_cls),
    }


def create_app(config_name=None, services=None):
    """Application factory for Flask app."""
    app = Flask(__name__)
    config_cls = get_config(config_name)
    app.config.from_object(config_cls)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    for problem in config_cls.validate():
        logger.warning(f"Configuration: {problem}")

    if services is None:
        services = build_services(config_cls)
    services.setdefault('config', config_cls)
    app.extensions['digestsync'] = services

    # Enable CORS
    CORS(app)

    # Register blueprints
    app.register_blueprint(feedback_bp, url_prefix='/api/feedback')
    app.register_blueprint(digest_bp, url_prefix='/api/digest')
    app.register_blueprint(clusters_bp, url_prefix='/api/clusters')
    app.register_blueprint(admin_bp, url_prefix='/api')

    @app.route('/')
    def index():
        return {'service': 'DigestSync API', 'endpoints': ENDPOINTS}

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy', 'service': 'DigestSync API'}

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def internal_error(error):
        return {'error': 'Internal server error'}, 500

    return app
