"""
Configuration settings for DigestSync
"""

import os
from typing import Optional


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


DEFAULT_P0_KEYWORDS = [
    'crash', "won't open", 'stuck on launch', 'app broken', 'not working', 'completely broken',
    "can't login", 'locked out', 'otp not working', 'account locked', 'cannot access', 'login failed',
    'payment failed', 'charged twice', 'refund', 'subscription broken', 'billing error', 'payment error',
    "can't pay", 'payment not working', 'transaction failed',
    'data loss', 'deleted', 'missing data', 'security breach', 'hacked', 'pii leak', 'data breach',
    'privacy issue', 'unauthorized access',
    'production down', 'all users affected', 'complete outage', 'service down', 'system down',
]


class Config:
    """Base configuration class."""

    # Flask settings
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    FLASK_HOST = os.getenv('FLASK_HOST', '0.0.0.0')
    FLASK_PORT = int(os.getenv('FLASK_PORT', 5000))
    FLASK_DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    TESTING = False

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///digestsync.db')

    # Telegram settings
    TELEGRAM_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
    TELEGRAM_CHAT_ID = os.getenv('TELEGRAM_CHAT_ID')
    TELEGRAM_TIMEOUT = float(os.getenv('TELEGRAM_TIMEOUT', '10'))

    # Intelligence settings
    EMBEDDING_MODEL = os.getenv('EMBEDDING_MODEL', 'BAAI/bge-m3')
    CLASSIFIER_MODEL = os.getenv('CLASSIFIER_MODEL', 'facebook/bart-large-mnli')
    USE_ZERO_SHOT = os.getenv('USE_ZERO_SHOT', 'False').lower() == 'true'
    INTELLIGENCE_TIMEOUT = float(os.getenv('INTELLIGENCE_TIMEOUT', '10'))
    INTELLIGENCE_WORKERS = int(os.getenv('INTELLIGENCE_WORKERS', '4'))

    # Clustering settings
    SIMILARITY_THRESHOLD = float(os.getenv('SIMILARITY_THRESHOLD', '0.86'))
    EMBEDDING_DIMENSION = int(os.getenv('EMBEDDING_DIMENSION', '1024'))
    CLUSTER_LOOKBACK_DAYS = int(os.getenv('CLUSTER_LOOKBACK_DAYS', '7'))

    # Priority scoring weights
    PRIORITY_WEIGHTS = {
        'severity': float(os.getenv('PRIORITY_SEVERITY_WEIGHT', '0.55')),
        'frequency': float(os.getenv('PRIORITY_FREQUENCY_WEIGHT', '0.25')),
        'recency': float(os.getenv('PRIORITY_RECENCY_WEIGHT', '0.10')),
        'sentiment': float(os.getenv('PRIORITY_SENTIMENT_WEIGHT', '0.10')),
    }

    # Score thresholds for priority levels
    PRIORITY_THRESHOLDS = {
        'P0': float(os.getenv('PRIORITY_P0_THRESHOLD', '70')),
        'P1': float(os.getenv('PRIORITY_P1_THRESHOLD', '50')),
        'P2': float(os.getenv('PRIORITY_P2_THRESHOLD', '30')),
    }

    # Fix lifecycle
    DEFAULT_ROLLOUT_DAYS = int(os.getenv('DEFAULT_ROLLOUT_DAYS', '7'))
    FIX_SUCCESS_RATIO = float(os.getenv('FIX_SUCCESS_RATIO', '0.2'))

    # Digest settings
    DIGEST_MAX_ISSUES = int(os.getenv('DIGEST_MAX_ISSUES', '15'))
    INDIVIDUAL_SUPPORT_LIMIT = int(os.getenv('INDIVIDUAL_SUPPORT_LIMIT', '10'))
    DIGEST_TIMEZONE = os.getenv('DIGEST_TIMEZONE', 'America/Los_Angeles')
    DIGEST_HOUR_UTC = int(os.getenv('DIGEST_HOUR_UTC', '17'))

    # Instant alert keywords
    P0_KEYWORDS = _env_list('P0_KEYWORDS', DEFAULT_P0_KEYWORDS)

    @classmethod
    def validate(cls) -> list[str]:
        """Validate required configuration."""
        errors = []

        if not cls.DATABASE_URL:
            errors.append("DATABASE_URL is required")

        if not cls.TELEGRAM_BOT_TOKEN or not cls.TELEGRAM_CHAT_ID:
            errors.append("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are required for delivery")

        if not 0.0 <= cls.SIMILARITY_THRESHOLD <= 1.0:
            errors.append("SIMILARITY_THRESHOLD must be between 0 and 1")

        weight_total = sum(cls.PRIORITY_WEIGHTS.values())
        if abs(weight_total - 1.0) > 0.01:
            errors.append(f"PRIORITY_WEIGHTS sum to {weight_total:.2f}, scores will not land in [0, 100]")

        thresholds = cls.PRIORITY_THRESHOLDS
        if not thresholds['P0'] >= thresholds['P1'] >= thresholds['P2']:
            errors.append("PRIORITY_THRESHOLDS must be ordered P0 >= P1 >= P2")

        return errors


class DevelopmentConfig(Config):
    """Development configuration."""
    FLASK_DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    FLASK_DEBUG = False
    USE_ZERO_SHOT = os.getenv('USE_ZERO_SHOT', 'True').lower() == 'true'


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    TELEGRAM_BOT_TOKEN = None
    TELEGRAM_CHAT_ID = None
    USE_ZERO_SHOT = False
    DIGEST_TIMEZONE = 'UTC'


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Get configuration class."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    return config.get(config_name, config['default'])
