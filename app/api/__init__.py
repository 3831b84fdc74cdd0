from .app import create_app, build_services
from .routes import feedback_bp, digest_bp, clusters_bp, admin_bp

__all__ = ['create_app', 'build_services', 'feedback_bp', 'digest_bp', 'clusters_bp', 'admin_bp']
