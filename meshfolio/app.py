"""
Flask application factory for Meshfolio.

Creates and configures the Flask application with the thumbnail scheduler,
blueprints and error handlers. The app itself never runs jobs; the serving
loop in meshfolio.server advances the scheduler between requests.
"""

import os
import logging
from flask import Flask, jsonify

from meshfolio.config import get_config, Config
from meshfolio.core.storage import LocalStorage
from meshfolio.core.jobs import ThumbnailScheduler


def create_app(config: Config = None, scheduler: ThumbnailScheduler = None) -> Flask:
    """Application factory for creating Flask app."""

    if config is None:
        config = get_config()

    # Initialize directories
    config.init_dirs()

    app = Flask(__name__)
    app.config.from_object(config)

    # Configure logging
    configure_logging(app, config)

    if scheduler is None:
        scheduler = ThumbnailScheduler(LocalStorage(config.STORAGE_ROOT), config)
    app.extensions['meshfolio.scheduler'] = scheduler

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring."""
        return jsonify({
            'status': 'healthy',
            'version': config.APP_VERSION,
            'busy': scheduler.busy,
            'queued': len(scheduler.queue)
        })

    app.logger.info(f"Meshfolio initialized (env: {os.environ.get('MESHFOLIO_ENV', 'development')})")

    return app


def configure_logging(app: Flask, config: Config):
    """Configure application logging."""
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if not config.TESTING:
        handlers.append(logging.FileHandler(config.LOG_DIR / 'meshfolio.log'))

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=config.LOG_FORMAT,
        handlers=handlers
    )

    # Set Flask logger level
    app.logger.setLevel(log_level)

    # Reduce noise from werkzeug in production
    if not config.DEBUG:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)


def register_blueprints(app: Flask):
    """Register all API blueprints."""
    from meshfolio.api.thumbnails import thumbnails_bp

    app.register_blueprint(thumbnails_bp, url_prefix='/api')


def register_error_handlers(app: Flask):
    """Register error handlers."""

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found', 'message': str(error)}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal error: {error}")
        return jsonify({'error': 'Internal server error'}), 500
