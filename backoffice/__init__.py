"""Flask application factory."""
import logging
import os
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from backoffice.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Service modules log through module loggers under the `backoffice` namespace
    logging.getLogger('backoffice').setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (inventory read caches + alert channel)
    from backoffice.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from backoffice.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix behind the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load the acting user (bearer JWT) before each request
    from backoffice.middleware import load_actor

    @app.before_request
    def before_request_handler():
        load_actor()

    # Error Handlers
    from backoffice.exceptions import BackofficeError

    @app.errorhandler(BackofficeError)
    def handle_backoffice_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"BackofficeError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"BackofficeError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from backoffice.blueprints.main import main_bp
    from backoffice.blueprints.inventory import inventory_bp
    from backoffice.blueprints.mcg import mcg_bp
    from backoffice.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(mcg_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from backoffice.cli_commands import init_cli_commands
    init_cli_commands(app)

    # Background MCG pull; the thread is started by wsgi.py
    from backoffice.services.mcg_sync_service import init_mcg_scheduler
    init_mcg_scheduler(app)

    return app
