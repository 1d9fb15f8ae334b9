"""Flask application factory."""
import logging
import os
import traceback

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from salesdesk.database import init_db


def _configure_logging(app):
    """Apply LOG_LEVEL to the app logger and the package loggers."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
    )
    logging.getLogger('salesdesk').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Initialize Redis Cache
    from salesdesk.services.cache_service import init_cache
    init_cache(app)

    # Setup Prometheus metrics instrumentation
    from salesdesk.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Actor context set by the upstream auth layer
    from salesdesk.middleware import load_actor

    @app.before_request
    def before_request_handler():
        load_actor()

    # Error Handlers
    from salesdesk.exceptions import SalesDeskError, CompensationFailedError

    @app.errorhandler(SalesDeskError)
    def handle_salesdesk_error(error):
        """Handle custom application exceptions."""
        if isinstance(error, CompensationFailedError):
            app.logger.critical(f"[INCIDENT] {error.message}")
        elif error.status_code >= 500:
            app.logger.error(f"SalesDeskError [{error.status_code}] {error.kind}: {error.message}")
        else:
            app.logger.warning(f"SalesDeskError [{error.status_code}] {error.kind}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'kind': error.name, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'kind': 'InternalError', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from salesdesk.blueprints.main import main_bp
    from salesdesk.blueprints.catalog import catalog_bp
    from salesdesk.blueprints.sales import sales_bp
    from salesdesk.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from salesdesk.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"SalesDesk started (delete policy: {app.config.get('SALES_DELETE_POLICY')})")

    return app
