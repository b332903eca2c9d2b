"""
Flask Application Factory - Zone Aggregates API

Wiring:
- Config (python-dotenv backed) or an injected config object
- CORS for /api/*
- Request ID + error envelope middleware
- SQLAlchemy + SQL store adapters, unless a service is injected (tests)
"""

import logging
import os

from flask import Flask
from flask_cors import CORS

from zonestats.config import Config, normalize_database_url
from zonestats.models.database import db
from zonestats.routes.zone_aggregates import SERVICE_EXTENSION_KEY
from zonestats.utils.logging import configure_logging

logger = logging.getLogger('zone_aggregates.app')


def create_app(config_object=None, service=None):
    """
    Build the Flask app.

    Args:
        config_object: Config class/object (defaults to Config)
        service: pre-built ZoneAggregatesService; skips database wiring
    """
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    configure_logging(app.config.get('ZONE_AGGREGATES_LOG_LEVEL', 'INFO'))

    CORS(app,
         resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', '*')}},
         methods=["GET", "POST", "OPTIONS"],
         allow_headers=["Content-Type", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False)

    from zonestats.api.middleware import setup_error_handlers, setup_request_id_middleware
    setup_request_id_middleware(app)
    setup_error_handlers(app)

    if service is None:
        service = _init_database_service(app)
    app.extensions[SERVICE_EXTENSION_KEY] = service

    from zonestats.routes import zone_aggregates_bp
    app.register_blueprint(zone_aggregates_bp, url_prefix='/api')

    logger.info(f"Zone aggregates API ready ({len(service.registry)} aggregates registered)")
    return app


def _init_database_service(app):
    """Validate the database URL, bind SQLAlchemy and build the SQL-backed service."""
    from zonestats.services.zone_aggregates import build_zone_aggregates_service

    if not app.config.get('TESTING'):
        app.config['SQLALCHEMY_DATABASE_URI'] = normalize_database_url(
            app.config.get('SQLALCHEMY_DATABASE_URI')
        )

    db.init_app(app)

    with app.app_context():
        # Import models before create_all so their tables are registered
        from zonestats.models import zone_aggregates  # noqa: F401

        env = (os.environ.get("ENV") or os.environ.get("FLASK_ENV") or os.environ.get("APP_ENV") or "").lower()
        is_prod = env in {"prod", "production"}
        if app.config.get("TESTING") or not is_prod:
            db.create_all()
            logger.info("Database initialized")
        else:
            logger.info("Database ready (schema creation disabled in production)")

    return build_zone_aggregates_service(
        db.session,
        default_geo_level=app.config.get('ZONE_AGGREGATES_DEFAULT_GEO_LEVEL'),
    )


def run_app():
    """Local development server."""
    app = create_app()
    app.run(debug=app.config.get('DEBUG', False), host="0.0.0.0", port=int(os.getenv('PORT', 5000)))


if __name__ == "__main__":
    run_app()
