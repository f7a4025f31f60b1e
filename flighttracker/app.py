"""
FlightTracker Flask Application.

Main entry point for the web process. Initializes:
- Database schema
- Ingestion pipeline and its background scheduler
- Debug API routes

Usage:
    python -m flighttracker.app

Or with gunicorn (single worker, the scheduler lives in-process):
    gunicorn -w 1 'flighttracker.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS
from sqlalchemy.orm import sessionmaker

from flighttracker.config import config
from flighttracker.models import init_db
from flighttracker.api import debug_bp
from flighttracker.ingestion import IngestionPipeline, IngestionScheduler

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[int] = None) -> None:
    """Configure root logging once for an entry point."""
    logging.basicConfig(
        level=level if level is not None else (logging.DEBUG if config.debug else logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def create_app(
    start_ingestion: bool = True,
    session_factory: Optional[sessionmaker] = None,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_ingestion: Whether to start the background ingestion scheduler.
                        Set to False for testing.
        session_factory: Session factory to use instead of the configured
                        database (tests pass an in-memory one).

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key
    app.config['SESSION_FACTORY'] = session_factory
    app.config['INGESTION_PIPELINE'] = None
    app.config['INGESTION_SCHEDULER'] = None

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # Initialize database
    logger.info('Initializing database...')
    init_db(session_factory.kw['bind'] if session_factory else None)

    # Register API blueprints
    app.register_blueprint(debug_bp)

    if start_ingestion and config.opensky.is_authenticated:
        pipeline = IngestionPipeline.from_config(session_factory=session_factory)
        scheduler = IngestionScheduler(pipeline, interval_seconds=config.ingestion.interval_seconds)
        scheduler.start_background()

        app.config['INGESTION_PIPELINE'] = pipeline
        app.config['INGESTION_SCHEDULER'] = scheduler

        logger.info(
            f'Ingestion started. Interval={config.ingestion.interval_seconds}s, '
            f'SessionGapSeconds={config.ingestion.session_gap_seconds}'
        )
    elif start_ingestion:
        logger.warning('No OpenSky credentials configured. Set OPENSKY_CLIENT_ID and OPENSKY_CLIENT_SECRET in .env')

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    configure_logging()
    app = create_app()

    # Get port from environment or default
    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting FlightTracker on http://localhost:{port}')
    logger.info(f'Ingestion debug: http://localhost:{port}/api/debug/ingestion')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate scheduler threads
    )


if __name__ == '__main__':
    run_development_server()
