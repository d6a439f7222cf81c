"""Flask application exposing the All Sites Cron endpoints."""

from flask import Flask
import logging

from config.settings import settings
from all_sites_cron.routes.cron import cron_bp
from all_sites_cron.routes.health import health_bp
from all_sites_cron.services.lifecycle import migrate_legacy_keys
from all_sites_cron.services.runtime import get_state_store

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(run_migrations: bool = True) -> Flask:
    """Create the Flask app and register blueprints.

    Args:
        run_migrations: Run the one-time legacy key cleanup on startup
    """
    app = Flask(__name__)
    app.register_blueprint(cron_bp)
    app.register_blueprint(health_bp)

    if run_migrations:
        try:
            migrate_legacy_keys(get_state_store())
        except Exception as e:
            # Retried on the next startup
            logger.warning(f"⚠️ Legacy key migration skipped: {e}")

    logger.info("✅ All Sites Cron endpoints registered")
    return app


app = create_app()
