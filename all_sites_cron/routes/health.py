"""Health check and diagnostic endpoints."""

from flask import Blueprint, jsonify
from datetime import datetime
import logging

from all_sites_cron.coordination.errors import QueueUnavailableError
from all_sites_cron.services.runtime import (
    get_queue_adapter,
    get_queue_store,
    get_state_store,
    queue_enabled,
)

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/api')


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness probe."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now().isoformat()
    }), 200


@health_bp.route('/health/state-store', methods=['GET'])
def state_store_health_check():
    """Reachability of the shared state store and, when enabled, the work queue."""
    try:
        diagnostics = {
            'state_store': 'healthy' if get_state_store().ping() else 'unhealthy',
            'queue_enabled': queue_enabled(),
        }

        if queue_enabled():
            queue_ok = get_queue_store().ping()
            diagnostics['queue'] = 'healthy' if queue_ok else 'unhealthy'
            if queue_ok:
                try:
                    diagnostics['queue_depth'] = get_queue_adapter().pending()
                except QueueUnavailableError as e:
                    diagnostics['queue'] = 'unhealthy'
                    diagnostics['queue_error'] = str(e)

        healthy = diagnostics['state_store'] == 'healthy' and diagnostics.get('queue', 'healthy') == 'healthy'
        status_code = 200 if healthy else 503

        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'timestamp': datetime.now().isoformat(),
            'checks': diagnostics
        }), status_code

    except Exception as e:
        logger.error(f"State store health check failed: {e}", exc_info=True)
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.now().isoformat()
        }), 503
