"""wp-cron run trigger and queue drain routes."""
from flask import Blueprint, request
import functools
import logging
import time

from all_sites_cron.coordination.errors import (
    LockedError,
    NotMultisiteError,
    QueueUnavailableError,
    RateLimitedError,
    StateStoreError,
)
from all_sites_cron.models.dtos import DispatchResult, QueueJob
from all_sites_cron.routes.output import (
    ERROR,
    NOTICE,
    WARNING,
    json_response,
    respond,
    text_response,
    utc_timestamp,
)
from all_sites_cron.services.runtime import (
    get_orchestrator,
    get_queue_adapter,
    get_site_lister,
    queue_enabled,
)

logger = logging.getLogger(__name__)

cron_bp = Blueprint('all_sites_cron', __name__, url_prefix='/api')

TRUTHY = {'1', 'true', 'yes', 'on'}


def _flag(name):
    """Read a boolean flag from the query string or a JSON body."""
    value = request.args.get(name)
    if value is None and request.is_json:
        value = (request.get_json(silent=True) or {}).get(name)
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY


def continue_after_response(response, work):
    """Run `work` once the response has been sent and the connection closed."""
    def _run():
        try:
            work()
        except Exception as e:
            logger.error(f"❌ Deferred wp-cron run failed: {e}", exc_info=True)

    response.call_on_close(_run)
    return response


def _result_response(result: DispatchResult, ga_mode: bool):
    if ga_mode:
        if result.success:
            return text_response(NOTICE, f"Running wp-cron on {result.count} sites", 200)
        return text_response(ERROR, result.message, 200)

    payload = {
        'success': result.success,
        'count': result.count,
        'message': result.message,
        'timestamp': utc_timestamp(),
        'endpoint': 'rest',
    }
    if result.errors:
        payload['errors'] = len(result.errors)
    return json_response(payload, 200)


def _start_deferred_run(orchestrator, now, ga_mode):
    orchestrator.admit(now)

    try:
        if queue_enabled():
            if get_queue_adapter().enqueue(QueueJob(enqueued_at=now)):
                orchestrator.acknowledge(now)
                return respond(ga_mode, NOTICE, 'wp-cron run queued', 202, {'status': 'queued'})
            logger.warning("⚠️ Work queue unavailable, running after the response instead")

        response = respond(ga_mode, NOTICE, 'wp-cron run deferred to background', 202, {'status': 'deferred'})
        return continue_after_response(response, functools.partial(orchestrator.complete, now))
    except Exception:
        orchestrator.abort()
        raise


@cron_bp.route('/all-sites-cron/v1/run', methods=['GET', 'POST'])
@cron_bp.route('/dss-cron/v1/run', methods=['GET', 'POST'])
def run_cron():
    """Trigger wp-cron on every public site of the network."""
    ga_mode = _flag('ga')
    defer = _flag('defer')

    try:
        if not get_site_lister().is_multisite():
            raise NotMultisiteError()

        orchestrator = get_orchestrator()
        now = int(time.time())

        if defer:
            return _start_deferred_run(orchestrator, now, ga_mode)

        return _result_response(orchestrator.execute(now), ga_mode)

    except NotMultisiteError as e:
        return respond(ga_mode, ERROR, str(e), 400, {'error': 'not_multisite'})

    except LockedError as e:
        return respond(ga_mode, WARNING, str(e), 409, {
            'success': False,
            'error': 'locked',
            'locked_since': utc_timestamp(e.acquired_at),
        })

    except RateLimitedError as e:
        return respond(ga_mode, ERROR, str(e), 429, {
            'error': 'rate_limited',
            'retry_after': e.retry_after,
            'cooldown': e.cooldown,
            'last_run_gmt': e.last_run,
        }, headers={'Retry-After': str(e.retry_after)})

    except StateStoreError as e:
        logger.error(f"State store unavailable for wp-cron run: {e}")
        return respond(ga_mode, ERROR, 'State store unavailable', 503, {'error': 'state_store_unavailable'})

    except Exception as e:
        logger.error(f"Error running wp-cron on all sites: {e}", exc_info=True)
        return respond(ga_mode, ERROR, str(e), 500, {'error': 'internal_error'})


@cron_bp.route('/all-sites-cron/v1/queue/drain', methods=['POST'])
def drain_queue():
    """Process at most one queued wp-cron run."""
    try:
        result = get_queue_adapter().drain()
    except QueueUnavailableError as e:
        logger.error(f"Work queue unavailable: {e}")
        return json_response({
            'success': False,
            'error': 'queue_unavailable',
            'message': 'Queue backend unavailable',
            'timestamp': utc_timestamp(),
        }, 503)
    except Exception as e:
        logger.error(f"Error draining wp-cron queue: {e}", exc_info=True)
        return json_response({
            'success': False,
            'error': 'internal_error',
            'message': str(e),
            'timestamp': utc_timestamp(),
        }, 500)

    payload = {
        'success': result.success,
        'count': result.count,
        'message': result.message,
        'timestamp': utc_timestamp(),
    }
    return json_response(payload, 200 if result.success else 500)
