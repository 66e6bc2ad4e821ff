"""
Status API endpoints.

Provides endpoints for:
- GET /api/status - Pipeline, feed, receiver and store status
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__, url_prefix='/api')


@status_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Pipeline counters (batches, records, outcomes, skips)
    - Feed connection state
    - Receiver refresher state
    - Session store backend
    """
    start_time = time.perf_counter()

    pipeline = current_app.config.get('PIPELINE')
    feed = current_app.config.get('FEED')
    refresher = current_app.config.get('REFRESHER')
    store = current_app.config.get('SESSION_STORE')
    app_config = current_app.config.get('BALLOONY_CONFIG')

    pipeline_stats = pipeline.stats if pipeline else {}
    feed_stats = feed.stats if feed else {'connected': False}
    receiver_stats = refresher.stats if refresher else {'receivers': 0}

    healthy = bool(pipeline) and feed_stats.get('connected', False)

    body = {
        'status': 'healthy' if healthy else 'degraded',
        'pipeline': pipeline_stats,
        'feed': feed_stats,
        'receivers': receiver_stats,
        'store': {
            'backend': getattr(store, 'backend', None),
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }

    if app_config is not None:
        body['config'] = {
            'update_interval': app_config.alert.update_interval,
            'timezone': app_config.alert.timezone,
            'bypass_location_filter': app_config.alert.bypass_location_filter,
            'render_maps': app_config.render.enabled,
            'worker_threads': app_config.pipeline.worker_threads,
        }

    body['query_time_ms'] = round((time.perf_counter() - start_time) * 1000, 2)
    return jsonify(body)
