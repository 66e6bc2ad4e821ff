"""
Balloony application entry point.

Wires everything together:
- Session store (Redis or SQL)
- Launch sites and the receiver refresher
- Session policy and processing pipeline
- SondeHub MQTT feed
- Flask status server

Usage:
    python -m balloony

Or with gunicorn (status API only, no feed):
    gunicorn "balloony.app:create_app()"
"""

import logging
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from flask_cors import CORS

from balloony.api import status_bp
from balloony.config import AppConfig, load_config
from balloony.errors import ConfigError
from balloony.geo import Geofence, ProximityIndex, load_launch_sites
from balloony.ingestion import SondeFeed, SondeHubClient, SondePipeline
from balloony.locking import DeviceLock
from balloony.policy import PolicySettings, SessionPolicy
from balloony.reference import ReceiverRefresher, ReferencePointSet
from balloony.services import DiscordNotifier, MapRenderer, RadarClient
from balloony.store import create_session_store

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


@dataclass
class Components:
    """Everything the running service owns."""
    config: AppConfig
    store: object
    pipeline: SondePipeline
    refresher: ReceiverRefresher
    feed: SondeFeed


def build_components(app_config: AppConfig) -> Components:
    """
    Construct all long-lived components from configuration.

    Raises ConfigError for anything that makes startup impossible.
    """
    app_config.validate()

    try:
        launch_sites = load_launch_sites(app_config.alert.launch_sites_file)
    except (OSError, ValueError) as e:
        raise ConfigError(f'Error loading launch sites: {e}') from e

    if app_config.alert.bypass_location_filter:
        logger.warning(
            'Bypass location filter is enabled. All sondes will be processed regardless of location.'
        )
    geofence = Geofence(app_config.alert.bounds, bypass=app_config.alert.bypass_location_filter)

    store = create_session_store(app_config.store, echo=app_config.debug)
    store.ping()

    sondehub = SondeHubClient(base_url=app_config.sondehub.api_url)
    receivers = ReferencePointSet()
    refresher = ReceiverRefresher(
        sondehub,
        receivers,
        interval=app_config.sondehub.receivers_update_interval,
    )

    policy = SessionPolicy(
        store=store,
        notifier=DiscordNotifier(webhook_url=app_config.discord.webhook_url),
        geocoder=RadarClient(api_key=app_config.radar.api_key, base_url=app_config.radar.base_url),
        predictions=sondehub,
        settings=PolicySettings.from_config(app_config),
        launch_sites=ProximityIndex(launch_sites),
        receivers=receivers,
        renderer=MapRenderer(
            width_px=app_config.render.width_px,
            height_px=app_config.render.height_px,
            enabled=app_config.render.enabled,
        ),
    )

    pipeline = SondePipeline(
        policy,
        geofence,
        device_lock=DeviceLock(),
        worker_threads=app_config.pipeline.worker_threads,
    )

    feed = SondeFeed(
        pipeline.handle_batch,
        host=app_config.sondehub.mqtt_host,
        port=app_config.sondehub.mqtt_port,
        topic=app_config.sondehub.mqtt_topic,
        client_id=app_config.sondehub.client_id,
    )

    return Components(
        config=app_config,
        store=store,
        pipeline=pipeline,
        refresher=refresher,
        feed=feed,
    )


def create_app(components: Optional[Components] = None) -> Flask:
    """
    Application factory for the status server.

    Args:
        components: Running components to report on. None gives a bare
                    app (useful for tests and health checks).
    """
    app = Flask(__name__)

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}}, send_wildcard=True)

    app.register_blueprint(status_bp)

    if components is not None:
        app.config['BALLOONY_CONFIG'] = components.config
        app.config['PIPELINE'] = components.pipeline
        app.config['FEED'] = components.feed
        app.config['REFRESHER'] = components.refresher
        app.config['SESSION_STORE'] = components.store

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


def main() -> int:
    """Run the service until SIGINT/SIGTERM."""
    app_config = load_config()
    configure_logging(app_config.debug)

    try:
        components = build_components(app_config)
    except ConfigError as e:
        logger.critical(str(e))
        return 1

    # Populate receivers before telemetry starts arriving
    components.refresher.start_background(refresh_now=True)

    try:
        components.feed.start()
    except OSError as e:
        logger.critical(f'Error connecting to SondeHub: {e}')
        components.refresher.stop()
        return 1

    stop = threading.Event()

    def request_stop(signum, frame):
        logger.info('Exiting...')
        stop.set()

    try:
        if app_config.status_server:
            app = create_app(components)
            logger.info(f'Status server on http://localhost:{app_config.port}/api/status')
            # Flask turns SIGINT into KeyboardInterrupt
            app.run(host='0.0.0.0', port=app_config.port, debug=False, use_reloader=False)
        else:
            signal.signal(signal.SIGINT, request_stop)
            signal.signal(signal.SIGTERM, request_stop)
            stop.wait()
    except KeyboardInterrupt:
        logger.info('Exiting...')
    finally:
        components.feed.stop()
        components.refresher.stop()
        components.pipeline.shutdown(wait=False)

    return 0


if __name__ == '__main__':
    sys.exit(main())
