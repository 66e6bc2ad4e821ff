"""
SondeHub MQTT feed.

SondeHub publishes every uploaded packet over MQTT-over-websockets; the
'batch' topic delivers JSON arrays of packets. Delivery is at-least-once
and the same sonde is usually heard by several stations, which is why
every payload goes through the batch normalizer.
"""

import logging
from typing import Callable, Optional, Union

import paho.mqtt.client as mqtt

from balloony.config import config

logger = logging.getLogger(__name__)

PayloadHandler = Callable[[Union[bytes, str]], object]


class SondeFeed:
    """Subscribes to the SondeHub feed and hands each payload to a handler."""

    def __init__(
        self,
        handler: PayloadHandler,
        host: str = 'ws-reader.v2.sondehub.org',
        port: int = 443,
        topic: str = 'batch',
        client_id: Optional[str] = 'balloonyv2',
    ):
        self.handler = handler
        self.host = host
        self.port = port
        self.topic = topic

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id or '',
            transport='websockets',
        )
        self.client.tls_set()
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)

        self._messages = 0
        self._connected = False

    @classmethod
    def from_config(cls, handler: PayloadHandler) -> 'SondeFeed':
        return cls(
            handler,
            host=config.sondehub.mqtt_host,
            port=config.sondehub.mqtt_port,
            topic=config.sondehub.mqtt_topic,
            client_id=config.sondehub.client_id,
        )

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(f'MQTT connect failed: {reason_code}')
            return
        self._connected = True
        logger.info(f'Connected to SondeHub MQTT at {self.host}:{self.port}')
        # Resubscribe on every (re)connect
        client.subscribe(self.topic, qos=1)
        logger.info(f'Subscribed to topic: {self.topic}')

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        logger.warning(f'MQTT connection lost: {reason_code}')

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage):
        self._messages += 1
        self.handler(msg.payload)

    def start(self) -> None:
        """
        Connect and start the network loop in a background thread.

        Raises OSError if the broker cannot be reached on the first attempt.
        """
        self.client.connect(self.host, self.port, keepalive=30)
        self.client.loop_start()

    def stop(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        logger.info('Disconnected from SondeHub MQTT')

    @property
    def stats(self) -> dict:
        return {
            'connected': self._connected,
            'messages': self._messages,
            'topic': self.topic,
        }
