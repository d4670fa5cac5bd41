import time

import pika
from pika.exceptions import AMQPError

from .errors import BrokerConnectionError
from .logging_config import get_logger

logger = get_logger(__name__)

JSON_CONTENT_TYPE = "application/json"


def endpoint_of(params: pika.ConnectionParameters) -> str:
    """host:port/vhost, without credentials, for logs and errors."""
    return f"{params.host}:{params.port}/{params.virtual_host.lstrip('/')}"


class RabbitClient:
    """Owns one blocking connection and the channel opened on it."""

    def __init__(self, conn, ch, endpoint: str):
        self.conn = conn
        self.ch = ch
        self.endpoint = endpoint

    @classmethod
    def connect(cls, url: str, retries: int = 5, delay: float = 5.0,
                confirms: bool = False) -> "RabbitClient":
        params = pika.URLParameters(url)
        params.heartbeat = 30
        params.blocked_connection_timeout = 300
        endpoint = endpoint_of(params)

        last_err = None
        for attempt in range(1, retries + 1):
            conn = None
            try:
                conn = pika.BlockingConnection(params)
                ch = conn.channel()
                if confirms:
                    ch.confirm_delivery()
                logger.info("connected to RabbitMQ", endpoint=endpoint, attempt=attempt)
                return cls(conn, ch, endpoint)
            except (AMQPError, OSError) as e:
                last_err = e
                if conn is not None and conn.is_open:
                    conn.close()
                remaining = retries - attempt
                logger.warning("RabbitMQ connect failed", endpoint=endpoint, attempt=attempt,
                               retries_left=remaining, error=repr(e))
                if remaining:
                    time.sleep(delay)
        raise BrokerConnectionError(endpoint, retries, last_err)

    def declare(self, *queues):
        # idempotent; a conflicting existing declaration raises ChannelClosedByBroker (406)
        for q in queues:
            self.ch.queue_declare(queue=q, durable=True)

    def prefetch(self, count: int):
        self.ch.basic_qos(prefetch_count=count)

    def publish(self, queue: str, body: bytes):
        self.ch.basic_publish(
            exchange="",
            routing_key=queue,
            body=body,
            properties=pika.BasicProperties(
                content_type=JSON_CONTENT_TYPE,
                delivery_mode=pika.DeliveryMode.Persistent,
            ),
        )

    def consume(self, queue: str, inactivity_timeout: float | None = None):
        """Blocking iterator of (method, properties, body); all None on inactivity."""
        return self.ch.consume(queue, auto_ack=False, inactivity_timeout=inactivity_timeout)

    def ack(self, delivery_tag):
        self.ch.basic_ack(delivery_tag=delivery_tag)

    def nack(self, delivery_tag, requeue: bool = True):
        self.ch.basic_nack(delivery_tag=delivery_tag, requeue=requeue)

    def close_channel(self):
        if self.ch.is_open:
            self.ch.close()

    def close_connection(self):
        if self.conn.is_open:
            self.conn.close()

    def close(self):
        try:
            self.close_channel()
        finally:
            self.close_connection()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
