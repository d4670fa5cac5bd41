import argparse
import json
import signal
import sys

import psycopg2
from pika.exceptions import AMQPChannelError, AMQPConnectionError, ConnectionClosedByBroker
from pydantic import ValidationError

from .config import Settings
from .errors import BrokerConnectionError
from .logging_config import get_logger, setup_logging
from .messaging import RabbitClient
from .schemas import EmployeeRecord
from .storage import EmployeeStore

logger = get_logger(__name__)

STORED, INVALID, STORE_FAILED = "stored", "invalid", "store_failed"


class Consumer:
    """Drains the employee queue into the store, one unacknowledged message at a time."""

    def __init__(self, settings: Settings, client_factory=RabbitClient.connect, store=None):
        self.s = settings
        self._connect = client_factory
        self.store = store if store is not None else EmployeeStore.from_settings(settings)
        self.mq = None
        self.running = True

    def start(self):
        """Schema first, then broker, queue and prefetch. Raises on any failure."""
        self.store.ensure_schema()
        self.mq = self._connect(self.s.amqp_url, retries=self.s.connect_retries, delay=self.s.retry_delay)
        self.mq.declare(self.s.queue_name)
        self.mq.prefetch(1)
        logger.info("waiting for messages", queue=self.s.queue_name, endpoint=self.mq.endpoint)

    def stop(self, signum=None, frame=None):
        # only flips the flag; the loop finishes the current message first
        if self.running:
            logger.info("shutdown requested", signal=signum)
        self.running = False

    def handle(self, method, properties, body) -> str:
        tag = method.delivery_tag
        try:
            record = EmployeeRecord.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            # JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.error("invalid message, discarding", delivery_tag=tag, body=_preview(body), error=str(e))
            self.mq.ack(tag)
            return INVALID

        try:
            row_id = self.store.insert_employee(record)
        except (psycopg2.Error, ValueError) as e:
            # psycopg2 raises ValueError for values it cannot adapt
            logger.error("store write failed", delivery_tag=tag, name=record.name,
                         error=repr(e), requeue=not self.s.ack_on_store_failure)
            if self.s.ack_on_store_failure:
                self.mq.ack(tag)
            else:
                self.mq.nack(tag, requeue=True)
            return STORE_FAILED

        logger.info("stored employee", delivery_tag=tag, id=row_id, name=record.name)
        self.mq.ack(tag)
        return STORED

    def consume(self):
        for method, properties, body in self.mq.consume(self.s.queue_name, self.s.inactivity_timeout):
            if method is not None:
                self.handle(method, properties, body)
            if not self.running:
                break

    def shutdown(self) -> int:
        """Close channel, connection and store in that order; 0 if all succeed."""
        code = 0
        steps = [("channel", self.mq.close_channel if self.mq else None),
                 ("connection", self.mq.close_connection if self.mq else None),
                 ("store", self.store.close)]
        for name, step in steps:
            if step is None:
                continue
            try:
                step()
                logger.info("closed", resource=name)
            except Exception as e:
                logger.error("error during shutdown", resource=name, error=repr(e))
                code = 1
        if code == 0:
            logger.info("gracefully shut down")
        return code

    def _close_store(self):
        try:
            self.store.close()
        except psycopg2.Error as e:
            logger.error("error closing store", error=repr(e))

    def run(self) -> int:
        try:
            self.start()
        except BrokerConnectionError as e:
            logger.error("giving up on RabbitMQ", endpoint=e.endpoint, error=str(e))
            self._close_store()
            return 1
        except psycopg2.Error as e:
            logger.error("store unavailable at startup", host=self.s.db_host, db=self.s.db_name, error=repr(e))
            self._close_store()
            return 1
        except AMQPChannelError as e:
            logger.error("queue declaration rejected", queue=self.s.queue_name, error=repr(e))
            return self.shutdown() or 1
        except AMQPConnectionError as e:
            logger.error("RabbitMQ connection lost during startup", queue=self.s.queue_name, error=repr(e))
            return self.shutdown() or 1

        try:
            self.consume()
        except ConnectionClosedByBroker as e:
            logger.info("RabbitMQ connection closed by broker", endpoint=self.mq.endpoint,
                        reply_code=e.reply_code, reply_text=e.reply_text)
            self._close_store()
            return 0
        except AMQPConnectionError as e:
            logger.error("RabbitMQ connection error", endpoint=self.mq.endpoint, error=repr(e))
            self._close_store()
            return 1
        except AMQPChannelError as e:
            logger.error("RabbitMQ channel closed", queue=self.s.queue_name, error=repr(e))
            self.shutdown()
            return 1
        return self.shutdown()


def _preview(body, limit: int = 200) -> str:
    text = body.decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else str(body)
    return text if len(text) <= limit else text[:limit] + "..."


def main(argv=None):
    s = Settings()
    ap = argparse.ArgumentParser(description="Store employee messages from RabbitMQ in PostgreSQL")
    ap.add_argument("--amqp", default=s.amqp_url, help="broker URL (default: $RABBITMQ_URL)")
    ap.add_argument("--queue", default=s.queue_name, help="queue name (default: $QUEUE_NAME)")
    args = ap.parse_args(argv)
    s.amqp_url, s.queue_name = args.amqp, args.queue

    setup_logging(s.log_level, s.log_format)
    consumer = Consumer(s)
    signal.signal(signal.SIGINT, consumer.stop)
    signal.signal(signal.SIGTERM, consumer.stop)
    sys.exit(consumer.run())


if __name__ == "__main__":
    main()
