import argparse
import sys
import time

from pika.exceptions import AMQPError

from .config import Settings
from .errors import BrokerConnectionError, RecordValidationError, SourceFileError
from .ingest import check_source, clean_row, read_rows
from .logging_config import get_logger, setup_logging
from .messaging import RabbitClient

logger = get_logger(__name__)


class Producer:
    """Reads the source file and publishes one persistent message per valid row."""

    def __init__(self, settings: Settings, client_factory=RabbitClient.connect):
        self.s = settings
        self._connect = client_factory
        self.published = 0
        self.skipped = 0

    def run(self) -> int:
        try:
            check_source(self.s.csv_path)
        except SourceFileError as e:
            logger.error("cannot read source", path=self.s.csv_path, error=str(e))
            return 1

        try:
            mq = self._connect(self.s.amqp_url, retries=self.s.connect_retries,
                               delay=self.s.retry_delay, confirms=self.s.publisher_confirms)
        except BrokerConnectionError as e:
            logger.error("giving up on RabbitMQ", endpoint=e.endpoint, error=str(e))
            return 1

        with mq:
            try:
                mq.declare(self.s.queue_name)
                self.publish_all(mq)
            except SourceFileError as e:
                logger.error("source file failed mid-read", path=e.path, error=str(e),
                             published=self.published)
                return 1
            except AMQPError as e:
                logger.error("broker error while publishing", endpoint=mq.endpoint,
                             queue=self.s.queue_name, error=repr(e), published=self.published)
                return 1

            logger.info("all messages sent", queue=self.s.queue_name,
                        published=self.published, skipped=self.skipped)
            # let the broker flush before the connection goes away
            time.sleep(self.s.drain_seconds)
        return 0

    def publish_all(self, mq: RabbitClient):
        for line_no, row in read_rows(self.s.csv_path):
            try:
                record = clean_row(row)
            except RecordValidationError as e:
                self.skipped += 1
                logger.warning("skipping row", path=self.s.csv_path, line=line_no, reason=str(e), row=row)
                continue
            mq.publish(self.s.queue_name, record.to_message())
            self.published += 1
            logger.debug("sent", line=line_no, name=record.name)


def main(argv=None):
    s = Settings()
    ap = argparse.ArgumentParser(description="Publish employee rows from a CSV file to RabbitMQ")
    ap.add_argument("--file", default=s.csv_path, help="source CSV (default: $CSV_PATH)")
    ap.add_argument("--amqp", default=s.amqp_url, help="broker URL (default: $RABBITMQ_URL)")
    ap.add_argument("--queue", default=s.queue_name, help="queue name (default: $QUEUE_NAME)")
    args = ap.parse_args(argv)
    s.csv_path, s.amqp_url, s.queue_name = args.file, args.amqp, args.queue

    setup_logging(s.log_level, s.log_format)
    sys.exit(Producer(s).run())


if __name__ == "__main__":
    main()
