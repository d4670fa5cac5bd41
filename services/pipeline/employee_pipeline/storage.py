"""PostgreSQL storage for consumed employee records."""
from contextlib import contextmanager

import psycopg2
from psycopg2 import sql

from .logging_config import get_logger
from .schemas import EmployeeRecord

logger = get_logger(__name__)


class EmployeeStore:
    """Single-connection store; reconnects lazily if the connection was lost."""

    def __init__(self, host: str, port: int, user: str, password: str, dbname: str,
                 table: str = "employee", connect=psycopg2.connect):
        self._params = dict(host=host, port=port, user=user, password=password, dbname=dbname)
        self.table = table
        self._connect = connect
        self._conn = None

    @classmethod
    def from_settings(cls, settings) -> "EmployeeStore":
        return cls(settings.db_host, settings.db_port, settings.db_user,
                   settings.db_password, settings.db_name, table=settings.table_name)

    @property
    def conn(self):
        if self._conn is None or self._conn.closed:
            if self._conn is not None:
                logger.warning("store connection lost, reconnecting", host=self._params["host"])
            self._conn = self._connect(**self._params)
        return self._conn

    @contextmanager
    def cursor(self):
        """Cursor with commit on success and rollback on error."""
        conn = self.conn
        cur = conn.cursor()
        try:
            yield cur
            conn.commit()
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            cur.close()

    def ensure_schema(self):
        with self.cursor() as cur:
            cur.execute(sql.SQL("""
                CREATE TABLE IF NOT EXISTS {} (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    age INTEGER,
                    location VARCHAR(255),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """).format(sql.Identifier(self.table)))
        logger.info("schema ready", table=self.table)

    def insert_employee(self, record: EmployeeRecord) -> int:
        with self.cursor() as cur:
            cur.execute(
                sql.SQL("INSERT INTO {} (name, age, location) VALUES (%s, %s, %s) RETURNING id")
                .format(sql.Identifier(self.table)),
                (record.name, record.age, record.location),
            )
            return cur.fetchone()[0]

    def close(self):
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
        self._conn = None
