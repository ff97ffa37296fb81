"""
Watermark Store

Persists the last successfully processed timestamp per source in a state
table with one row per source name:

    (source_name VARCHAR PRIMARY KEY, last_run_timestamp_utc TIMESTAMP NULL)

Timestamps are stored as naive UTC values.
"""

import logging
from datetime import datetime

import psycopg2
from psycopg2 import sql

from table_monitor.errors import SourceUnavailable, WatermarkCommitFailed
from table_monitor.utils.timestamps import EPOCH_FLOOR, to_utc, to_naive_utc

logger = logging.getLogger(__name__)

SOURCE_NAME_COLUMN = 'source_name'
TIMESTAMP_COLUMN = 'last_run_timestamp_utc'


class WatermarkStore:
    """
    Reads and upserts the watermark for a source on a caller-owned
    connection. One writer per source is assumed; see try_lock().
    """

    def __init__(self, connection, schema: str = 'public', table: str = 'monitor_state'):
        self.connection = connection
        self.table = sql.Identifier(schema, table)

    def get(self, source_name: str) -> datetime:
        """
        Get the watermark for a source.

        Args:
            source_name: Monitored source identifier

        Returns:
            Stored watermark as an aware UTC datetime, or EPOCH_FLOOR when
            the source has no record or a NULL timestamp

        Raises:
            SourceUnavailable: If the state table cannot be read
        """
        query = sql.SQL("SELECT {ts} FROM {table} WHERE {key} = %s").format(
            ts=sql.Identifier(TIMESTAMP_COLUMN),
            table=self.table,
            key=sql.Identifier(SOURCE_NAME_COLUMN),
        )
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, (source_name,))
                row = cursor.fetchone()
            self.connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise SourceUnavailable(
                f"Failed to read watermark: {e}",
                {"source": source_name}
            ) from e

        if row is None or row[0] is None:
            logger.info(f"No watermark recorded for {source_name}, using {EPOCH_FLOOR.isoformat()}")
            return EPOCH_FLOOR

        return to_utc(row[0])

    def set(self, source_name: str, timestamp: datetime) -> None:
        """
        Upsert the watermark for a source in a single transaction.

        Raises:
            WatermarkCommitFailed: If the write does not commit; the
                previous value is left in place
        """
        query = sql.SQL("""
            INSERT INTO {table} ({key}, {ts})
            VALUES (%s, %s)
            ON CONFLICT ({key}) DO UPDATE SET {ts} = EXCLUDED.{ts}
        """).format(
            table=self.table,
            key=sql.Identifier(SOURCE_NAME_COLUMN),
            ts=sql.Identifier(TIMESTAMP_COLUMN),
        )
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, (source_name, to_naive_utc(timestamp)))
            self.connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise WatermarkCommitFailed(
                f"Failed to save watermark: {e}",
                {"source": source_name}
            ) from e

        logger.debug(f"Saved watermark for {source_name}: {timestamp.isoformat()}")

    def try_lock(self, source_name: str) -> bool:
        """
        Take the session-level advisory lock for a source without waiting.

        The lock is released by unlock() or when the connection closes.

        Returns:
            True if this session now holds the lock
        """
        try:
            with self.connection.cursor() as cursor:
                cursor.execute("SELECT pg_try_advisory_lock(hashtext(%s))", (source_name,))
                acquired = cursor.fetchone()[0]
            self.connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise SourceUnavailable(
                f"Failed to acquire run lock: {e}",
                {"source": source_name}
            ) from e
        return bool(acquired)

    def unlock(self, source_name: str) -> None:
        try:
            with self.connection.cursor() as cursor:
                cursor.execute("SELECT pg_advisory_unlock(hashtext(%s))", (source_name,))
            self.connection.commit()
        except psycopg2.Error as e:
            # Closing the connection releases the lock as well.
            self._rollback()
            logger.warning(f"Failed to release run lock for {source_name}: {e}")

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except psycopg2.Error as e:
            logger.debug(f"Rollback failed: {e}")
