"""
Source Table Reader

Runs the bounded range query that finds rows inserted after the cutoff.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from table_monitor.errors import SourceUnavailable
from table_monitor.utils.timestamps import to_utc, to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataRow:
    """One row of the monitored table."""

    id: Any
    timestamp_utc: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


class SourceTableReader:
    """
    Reads the monitored table on a caller-owned connection.
    """

    def __init__(
        self,
        connection,
        schema: str,
        table: str,
        id_column: str = 'id',
        timestamp_column: str = 'timestamp_utc'
    ):
        self.connection = connection
        self.schema = schema
        self.table = table
        self.id_column = id_column
        self.timestamp_column = timestamp_column

    def query_newer_than(self, cutoff: datetime) -> List[DataRow]:
        """
        Fetch every row whose timestamp is strictly greater than the cutoff.

        The comparison is strict so a row stamped exactly at the previous
        watermark is not emitted twice. Row order is unspecified.

        Args:
            cutoff: Lower bound, exclusive

        Returns:
            All matching rows from a single read

        Raises:
            SourceUnavailable: On any connectivity or query error
        """
        query = sql.SQL("SELECT * FROM {table} WHERE {ts} > %s").format(
            table=sql.Identifier(self.schema, self.table),
            ts=sql.Identifier(self.timestamp_column),
        )

        try:
            with self.connection.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, (to_naive_utc(cutoff),))
                records = cursor.fetchall()
            self.connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise SourceUnavailable(
                f"Failed to query {self.schema}.{self.table}: {e}",
                {"cutoff": cutoff.isoformat()}
            ) from e

        rows = [self._to_row(dict(record)) for record in records]
        logger.info(f"Detected {len(rows)} new rows in {self.schema}.{self.table} since {cutoff.isoformat()}")
        return rows

    def server_now(self) -> datetime:
        """Current time according to the database server, in UTC."""
        try:
            with self.connection.cursor() as cursor:
                cursor.execute("SELECT clock_timestamp() AT TIME ZONE 'UTC'")
                now = cursor.fetchone()[0]
            self.connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise SourceUnavailable(f"Failed to read server clock: {e}") from e
        return to_utc(now)

    def _to_row(self, record: Dict[str, Any]) -> DataRow:
        row_id = record.pop(self.id_column, None)
        timestamp = record.pop(self.timestamp_column)
        return DataRow(id=row_id, timestamp_utc=to_utc(timestamp), payload=record)

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except psycopg2.Error as e:
            logger.debug(f"Rollback failed: {e}")
