#!/usr/bin/env python3
"""
Test Row Inserter

Inserts sample rows into the monitored table so a poll cycle has something
to detect. Uses a writer account; the monitoring account only has read
access to the data table.
"""

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from typing import Callable, List, Optional

import psycopg2
from psycopg2 import sql
from faker import Faker
from dotenv import load_dotenv, find_dotenv

from table_monitor.utils.logging_config import setup_logging
from table_monitor.utils.timestamps import utc_now, to_naive_utc

logger = logging.getLogger(__name__)


class RowInserter:
    """
    Inserts rows with a current UTC timestamp and a generated text value.
    """

    def __init__(
        self,
        connection,
        schema: str = 'public',
        table: str = 'monitored_data',
        timestamp_column: str = 'timestamp_utc',
        value_column: str = 'data_value',
        id_column: str = 'id',
        faker: Optional[Faker] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.connection = connection
        self.faker = faker or Faker()
        self.clock = clock
        self.insert_query = sql.SQL("INSERT INTO {table} ({ts}, {value}) VALUES (%s, %s) RETURNING {id}").format(
            table=sql.Identifier(schema, table),
            ts=sql.Identifier(timestamp_column),
            value=sql.Identifier(value_column),
            id=sql.Identifier(id_column),
        )

    def insert_row(self, value: Optional[str] = None) -> Optional[int]:
        """
        Insert one row.

        Returns:
            The new row id, or None if the insert failed
        """
        timestamp = self.clock()
        value = value or f"Test data inserted at {timestamp.isoformat()}: {self.faker.sentence()}"

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(self.insert_query, (to_naive_utc(timestamp), value))
                row_id = cursor.fetchone()[0]
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            logger.error(f"Failed to insert test row: {e}")
            return None

        logger.info(f"Inserted test row {row_id} at {timestamp.isoformat()}")
        return row_id

    def insert_rows(self, count: int) -> List[int]:
        inserted = []
        for _ in range(count):
            row_id = self.insert_row()
            if row_id is not None:
                inserted.append(row_id)
        return inserted


def connect_writer(max_retries: int = 5, retry_delay: int = 5):
    """Connect with the writer account, retrying while the server comes up."""
    for attempt in range(max_retries):
        try:
            connection = psycopg2.connect(
                host=os.getenv('DB_HOST', 'localhost'),
                port=os.getenv('DB_PORT', '5432'),
                dbname=os.getenv('DB_NAME', 'monitored_db'),
                user=os.getenv('WRITER_DB_USER', 'postgres'),
                password=os.getenv('WRITER_DB_PASSWORD', 'postgres')
            )
            connection.autocommit = False
            logger.info("Successfully connected with the writer account")
            return connection
        except psycopg2.OperationalError as e:
            logger.warning(f"Connection attempt {attempt + 1} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay)
            else:
                logger.error("Failed to connect to database after all retries")
                raise


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the test row inserter."""
    parser = argparse.ArgumentParser(description="Insert sample rows into the monitored table")
    parser.add_argument("--count", type=int, default=2, help="Number of rows to insert")
    parser.add_argument("--env-file", help="Path to a .env file")
    args = parser.parse_args(argv)

    load_dotenv(dotenv_path=args.env_file or find_dotenv(usecwd=True))
    setup_logging("table_monitor", log_level=os.getenv('LOG_LEVEL', 'INFO'))

    try:
        connection = connect_writer()
    except psycopg2.OperationalError as e:
        logger.error(f"Fatal error in main: {e}")
        return 1

    try:
        inserter = RowInserter(
            connection,
            schema=os.getenv('DATA_SCHEMA', 'public'),
            table=os.getenv('DATA_TABLE', 'monitored_data'),
            timestamp_column=os.getenv('DATA_TIMESTAMP_COLUMN', 'timestamp_utc'),
            value_column=os.getenv('DATA_VALUE_COLUMN', 'data_value'),
            id_column=os.getenv('DATA_ID_COLUMN', 'id'),
        )
        inserted = inserter.insert_rows(args.count)
    finally:
        connection.close()

    logger.info(f"Inserted {len(inserted)} of {args.count} test rows")
    return 0 if len(inserted) == args.count else 1


if __name__ == "__main__":
    sys.exit(main())
