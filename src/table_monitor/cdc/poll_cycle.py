"""
Poll Cycle

One pass of the watermark-based change detection protocol:

    credential -> connect -> lock -> snapshot -> read watermark
    -> query rows newer than the watermark -> append every row to the audit
    log -> commit the snapshot as the new watermark

The watermark only moves after every row has been appended, so a failure at
any step leaves it untouched and the next run retries the same rows. Rows
appended before a failure may therefore be logged twice, never lost.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import psycopg2

from table_monitor.cdc.audit_sink import AuditSink, build_audit_record
from table_monitor.cdc.source_reader import SourceTableReader
from table_monitor.cdc.watermark_store import WatermarkStore
from table_monitor.config import MonitorConfig
from table_monitor.errors import MonitorError, RunInProgress, SourceUnavailable
from table_monitor.utils.credentials import decode_credential
from table_monitor.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class CycleState(Enum):
    IDLE = "Idle"
    CREDENTIAL_ACQUIRED = "CredentialAcquired"
    WATERMARK_READ = "WatermarkRead"
    QUERIED = "Queried"
    EMITTING = "Emitting"
    WATERMARK_COMMITTED = "WatermarkCommitted"
    DONE = "Done"


class RunStatus(Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass(frozen=True)
class RunOutcome:
    """Result of one cycle. Reported, never persisted."""

    status: RunStatus
    rows_emitted: int
    duration_seconds: float
    error_detail: Optional[str] = None
    cutoff: Optional[datetime] = None
    new_watermark: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCESS

    def status_line(self, source_name: str) -> str:
        return (
            f"status={self.status.value} source={source_name} "
            f"duration={self.duration_seconds:.2f}s rows_emitted={self.rows_emitted}"
        )


def _default_store(connection, config: MonitorConfig) -> WatermarkStore:
    return WatermarkStore(connection, config.state_schema, config.state_table)


def _default_reader(connection, config: MonitorConfig) -> SourceTableReader:
    return SourceTableReader(
        connection,
        config.data_schema,
        config.data_table,
        id_column=config.data_id_column,
        timestamp_column=config.data_timestamp_column,
    )


class PollCycle:
    """
    Runs a single poll cycle for the configured source.

    Database access goes through a connection opened for the cycle and
    closed on every exit path. Collaborators can be swapped through the
    constructor for testing.
    """

    def __init__(
        self,
        config: MonitorConfig,
        credential_provider,
        sink: Optional[AuditSink] = None,
        connect: Callable = psycopg2.connect,
        clock: Callable[[], datetime] = utc_now,
        store_factory: Callable = _default_store,
        reader_factory: Callable = _default_reader
    ):
        self.config = config
        self.credential_provider = credential_provider
        self.sink = sink or AuditSink(
            config.audit_log_dir,
            prefix=config.audit_log_prefix,
            fsync=config.audit_fsync,
        )
        self.connect = connect
        self.clock = clock
        self.store_factory = store_factory
        self.reader_factory = reader_factory
        self.state = CycleState.IDLE

    def run(self) -> RunOutcome:
        """
        Execute the cycle.

        Returns:
            RunOutcome with status Success, or Failed and the error detail.
            Only MonitorError failures are reported this way; anything else
            propagates after the connection is closed.
        """
        source_name = self.config.source_name
        started = time.monotonic()
        self.state = CycleState.IDLE

        connection = None
        store = None
        locked = False
        cutoff = None
        snapshot = None
        emitted = 0

        logger.info(f"=== Starting poll cycle for {source_name} ===")

        try:
            connection = self._open_connection()
            store = self.store_factory(connection, self.config)
            reader = self.reader_factory(connection, self.config)

            if self.config.single_flight_lock:
                if not store.try_lock(source_name):
                    raise RunInProgress(
                        "Another run holds the lock for this source",
                        {"source": source_name}
                    )
                locked = True

            # Taken before the query: rows committed while the query runs
            # stay above the next cutoff.
            snapshot = reader.server_now() if self.config.clock_source == 'database' else self.clock()

            cutoff = store.get(source_name)
            self._transition(CycleState.WATERMARK_READ)
            logger.info(f"Current watermark: {cutoff.isoformat()}, snapshot: {snapshot.isoformat()}")
            if snapshot < cutoff:
                logger.warning(
                    f"Snapshot {snapshot.isoformat()} is earlier than watermark "
                    f"{cutoff.isoformat()}; check clock skew"
                )

            rows = reader.query_newer_than(cutoff)
            self._transition(CycleState.QUERIED)

            self._transition(CycleState.EMITTING)
            for row in sorted(rows, key=lambda r: r.timestamp_utc):
                self.sink.append(source_name, build_audit_record(source_name, row))
                emitted += 1
            if emitted:
                logger.info(f"Appended {emitted} audit records to {self.sink.log_dir}")

            store.set(source_name, snapshot)
            self._transition(CycleState.WATERMARK_COMMITTED)
            logger.info(f"Updated watermark to: {snapshot.isoformat()}")

            outcome = RunOutcome(
                status=RunStatus.SUCCESS,
                rows_emitted=emitted,
                duration_seconds=time.monotonic() - started,
                cutoff=cutoff,
                new_watermark=snapshot,
            )

        except MonitorError as e:
            logger.error(f"Poll cycle failed in state {self.state.value}: {e}")
            outcome = RunOutcome(
                status=RunStatus.FAILED,
                rows_emitted=emitted,
                duration_seconds=time.monotonic() - started,
                error_detail=str(e),
                cutoff=cutoff,
            )

        finally:
            if locked:
                store.unlock(source_name)
            if connection is not None:
                self._close(connection)

        self.state = CycleState.DONE
        logger.info(outcome.status_line(source_name))
        return outcome

    def _open_connection(self):
        """
        Fetch the credential and open the cycle's database connection.

        The decoded password exists only in this scope and is scrubbed
        from the error text if the driver echoes it.
        """
        raw = self.credential_provider.fetch(self.config.secret_id)
        password = decode_credential(raw, self.config.secret_id)
        self._transition(CycleState.CREDENTIAL_ACQUIRED)

        target = self.config.describe_target()
        try:
            connection = self.connect(
                host=self.config.db_host,
                port=self.config.db_port,
                dbname=self.config.db_name,
                user=self.config.db_user,
                password=password,
                connect_timeout=self.config.connect_timeout_seconds,
                # Cutoffs are bound as naive UTC; timestamptz columns must read them as UTC.
                options=f"-c statement_timeout={self.config.query_timeout_seconds * 1000} -c TimeZone=UTC",
                application_name="table-monitor",
            )
        except psycopg2.Error as e:
            message = str(e).strip().replace(password, '***')
            raise SourceUnavailable(f"Failed to connect to {target}: {message}") from None

        connection.autocommit = False
        logger.info(f"Successfully connected to {target}")
        return connection

    def _close(self, connection) -> None:
        try:
            connection.close()
            logger.debug("Database connection closed")
        except psycopg2.Error as e:
            logger.warning(f"Failed to close database connection: {e}")

    def _transition(self, state: CycleState) -> None:
        logger.debug(f"Cycle state {self.state.value} -> {state.value}")
        self.state = state
