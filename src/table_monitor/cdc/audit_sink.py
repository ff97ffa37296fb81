"""
Audit Sink

Appends detected rows as JSON lines to one log file per UTC calendar date.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict
from datetime import datetime

from table_monitor.cdc.source_reader import DataRow
from table_monitor.errors import SinkWriteFailed
from table_monitor.utils.timestamps import utc_now, to_utc, format_utc

logger = logging.getLogger(__name__)


def build_audit_record(source_name: str, row: DataRow) -> Dict[str, Any]:
    """
    Project a row into its audit record.

    Payload columns are copied after the fixed keys and never replace them.
    """
    record = {
        "source": source_name,
        "id": row.id,
        "timestampUTC": format_utc(row.timestamp_utc),
    }
    for key, value in row.payload.items():
        if key not in record:
            record[key] = value
    return record


class AuditSink:
    """
    Append-only, date-partitioned audit log.

    The partition is picked from the clock at the moment of each append,
    so a cycle running across midnight writes to two files.
    """

    def __init__(
        self,
        log_dir: Path,
        prefix: str = 'changes',
        fsync: bool = True,
        clock: Callable[[], datetime] = utc_now
    ):
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.fsync = fsync
        self.clock = clock

    def partition_path(self, moment: datetime) -> Path:
        return self.log_dir / f"{self.prefix}_{to_utc(moment).strftime('%Y%m%d')}.jsonl"

    def append(self, source_name: str, record: Dict[str, Any]) -> Path:
        """
        Append one record to the current partition.

        Args:
            source_name: Source the record belongs to, for error context
            record: JSON-serializable audit record

        Returns:
            Path of the partition written to

        Raises:
            SinkWriteFailed: If the record could not be written and flushed
        """
        path = self.partition_path(self.clock())
        line = json.dumps(record, default=str) + '\n'

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, 'a', encoding='utf-8') as f:
                f.write(line)
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
        except OSError as e:
            raise SinkWriteFailed(
                f"Failed to append audit record to {path}: {e}",
                {"source": source_name, "id": record.get("id")}
            ) from e

        return path
