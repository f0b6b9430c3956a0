from __future__ import annotations

import logging
from typing import Any, Optional

from ..core.enums import BatchStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, normalize_mysql_time
from .model import Batch, ClassTiming
from .repository import BatchRepository

logger = logging.getLogger(__name__)


def _batch_status_from_db(value: Any) -> BatchStatus:
    try:
        return BatchStatus(str(value or "").strip().lower())
    except ValueError:
        # Not RUNNING, so check-ins against the batch are refused.
        logger.warning("Unknown batch status %r; treating as %s", value, BatchStatus.UPCOMING.value)
        return BatchStatus.UPCOMING


class MySQLBatchRepository(BatchRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, batch_id: int) -> Optional[Batch]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT batch_id, batch_code, program_name, status,
                       start_time, end_time, late_threshold_minutes
                FROM batches
                WHERE batch_id=%s
                """,
                (int(batch_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Batch(
                batch_id=int(r["batch_id"]),
                batch_code=r["batch_code"],
                program_name=r["program_name"],
                status=_batch_status_from_db(r["status"]),
                class_timing=ClassTiming(
                    start_time=normalize_mysql_time(r["start_time"]),
                    end_time=normalize_mysql_time(r["end_time"]),
                    late_threshold_minutes=int(r["late_threshold_minutes"]),
                ),
            )
