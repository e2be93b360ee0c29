"""Append-only audit trail for task transitions."""

import logging
from datetime import UTC

from fieldops.core import db_client
from fieldops.domain.log import TaskLog


logger = logging.getLogger(__name__)


async def record_transition(log_entry: TaskLog) -> None:
    """Append a transition to task_logs.

    The task update has already been committed when this runs, so a failed
    append is logged and never undoes or blocks the transition.
    """
    data = {
        "task_id": log_entry.task_id,
        "worker_id": log_entry.worker_id,
        "action": log_entry.action.value,
        "notes": log_entry.notes,
        "timestamp": log_entry.timestamp.astimezone(UTC).isoformat(),
    }
    try:
        await db_client.create_record(collection="task_logs", data=data)
    except db_client.DatabaseError as e:
        logger.error(
            "audit_append_failed",
            extra={"task_id": log_entry.task_id, "action": log_entry.action.value, "error": str(e)},
        )
