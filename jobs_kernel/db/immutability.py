"""
ORM-Level Append-Only Enforcement for job history.

===============================================================================
WHY THIS EXISTS
===============================================================================

Execution history is the operator's only record of what the engine did.
Once a log line, an idempotency record or a terminal execution exists,
changing it would rewrite that history.  SQLAlchemy fires mapper events
before UPDATE/DELETE reach the database; the listeners registered here
check the rules below and raise ImmutabilityViolationError, aborting the
flush.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()``/``delete()`` statements bypass mapper events.  Services
never issue them against protected tables; the lock table is the only one
swept in bulk, and it is not protected.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|---------------------------------------------------
JobLogModel          | ALWAYS immutable, never deleted
IdempotencyRecord    | ALWAYS immutable, never deleted
JobExecutionModel    | Never deleted; frozen once completed/failed
DeadLetterEntryModel | Never deleted (resolution fields stay mutable)

===============================================================================
USAGE
===============================================================================

    from jobs_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from jobs_kernel.exceptions import ImmutabilityViolationError
from jobs_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_STATUSES = frozenset({"completed", "failed"})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_log_entry_immutability(mapper, connection, target):
    """Log entries are append-only."""
    _block("JobLog", target, "UPDATE", "Log entries are append-only")


def _check_log_entry_delete(mapper, connection, target):
    _block("JobLog", target, "DELETE", "Log entries cannot be deleted")


def _check_idempotency_record_immutability(mapper, connection, target):
    """Idempotency records are written once alongside completion."""
    _block(
        "IdempotencyRecord", target, "UPDATE",
        "Idempotency records are immutable once written",
    )


def _check_idempotency_record_delete(mapper, connection, target):
    _block(
        "IdempotencyRecord", target, "DELETE",
        "Idempotency records cannot be deleted",
    )


def _check_execution_immutability(mapper, connection, target):
    """
    Prevent updates to executions that were already terminal.

    The transition INTO completed/failed is allowed; any change after it is
    not.  The previous status is read from attribute history.
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        previous = status_history.deleted[0]
    elif status_history.unchanged:
        previous = status_history.unchanged[0]
    else:
        return

    if previous in _TERMINAL_STATUSES:
        _block(
            "JobExecution", target, "UPDATE",
            f"Execution is terminal ({previous}) and cannot be modified",
        )


def _check_execution_delete(mapper, connection, target):
    _block("JobExecution", target, "DELETE", "Execution history is permanent")


def _check_dead_letter_delete(mapper, connection, target):
    _block(
        "DeadLetterEntry", target, "DELETE",
        "Dead letter entries are resolved, never deleted",
    )


def _listeners():
    from jobs_engine.models.jobs import (
        DeadLetterEntryModel,
        IdempotencyRecordModel,
        JobExecutionModel,
        JobLogModel,
    )

    return (
        (JobLogModel, "before_update", _check_log_entry_immutability),
        (JobLogModel, "before_delete", _check_log_entry_delete),
        (IdempotencyRecordModel, "before_update", _check_idempotency_record_immutability),
        (IdempotencyRecordModel, "before_delete", _check_idempotency_record_delete),
        (JobExecutionModel, "before_update", _check_execution_immutability),
        (JobExecutionModel, "before_delete", _check_execution_delete),
        (DeadLetterEntryModel, "before_delete", _check_dead_letter_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement event listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
