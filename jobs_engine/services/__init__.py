"""
jobs_engine.services -- Stateful services for registration, locking,
execution tracking, logging, idempotency, dead letters and triggering.

Every service takes a Session and a Clock.  Services flush, never commit;
JobRunner and JobTrigger own the transaction boundaries.
"""

from jobs_engine.services.dead_letter import DeadLetterQueue
from jobs_engine.services.events import EventBus
from jobs_engine.services.execution_log import ExecutionLogService
from jobs_engine.services.idempotency import IdempotencyStore
from jobs_engine.services.locks import LockManager
from jobs_engine.services.registry import JobRegistry
from jobs_engine.services.runner import JobRunner
from jobs_engine.services.tracker import ExecutionTracker
from jobs_engine.services.trigger import JobTrigger

__all__ = [
    "DeadLetterQueue",
    "EventBus",
    "ExecutionLogService",
    "ExecutionTracker",
    "IdempotencyStore",
    "JobRegistry",
    "JobRunner",
    "JobTrigger",
    "LockManager",
]
