"""
jobs_engine -- Multi-tenant job scheduling and execution.

Registers typed job definitions per tenant, decides which jobs are due,
guarantees at most one running execution per job through expiring locks,
tracks every execution through its lifecycle with an append-only log,
retries transient failures with exponential backoff, and parks exhausted
work in a dead letter queue for operators.

Architecture:
    jobs_engine/ sits on top of jobs_kernel/ (db, clock, logging,
    exceptions).  Nothing in jobs_kernel/ imports from jobs_engine/ except
    ``create_tables()``, which needs the model registry.  Job bodies live
    outside the engine and are plugged in through JobBodyRegistry.

Invariants:
    - At most one live lock per job.
    - A completed or failed execution is never modified again.
    - Log entries, idempotency records and dead letter entries are never
      deleted.
    - Time comes from an injected Clock; nothing calls datetime.now().
"""
