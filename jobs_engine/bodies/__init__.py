"""
jobs_engine.bodies -- The contract between the engine and external job bodies.
"""

from jobs_engine.bodies.base import JobBody, JobBodyRegistry, JobContext, JobOutcome

__all__ = [
    "JobBody",
    "JobBodyRegistry",
    "JobContext",
    "JobOutcome",
]
