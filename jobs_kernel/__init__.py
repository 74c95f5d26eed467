"""
Jobs Kernel -- infrastructure for the job scheduling and execution engine.

Provides:
- SQLAlchemy declarative base, engine and session management
- Injectable clock abstraction
- Structured JSON logging
- Typed exception hierarchy
- Idempotency key utilities
- ORM-level append-only enforcement
"""

__version__ = "0.1.0"
