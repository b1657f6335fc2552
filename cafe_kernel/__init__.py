"""
Café Kernel

Shared infrastructure for the café workforce core:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- Explicit request context (no global current user)
- Injectable clock and workflow value objects
- SQLAlchemy base, engine, session scope and keyed locks
"""

__version__ = "0.1.0"
