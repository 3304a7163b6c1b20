"""
Payroll Kernel - shared infrastructure for payroll settlement

Provides the pieces every payroll module builds on:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- SQLAlchemy declarative base, engine and money types
- Append-only audit trail with a tamper-evident hash chain
- Injectable clock for deterministic tests
"""

__version__ = "0.1.0"
