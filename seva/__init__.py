"""Sevadar staff assignment and fairness engine.

Modules:
- config: load and validate configuration (YAML)
- errors: error taxonomy raised by scheduling operations
- domain: SQLAlchemy models, sessions and repositories
- services: availability, constraints, ranking, fairness credit, booking lifecycle
- engine: auto-assignment plus swap/override/manual placement
- locks: non-blocking TTL lock stores for background sweeps
- io: CSV import/export
- cli: command-line interface entrypoints
"""

__all__ = [
    "config",
    "errors",
    "domain",
    "services",
    "engine",
    "locks",
    "io",
    "cli",
]
