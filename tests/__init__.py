"""
Syncopate SDK Test Suite.

This package contains:
- unit/: Unit tests (no network, transport mocked)
- integration/: Integration tests (in-memory FastAPI store)
"""
