"""Integration tests: SDK against an in-memory store."""
