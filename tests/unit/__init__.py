"""Unit tests: no network, transport mocked."""
