"""
CLI tools for Syncopate administration.

This module provides command-line tools for:
- register: Create or update entity types on the store
- truncate-entity / truncate-database: Remove stored entities
- schema: Print entity definitions extracted from entity classes
- health: Check that the store is reachable
"""

from .cli import SyncopateCLI

__all__ = ["SyncopateCLI"]
