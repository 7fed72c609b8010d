"""
Command-line tool for Syncopate SDK.

Usage:
    syncopate register --module myapp.entities [--force]
    syncopate truncate-entity --module myapp.entities --entity product [--yes]
    syncopate truncate-database [--yes]
    syncopate schema --module myapp.entities
    syncopate health

Connection settings come from SYNCOPATE_* environment variables
(see SyncopateSettings); ``--url`` overrides the base URL.

Invariants:
    - Failures exit with status 1
    - Destructive commands ask for confirmation unless --yes is given
    - Schema output is deterministic (sorted JSON)
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from collections.abc import Callable
from typing import Any

from ..client import SyncopateClient
from ..config import SyncopateSettings
from ..entity import is_entity
from ..errors import SyncopateError
from ..mapper import EntityMapper

logger = logging.getLogger(__name__)


def load_entity_classes(module_path: str) -> dict[str, type]:
    """Import a module and collect the entity classes defined in it.

    Returns:
        Entity type name -> class, sorted by name
    """
    module = importlib.import_module(module_path)
    mapper = EntityMapper()
    found = {}
    for obj in vars(module).values():
        if isinstance(obj, type) and is_entity(obj) and obj.__module__ == module.__name__:
            found[mapper.extract_entity_definition(obj).name] = obj
    return dict(sorted(found.items()))


class SyncopateCLI:
    """Administrative commands.

    Example:
        >>> cli = SyncopateCLI(SyncopateClient.from_settings())
        >>> cli.register("myapp.entities")
        0
    """

    def __init__(
        self,
        client: SyncopateClient | None = None,
        *,
        confirm: Callable[[str], bool] | None = None,
        out: Any = None,
    ) -> None:
        self._client = client
        self._confirm = confirm or _ask
        self._out = out or sys.stdout

    @property
    def client(self) -> SyncopateClient:
        if self._client is None:
            self._client = SyncopateClient.from_settings()
        return self._client

    def _print(self, message: str) -> None:
        print(message, file=self._out)

    def register(self, module_path: str, force: bool = False) -> int:
        """Create missing entity types (update all with ``force``)."""
        classes = load_entity_classes(module_path)
        if not classes:
            self._print(f"No entity classes found in {module_path}")
            return 1

        registry = self.client.registry
        registry.register(*classes.values())
        results = registry.ensure_registered(force=force)

        for name, status in results.items():
            self._print(f"  {name}: {status}")
        failed = [name for name, status in results.items() if status == "failed"]
        if failed:
            self._print(f"Failed to register {len(failed)} entity type(s)")
            return 1
        self._print(f"Registered {len(results)} entity type(s)")
        return 0

    def truncate_entity(self, module_path: str, entity_type: str, yes: bool = False) -> int:
        """Delete every entity of one entity type."""
        classes = load_entity_classes(module_path)
        entity_class = classes.get(entity_type)
        if entity_class is None:
            available = ", ".join(classes) or "none"
            self._print(f"Unknown entity type '{entity_type}' (available: {available})")
            return 1

        if not yes and not self._confirm(
            f"Truncate ALL entities of type '{entity_type}'? This cannot be undone"
        ):
            self._print("Aborted")
            return 1

        result = self.client.truncate_entity_type(entity_class)
        self._print(result["message"])
        self._print(f"Entities removed: {result['entities_removed']}")
        return 0

    def truncate_database(self, yes: bool = False) -> int:
        """Delete every entity of every entity type."""
        if not yes and not self._confirm(
            "Truncate the ENTIRE database? This cannot be undone"
        ):
            self._print("Aborted")
            return 1

        result = self.client.truncate_database()
        self._print(result["message"])
        self._print(f"Entities removed: {result['entities_removed']}")
        self._print(f"Entity types truncated: {result['entity_types_truncated']}")
        return 0

    def schema(self, module_path: str) -> str:
        """Entity definitions of a module as sorted JSON."""
        mapper = EntityMapper()
        definitions = {
            name: mapper.extract_entity_definition(cls).to_wire()
            for name, cls in load_entity_classes(module_path).items()
        }
        return json.dumps(definitions, indent=2, sort_keys=True)

    def health(self) -> int:
        response = self.client.health()
        self._print(json.dumps(response, indent=2, sort_keys=True))
        return 0


def _ask(question: str) -> bool:
    answer = input(f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="syncopate", description="Syncopate store tool")
    parser.add_argument("--url", help="Store base URL (overrides SYNCOPATE_BASE_URL)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # register command
    register_parser = subparsers.add_parser("register", help="Create or update entity types")
    register_parser.add_argument("--module", required=True, help="Module with entity classes")
    register_parser.add_argument(
        "--force", action="store_true", help="Update entity types that already exist"
    )

    # truncate-entity command
    truncate_parser = subparsers.add_parser(
        "truncate-entity", help="Delete all entities of one type"
    )
    truncate_parser.add_argument("--module", required=True, help="Module with entity classes")
    truncate_parser.add_argument("--entity", required=True, help="Entity type name")
    truncate_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask")

    # truncate-database command
    truncate_db_parser = subparsers.add_parser(
        "truncate-database", help="Delete all entities of all types"
    )
    truncate_db_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask")

    # schema command
    schema_parser = subparsers.add_parser("schema", help="Print extracted entity definitions")
    schema_parser.add_argument("--module", required=True, help="Module with entity classes")

    # health command
    subparsers.add_parser("health", help="Check store health")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    client = None
    if args.command != "schema":
        settings = SyncopateSettings(base_url=args.url) if args.url else SyncopateSettings()
        client = SyncopateClient.from_settings(settings)
    cli = SyncopateCLI(client)

    try:
        if args.command == "register":
            return cli.register(args.module, args.force)
        if args.command == "truncate-entity":
            return cli.truncate_entity(args.module, args.entity, args.yes)
        if args.command == "truncate-database":
            return cli.truncate_database(args.yes)
        if args.command == "schema":
            print(cli.schema(args.module))
            return 0
        return cli.health()
    except (SyncopateError, ImportError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":
    sys.exit(main())
