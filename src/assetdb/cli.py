"""Command line entry point for the asset database."""

from __future__ import annotations

import argparse
import enum
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TypeVar

from .config import AppConfig, configure
from .descriptors import AssetColor, AssetSize, AssetTheme, PropDescriptor, PropType
from .errors import AssetDatabaseError, AssetNotFoundError
from .manager import AssetManager
from .schema import describe_values
from .utils.paths import MEMORY_DATABASE, resolve_database_path

__all__ = ["build_parser", "main"]

logger = logging.getLogger(__name__)

EnumT = TypeVar("EnumT", bound=enum.Enum)


def _enum_parser(enum_cls: type[EnumT]):
    """Return an argparse ``type`` accepting member names, ``|``-joined for flags."""

    def parse(raw: str) -> EnumT:
        names = [part.strip().upper() for part in raw.split("|") if part.strip()]
        if not names:
            raise argparse.ArgumentTypeError("value cannot be empty")
        try:
            members = [enum_cls[name] for name in names]
        except KeyError as exc:
            choices = ", ".join(member.name.lower() for member in enum_cls)
            raise argparse.ArgumentTypeError(
                f"unknown {enum_cls.__name__} {exc.args[0].lower()!r} (choose from {choices})"
            ) from None
        if len(members) > 1 and not issubclass(enum_cls, enum.Flag):
            raise argparse.ArgumentTypeError(f"{enum_cls.__name__} does not accept combinations")
        value = members[0]
        for member in members[1:]:
            value = value | member
        return value

    parse.__name__ = enum_cls.__name__
    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetdb",
        description="Store and look up asset descriptors in a SQLite database.",
    )
    parser.add_argument("--data-dir", type=Path, help="Directory holding the database file.")
    parser.add_argument("--database", help="Database file name or path (default: AssetDatabase.db).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the descriptor tables.")

    add = subparsers.add_parser("add-prop", help="Store a prop descriptor.")
    add.add_argument("--name", required=True)
    add.add_argument("--path", required=True)
    _add_prop_options(add)

    find = subparsers.add_parser("find-props", help="List props matching the given fields.")
    find.add_argument("--name")
    find.add_argument("--path")
    find.add_argument("--count", type=int, default=1, help="Number of props to return.")
    _add_prop_options(find)

    reset = subparsers.add_parser("reset", help="Delete the database file.")
    reset.add_argument("--yes", dest="assume_yes", action="store_true", help="Skip the confirmation prompt.")
    reset.add_argument("--dry-run", action="store_true", help="Print what would be removed.")
    return parser


def _add_prop_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--prop-type", type=_enum_parser(PropType))
    parser.add_argument("--size", type=_enum_parser(AssetSize))
    parser.add_argument("--primary-color", type=_enum_parser(AssetColor))
    parser.add_argument("--secondary-color", type=_enum_parser(AssetColor))
    parser.add_argument("--light-color", type=_enum_parser(AssetColor))
    parser.add_argument("--theme", type=_enum_parser(AssetTheme))
    parser.add_argument("--emits-light", action="store_true", default=None)


def _prop_from_args(args: argparse.Namespace) -> PropDescriptor:
    overrides = {
        key: value
        for key in (
            "name",
            "path",
            "prop_type",
            "size",
            "primary_color",
            "secondary_color",
            "light_color",
            "theme",
            "emits_light",
        )
        if (value := getattr(args, key, None)) is not None
    }
    return PropDescriptor(**overrides)


def _run_init(config: AppConfig) -> int:
    with AssetManager(config=config) as manager:
        manager.wait_until_ready()
        tables = ", ".join(entry.table_name for entry in manager.registry)
        print(f"Tables ready in {manager.database_path}: {tables}")
    return 0


def _run_add(config: AppConfig, args: argparse.Namespace) -> int:
    try:
        descriptor = _prop_from_args(args)
    except ValueError as exc:
        print(f"Invalid prop: {exc}", file=sys.stderr)
        return 1
    with AssetManager(config=config) as manager:
        task = manager.add_asset_async(descriptor)
        try:
            rowid = task.result()
        except AssetDatabaseError as exc:
            print(f"Could not add {descriptor.path}: {exc}", file=sys.stderr)
            return 1
    print(f"Added {descriptor.name!r} as row {rowid}")
    return 0


def _run_find(config: AppConfig, args: argparse.Namespace) -> int:
    if args.count < 1:
        print("--count must be at least 1", file=sys.stderr)
        return 1
    try:
        descriptor = _prop_from_args(args)
    except ValueError as exc:
        print(f"Invalid prop: {exc}", file=sys.stderr)
        return 1
    with AssetManager(config=config) as manager:
        try:
            found = manager.get_assets(descriptor, args.count)
        except AssetNotFoundError as exc:
            print(str(exc), file=sys.stderr)
            return 1
    for prop in found:
        values = describe_values(prop)
        print(", ".join(f"{column}={value}" for column, value in values.items()))
    return 0


def _run_reset(config: AppConfig, args: argparse.Namespace) -> int:
    location = resolve_database_path(config.database_name, data_dir=config.data_dir)
    if location == MEMORY_DATABASE:
        print("In-memory databases do not need wiping.")
        return 0

    target = Path(location)
    ancillary = [target.with_suffix(target.suffix + suffix) for suffix in ("-wal", "-shm", "-journal")]
    existing = [path for path in [target, *ancillary] if path.exists()]
    if not existing:
        print(f"No database files found at {target}.")
        return 0

    if args.dry_run:
        print("[dry-run] Would remove:")
        for path in existing:
            print(f"  {path}")
        return 0

    if not args.assume_yes:
        try:
            reply = input(f"This will permanently delete {target}. Continue? [y/N] ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            print("\nAborted.")
            return 1
        if reply not in {"y", "yes"}:
            print("Aborted.")
            return 1

    for path in existing:
        path.unlink(missing_ok=True)
    print("Deleted:")
    for path in existing:
        print(f"  {path}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = configure(data_dir=args.data_dir, database_name=args.database)
    logger.debug("Using data directory %s", config.data_dir)

    try:
        if args.command == "init":
            return _run_init(config)
        if args.command == "add-prop":
            return _run_add(config, args)
        if args.command == "find-props":
            return _run_find(config, args)
        return _run_reset(config, args)
    except AssetDatabaseError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
