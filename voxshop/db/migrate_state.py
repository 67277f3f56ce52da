"""Migration script for rewriting stored state at the current versions.

Reads every known key in the ``kv_store`` table, runs it through the
same versioned read path the application uses (including the lists
migration chain) and writes it back at the current version.

Usage::

    python -m voxshop.db.migrate_state /path/to/voxshop.db

The script is idempotent: running it multiple times on an already-migrated
database is safe. Keys that cannot be read, that carry a version with no
migration path, or that are not versioned envelopes are left unchanged
and reported as warnings.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from voxshop.storage import SqliteStore, StateStore

if TYPE_CHECKING:
    from voxshop.models import StorageError

logger = logging.getLogger(__name__)


def _load_envelope(raw: bytes) -> dict[str, Any] | None:
    """Decode a stored envelope, or None when it is not one."""
    try:
        envelope = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if isinstance(envelope, dict) and "value" in envelope:
        return envelope
    return None


def _stored_version(raw: bytes) -> int | None:
    """Return the version recorded in a stored envelope, if readable."""
    try:
        envelope = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if isinstance(envelope, dict) and isinstance(envelope.get("version"), int):
        return envelope["version"]
    return None


def migrate(db_path: str) -> int:
    """Rewrite every stored key at its current version.

    Keys whose stored value would be replaced by a default are skipped so
    their data stays in the database.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        Number of keys rewritten.
    """
    warnings: list[StorageError] = []
    state_store = StateStore(
        SqliteStore(db_path), debounce_ms=0, on_error=warnings.append
    )
    store = state_store.store
    present = set(store.keys())

    rewritten = 0
    skipped = 0
    for slot in state_store.slots():
        if slot.key not in present:
            continue
        raw = store.get(slot.key)
        if not raw or _load_envelope(raw) is None:
            logger.warning("%s: not a versioned value, left unchanged", slot.key)
            skipped += 1
            continue
        before = _stored_version(raw)
        if before != slot.version and not slot.can_migrate:
            logger.warning(
                "%s: no migration from version %s, left unchanged", slot.key, before
            )
            skipped += 1
            continue

        reported = len(warnings)
        value = slot.read()
        if len(warnings) > reported:
            logger.warning("%s: could not be read, left unchanged", slot.key)
            skipped += 1
            continue
        if slot.write(value):
            rewritten += 1
            logger.debug("%s: version %s -> %d", slot.key, before, slot.version)

    for warning in warnings:
        logger.warning("%s (%s)", warning.message, warning.type)
    logger.info(
        "Migration complete: %d key(s) rewritten, %d skipped.", rewritten, skipped
    )
    return rewritten


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        description="Rewrite stored VoxShop state at the current versions."
    )
    parser.add_argument("db_path", help="Path to the SQLite database file.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the migration CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Exit code (0 on success).
    """
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    migrate(args.db_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
