"""Schema migrations for the ledger file.

Each ``atlas/migrations/NNN_<name>.sql`` script runs once, in version
order. The scripts record themselves in ``_schema_version``.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from atlas.errors import MigrationError
from atlas.storage.database import Database

logger = logging.getLogger(__name__)

MIGRATION_DIR = Path(__file__).resolve().parent.parent / "migrations"

_FILENAME = re.compile(r"^(?P<version>\d{3})_\w+\.sql$")


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str


def discover_migrations(migration_dir: Path = MIGRATION_DIR) -> list[Migration]:
    """All migration scripts in ``migration_dir``, oldest first."""
    if not migration_dir.is_dir():
        logger.warning("No migrations directory at %s", migration_dir)
        return []

    found = []
    for path in migration_dir.glob("*.sql"):
        match = _FILENAME.match(path.name)
        if match:
            found.append(
                Migration(int(match["version"]), path.name, path.read_text(encoding="utf-8"))
            )
    return sorted(found, key=lambda mig: mig.version)


def ensure_schema(db: Database, migration_dir: Path = MIGRATION_DIR) -> int:
    """Bring ``db`` up to the newest schema and return its version.

    Raises:
        MigrationError: a script failed; earlier scripts stay applied.
    """
    version = db.schema_version()
    pending = [m for m in discover_migrations(migration_dir) if m.version > version]
    if not pending:
        logger.debug("Ledger schema is current (v%d)", version)
        return version

    for migration in pending:
        logger.info("Migrating ledger v%d -> v%d (%s)", version, migration.version, migration.name)
        try:
            db.executescript(migration.sql)
        except sqlite3.Error as e:
            raise MigrationError(migration.name, str(e)) from e
        version = migration.version

    logger.info("Ledger schema now at v%d after %d migration(s)", version, len(pending))
    return version
