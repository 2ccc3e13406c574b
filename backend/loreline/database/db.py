"""
Database connection and initialization.

Each logical database name maps to its own SQLite file under ``DATABASE_DIR``.
"""

import re
from pathlib import Path

import aiosqlite

from loreline.logging import get_logger

logger = get_logger('database')

SCHEMA_PATH = Path(__file__).parent / "init_db.sql"
DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_database_name(db_name: str | None) -> str:
    """
    Validate a logical database name taken from a request.

    :param db_name: Raw database name, possibly padded or missing
    :type db_name: str | None
    :return: The trimmed database name
    :rtype: str
    :raises ValueError: If the name is missing or has invalid characters
    """
    normalized = (db_name or "").strip()
    if not normalized:
        raise ValueError("dbName is required")
    if not DATABASE_NAME_PATTERN.match(normalized):
        raise ValueError("dbName must contain only letters, numbers, underscores, or hyphens")
    return normalized


class DatabaseRegistry:
    """Resolves logical database names to SQLite files and applies the schema once per file."""

    def __init__(self, database_dir: str):
        self.database_dir = Path(database_dir)
        self._initialized: set[str] = set()

    def path_for(self, db_name: str) -> Path:
        return self.database_dir / f"{validate_database_name(db_name)}.db"

    async def init_db(self, db_name: str) -> None:
        """
        Initialize a logical database with schema.

        :param db_name: Logical database name
        :type db_name: str
        :return: None
        :rtype: None
        """
        path = self.path_for(db_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(path) as db:
            with open(SCHEMA_PATH) as f:
                await db.executescript(f.read())
            await db.commit()
        self._initialized.add(str(path))
        logger.info(f"Database initialized at {path}")

    async def connect(self, db_name: str) -> aiosqlite.Connection:
        """
        Open a connection to a logical database, creating its schema on first use.

        :param db_name: Logical database name
        :type db_name: str
        :return: Open connection with row factory and foreign keys enabled
        :rtype: aiosqlite.Connection
        """
        path = self.path_for(db_name)
        if str(path) not in self._initialized:
            await self.init_db(db_name)
        db = await aiosqlite.connect(path)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        return db
