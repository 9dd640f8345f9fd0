"""
Schema migrations for the SQLite database.

Migration files live in one directory and are applied in filename order.
Each file holds an ``-- Up`` section and an optional ``-- Down`` section;
only the Up part is executed. Applied files are recorded in ``_migrations``
together with a checksum of the script that ran.
"""

import hashlib
import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DOWN_MARKER = "-- Down"


class SQLiteMigrator:
    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                checksum TEXT,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)
        return conn

    def _applied(self, conn: sqlite3.Connection) -> dict[str, str | None]:
        rows = conn.execute("SELECT filename, checksum FROM _migrations").fetchall()
        return {filename: checksum for filename, checksum in rows}

    def _files(self) -> list[str]:
        return sorted(p.name for p in self.migrations_dir.glob("*.sql"))

    def _up_script(self, filename: str) -> str:
        content = (self.migrations_dir / filename).read_text()
        return content.split(DOWN_MARKER)[0]

    @staticmethod
    def _checksum(script: str) -> str:
        return hashlib.sha256(script.encode()).hexdigest()

    def pending(self) -> list[str]:
        """Filenames not yet applied, in the order they would run."""
        conn = self._connect()
        try:
            applied = self._applied(conn)
        finally:
            conn.close()
        return [f for f in self._files() if f not in applied]

    def modified(self) -> list[str]:
        """Applied files whose script changed on disk since they ran."""
        conn = self._connect()
        try:
            applied = self._applied(conn)
        finally:
            conn.close()
        return [
            f
            for f in self._files()
            if applied.get(f) is not None and applied[f] != self._checksum(self._up_script(f))
        ]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations; returns the filenames applied."""
        conn = self._connect()
        applied_now: list[str] = []
        try:
            applied = self._applied(conn)
            for filename in self._files():
                if filename in applied:
                    continue
                logger.info("Applying migration: %s", filename)
                self._apply(conn, filename)
                applied_now.append(filename)
        finally:
            conn.close()

        for filename in self.modified():
            logger.warning("Migration %s changed after it was applied", filename)
        logger.info("All migrations applied (%d new)", len(applied_now))
        return applied_now

    def _apply(self, conn: sqlite3.Connection, filename: str) -> None:
        script = self._up_script(filename)
        try:
            conn.executescript(script)
            conn.execute(
                "INSERT INTO _migrations (filename, checksum) VALUES (?, ?)",
                (filename, self._checksum(script)),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {filename} failed: {e}") from e
