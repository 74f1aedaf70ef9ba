from __future__ import annotations

import asyncio
import hashlib
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from apidecl.reference.document import Reference
from apidecl.reference.publisher import reference_key


def _now_ts() -> int:
    return int(time.time())


def _sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class StoredReference:
    id: int
    service_name: str
    api_version: str
    key: str
    digest: str
    published_at: int
    entry_count: int


class ReferenceStore:
    """Local SQLite history of published references.

    Implements the same publish() contract as the S3 publisher, so it can be
    handed to build(publisher=...) or used next to it from the CLI.
    Publishing a reference identical to the latest one for the same
    service/version does not create a new row.
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ----------------------------
    # Connection / schema
    # ----------------------------

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self.db_path))
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys=ON;")
        return con

    def _init_db(self) -> None:
        with self._connect() as con:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS refs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    service_name TEXT NOT NULL,
                    api_version TEXT NOT NULL,
                    key TEXT NOT NULL,
                    digest TEXT NOT NULL,
                    document TEXT NOT NULL,
                    published_at INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ref_entries (
                    ref_id INTEGER NOT NULL REFERENCES refs(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    method TEXT NOT NULL,
                    route TEXT NOT NULL,
                    stability TEXT NOT NULL,
                    digest TEXT NOT NULL,
                    PRIMARY KEY (ref_id, name)
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_refs_service ON refs(service_name, api_version);")

            if self._get_meta(con, "schema_version") is None:
                self._set_meta(con, "schema_version", self.SCHEMA_VERSION)

    # ----------------------------
    # Publishing
    # ----------------------------

    def record(self, reference: Reference) -> int:
        """Store reference unless it equals the latest one; returns its row id."""
        document = reference.to_json(indent=None)
        digest = _sha256_text(document)

        latest = self.latest(reference.service_name, reference.api_version)
        if latest and latest.digest == digest:
            return latest.id

        entry_rows = []
        for position, entry in enumerate(reference.entries):
            entry_rows.append(
                (
                    position,
                    entry.name,
                    entry.method,
                    entry.route,
                    entry.stability,
                    _sha256_text(entry.model_dump_json()),
                )
            )

        with self._connect() as con:
            cur = con.execute(
                """
                INSERT INTO refs(service_name, api_version, key, digest, document, published_at)
                VALUES(?,?,?,?,?,?)
                """,
                (
                    reference.service_name,
                    reference.api_version,
                    reference_key(reference),
                    digest,
                    document,
                    _now_ts(),
                ),
            )
            ref_id = int(cur.lastrowid)
            con.executemany(
                """
                INSERT INTO ref_entries(ref_id, position, name, method, route, stability, digest)
                VALUES(?,?,?,?,?,?,?)
                """,
                [(ref_id, *row) for row in entry_rows],
            )
        return ref_id

    async def publish(self, reference: Reference) -> str:
        await asyncio.to_thread(self.record, reference)
        return reference_key(reference)

    # ----------------------------
    # Queries
    # ----------------------------

    def _stored(self, row: sqlite3.Row) -> StoredReference:
        return StoredReference(
            id=row["id"],
            service_name=row["service_name"],
            api_version=row["api_version"],
            key=row["key"],
            digest=row["digest"],
            published_at=row["published_at"],
            entry_count=row["entry_count"],
        )

    _SELECT = """
        SELECT r.id, r.service_name, r.api_version, r.key, r.digest, r.published_at,
               (SELECT COUNT(*) FROM ref_entries e WHERE e.ref_id = r.id) AS entry_count
        FROM refs r
    """

    def latest(self, service_name: str, api_version: str) -> Optional[StoredReference]:
        with self._connect() as con:
            row = con.execute(
                self._SELECT + " WHERE r.service_name=? AND r.api_version=? ORDER BY r.id DESC LIMIT 1",
                (service_name, api_version),
            ).fetchone()
            return self._stored(row) if row else None

    def list_references(
        self,
        service_name: Optional[str] = None,
        api_version: Optional[str] = None,
        limit: int = 50,
    ) -> list[StoredReference]:
        q = self._SELECT
        where: list[str] = []
        params: list[object] = []

        if service_name:
            where.append("r.service_name = ?")
            params.append(service_name)
        if api_version:
            where.append("r.api_version = ?")
            params.append(api_version)

        if where:
            q += " WHERE " + " AND ".join(where)

        q += " ORDER BY r.id DESC LIMIT ?"
        params.append(int(limit))

        with self._connect() as con:
            rows = con.execute(q, tuple(params)).fetchall()
            return [self._stored(r) for r in rows]

    def get_reference(self, ref_id: int) -> Optional[Reference]:
        with self._connect() as con:
            row = con.execute("SELECT document FROM refs WHERE id=?", (ref_id,)).fetchone()
            if not row:
                return None
            return Reference.model_validate_json(row["document"])

    def diff_references(self, old_id: int, new_id: int) -> dict[str, list[dict]]:
        """Entries added, removed and changed between two stored references (by name)."""
        old = self._entry_rows(old_id)
        new = self._entry_rows(new_id)

        added = [new[n] for n in new if n not in old]
        removed = [old[n] for n in old if n not in new]
        changed = [new[n] for n in new if n in old and new[n]["digest"] != old[n]["digest"]]
        return {"added": added, "removed": removed, "changed": changed}

    def _entry_rows(self, ref_id: int) -> dict[str, dict]:
        with self._connect() as con:
            if con.execute("SELECT 1 FROM refs WHERE id=?", (ref_id,)).fetchone() is None:
                raise KeyError(f"no stored reference with id {ref_id}")
            rows = con.execute(
                """
                SELECT name, method, route, stability, digest
                FROM ref_entries WHERE ref_id=? ORDER BY position
                """,
                (ref_id,),
            ).fetchall()
            return {r["name"]: dict(r) for r in rows}

    # ----------------------------
    # internal helpers
    # ----------------------------

    def _get_meta(self, con: sqlite3.Connection, key: str) -> Optional[str]:
        row = con.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_meta(self, con: sqlite3.Connection, key: str, value: str) -> None:
        con.execute(
            """
            INSERT INTO meta(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
