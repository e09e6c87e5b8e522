"""SQLite storage adapter.

Implements the core TrackedRepositoryStore, TagCacheStore, and
SubscriptionStore ports using a single SQLite database.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Set

from core.models import CachedTag, TrackedRepository

_REPOSITORY_COLUMNS = "id, repository_name, repository_url, chat_id, created_at, updated_at"


def _to_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_text(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _repository_from_row(row: sqlite3.Row) -> TrackedRepository:
    # Stored URLs were validated on creation; they are not re-validated on read.
    return TrackedRepository(
        id=row["id"],
        name=row["repository_name"],
        url=row["repository_url"],
        chat_id=int(row["chat_id"]),
        created_at=_from_text(row["created_at"]),
        updated_at=_from_text(row["updated_at"]),
    )


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the storage ports."""

    def __init__(self, db_path: str, timeout_secs: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout_secs = timeout_secs

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout_secs)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error, always close."""

        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements inside one BEGIN IMMEDIATE transaction.

        IMMEDIATE takes the write lock up front, so a read followed by a write
        inside the block cannot interleave with another writer.
        """

        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - tracked_repositories: repositories being watched and their owning chat
        - tracked_repository_releases: last-known tag cache, one row per repository
        - subscriptions: chats subscribed to a repository (fan-out)
        """

        with self._session() as conn:
            # tracked_repositories holds one row per watched GitHub repository.
            # Fields:
            # - id: UUID string (PRIMARY KEY)
            # - repository_name: human-readable name given on /track
            # - repository_url: canonical https://github.com/<owner>/<repo> (UNIQUE)
            # - chat_id: owning Telegram chat
            # - created_at / updated_at: ISO-8601 UTC timestamps
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tracked_repositories (
                    id TEXT PRIMARY KEY NOT NULL,
                    repository_name TEXT NOT NULL,
                    repository_url TEXT NOT NULL UNIQUE,
                    chat_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_tracked_repositories_repository_name
                ON tracked_repositories(repository_name)
                """
            )
            # tracked_repository_releases caches the latest tag per repository.
            # Fields:
            # - tracked_repository_id: owning repository (PRIMARY KEY)
            # - tag_name: last tag observed
            # - first_seen_at: when tag_name last changed, not when it was last checked
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tracked_repository_releases (
                    tracked_repository_id TEXT PRIMARY KEY NOT NULL,
                    tag_name TEXT NOT NULL,
                    first_seen_at TEXT NOT NULL,
                    FOREIGN KEY (tracked_repository_id)
                        REFERENCES tracked_repositories(id) ON DELETE CASCADE
                )
                """
            )
            # subscriptions links repositories to every chat that wants notices.
            # Fields:
            # - tracked_repository_id / chat_id: composite PRIMARY KEY
            # - created_at: when the chat subscribed
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS subscriptions (
                    tracked_repository_id TEXT NOT NULL,
                    chat_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (tracked_repository_id, chat_id),
                    FOREIGN KEY (tracked_repository_id)
                        REFERENCES tracked_repositories(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_subscriptions_chat_id ON subscriptions(chat_id)"
            )

    # Tracked repositories

    def list_repositories(self) -> List[TrackedRepository]:
        """Return every tracked repository, newest first."""

        with self._session() as conn:
            rows = conn.execute(
                f"SELECT {_REPOSITORY_COLUMNS} FROM tracked_repositories ORDER BY created_at DESC"
            ).fetchall()
        return [_repository_from_row(row) for row in rows]

    def list_repositories_for_chat(self, chat_id: int) -> List[TrackedRepository]:
        """Return repositories owned by a chat, newest first."""

        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {_REPOSITORY_COLUMNS} FROM tracked_repositories
                WHERE chat_id = ?
                ORDER BY created_at DESC
                """,
                (chat_id,),
            ).fetchall()
        return [_repository_from_row(row) for row in rows]

    def get_repository(self, repository_id: str) -> Optional[TrackedRepository]:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {_REPOSITORY_COLUMNS} FROM tracked_repositories WHERE id = ?",
                (repository_id,),
            ).fetchone()
        return _repository_from_row(row) if row else None

    def get_repository_by_url(self, url: str) -> Optional[TrackedRepository]:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {_REPOSITORY_COLUMNS} FROM tracked_repositories WHERE repository_url = ?",
                (url,),
            ).fetchone()
        return _repository_from_row(row) if row else None

    def save_repository(self, repository: TrackedRepository) -> None:
        """Insert a repository or update it by id (created_at is kept)."""

        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO tracked_repositories (
                    id, repository_name, repository_url, chat_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    repository_name = excluded.repository_name,
                    repository_url = excluded.repository_url,
                    chat_id = excluded.chat_id,
                    updated_at = excluded.updated_at
                """,
                (
                    repository.id,
                    repository.name,
                    repository.url,
                    repository.chat_id,
                    _to_text(repository.created_at),
                    _to_text(repository.updated_at),
                ),
            )

    def delete_repository(self, repository_id: str) -> None:
        """Delete a repository; its cached tag and subscriptions cascade."""

        with self._session() as conn:
            conn.execute("DELETE FROM tracked_repositories WHERE id = ?", (repository_id,))

    # Tag cache

    def get_cached_tag(self, repository_id: str) -> Optional[CachedTag]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT tracked_repository_id, tag_name, first_seen_at
                FROM tracked_repository_releases
                WHERE tracked_repository_id = ?
                """,
                (repository_id,),
            ).fetchone()
        if not row:
            return None
        return CachedTag(
            repository_id=row["tracked_repository_id"],
            tag=row["tag_name"],
            first_seen_at=_from_text(row["first_seen_at"]),
        )

    def upsert_cached_tag(self, repository_id: str, tag: str, observed_at: datetime) -> Optional[str]:
        """Store ``tag`` and return the previous tag (None when inserted).

        first_seen_at only moves when the tag value changes; re-storing the
        same tag leaves it untouched.
        """

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT tag_name FROM tracked_repository_releases WHERE tracked_repository_id = ?",
                (repository_id,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO tracked_repository_releases (tracked_repository_id, tag_name, first_seen_at)
                VALUES (?, ?, ?)
                ON CONFLICT(tracked_repository_id) DO UPDATE SET
                    tag_name = excluded.tag_name,
                    first_seen_at = CASE
                        WHEN excluded.tag_name != tag_name THEN excluded.first_seen_at
                        ELSE first_seen_at
                    END
                """,
                (repository_id, tag, _to_text(observed_at)),
            )
        return row["tag_name"] if row else None

    # Subscriptions

    def subscribe(self, repository_id: str, chat_id: int) -> bool:
        """Subscribe a chat; return False if it was already subscribed."""

        now = datetime.now(timezone.utc)
        with self._session() as conn:
            cur = conn.execute(
                """
                INSERT INTO subscriptions (tracked_repository_id, chat_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(tracked_repository_id, chat_id) DO NOTHING
                """,
                (repository_id, chat_id, now.isoformat()),
            )
            return cur.rowcount == 1

    def unsubscribe(self, repository_id: str, chat_id: int) -> bool:
        """Remove a subscription; return False if there was none."""

        with self._session() as conn:
            cur = conn.execute(
                "DELETE FROM subscriptions WHERE tracked_repository_id = ? AND chat_id = ?",
                (repository_id, chat_id),
            )
            return cur.rowcount > 0

    def list_subscriber_ids(self, repository_id: str) -> Set[int]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT chat_id FROM subscriptions WHERE tracked_repository_id = ?",
                (repository_id,),
            ).fetchall()
        return {int(row["chat_id"]) for row in rows}

    def list_subscribed_repository_ids(self, chat_id: int) -> Set[str]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT tracked_repository_id FROM subscriptions WHERE chat_id = ?",
                (chat_id,),
            ).fetchall()
        return {row["tracked_repository_id"] for row in rows}
