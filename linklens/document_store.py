"""
Article and collection store using SQLite.

Reference implementation of the PersistenceGateway contract for local use
(CLI, tests, single-machine deployments). Rows are scoped by user id, the
same way the hosted backend scopes them with row-level security; the
gateway asks its ``user_provider`` for the current user on every call.

List-valued attributes (keywords, tags, collections) are stored as JSON.
Identifiers are generated here (UUID4 hex) and returned from inserts.
"""

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import AuthError, TransportError
from .protocol import LoadResult

UserProvider = Callable[[], Optional[str]]

ARTICLE_COLUMNS = (
    "url", "title", "source", "summary", "keywords", "tags", "category",
    "status", "starred", "rating", "collections", "memo", "date",
)
_JSON_COLUMNS = frozenset({"keywords", "tags", "collections"})
COLLECTION_COLUMNS = ("name", "color")


class DocumentStore:
    """
    SQLite-backed store for article and collection records.

    Blocking API; SQLiteGateway wraps it for the async client.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                url TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                source TEXT NOT NULL DEFAULT '',
                summary TEXT NOT NULL DEFAULT '',
                keywords TEXT NOT NULL DEFAULT '[]',
                tags TEXT NOT NULL DEFAULT '[]',
                category TEXT NOT NULL DEFAULT 'tech',
                status TEXT NOT NULL DEFAULT 'unread',
                starred INTEGER NOT NULL DEFAULT 0,
                rating INTEGER NOT NULL DEFAULT 0,
                collections TEXT NOT NULL DEFAULT '[]',
                memo TEXT NOT NULL DEFAULT '',
                date TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_articles_user
            ON articles(user_id, created_at)
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                color TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in _JSON_COLUMNS:
            return json.dumps(list(value or []), ensure_ascii=False)
        if column == "starred":
            return int(bool(value))
        return value

    @staticmethod
    def _article_from_row(row: sqlite3.Row) -> dict[str, Any]:
        record: dict[str, Any] = {"id": row["id"]}
        for column in ARTICLE_COLUMNS:
            value = row[column]
            if column in _JSON_COLUMNS:
                value = json.loads(value)
            elif column == "starred":
                value = bool(value)
            record[column] = value
        return record

    @staticmethod
    def _pick(fields: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Unknown fields: {sorted(unknown)}")
        return fields

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    def insert_article(self, user_id: str, record: dict[str, Any]) -> str:
        """Insert a new article row and return its generated id."""
        fields = self._pick(
            {k: v for k, v in record.items() if k in ARTICLE_COLUMNS},
            ARTICLE_COLUMNS,
        )
        new_id = uuid.uuid4().hex
        columns = ["id", "user_id", "created_at", *fields]
        values = [new_id, user_id, self._now(), *(self._encode(k, v) for k, v in fields.items())]
        placeholders = ", ".join("?" for _ in columns)
        with self._lock:
            self._conn.execute(
                f"INSERT INTO articles ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            self._conn.commit()
        return new_id

    def update_article(self, user_id: str, id: str, fields: dict[str, Any]) -> bool:
        """
        Update some attributes of an article.

        Returns:
            True if the article was found and updated, False otherwise
        """
        fields = self._pick(fields, ARTICLE_COLUMNS)
        if not fields:
            return False
        assignments = ", ".join(f"{k} = ?" for k in fields)
        values = [self._encode(k, v) for k, v in fields.items()]
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE articles SET {assignments} WHERE id = ? AND user_id = ?",
                [*values, id, user_id],
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def delete_article(self, user_id: str, id: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM articles WHERE id = ? AND user_id = ?",
                (id, user_id),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def list_articles(self, user_id: str) -> list[dict[str, Any]]:
        """All of a user's articles, most recently created first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM articles WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [self._article_from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def insert_collection(self, user_id: str, record: dict[str, Any]) -> str:
        fields = self._pick(
            {k: v for k, v in record.items() if k in COLLECTION_COLUMNS},
            COLLECTION_COLUMNS,
        )
        new_id = uuid.uuid4().hex
        with self._lock:
            self._conn.execute(
                "INSERT INTO collections (id, user_id, name, color, created_at) VALUES (?, ?, ?, ?, ?)",
                (new_id, user_id, fields.get("name", ""), fields.get("color", ""), self._now()),
            )
            self._conn.commit()
        return new_id

    def update_collection(self, user_id: str, id: str, fields: dict[str, Any]) -> bool:
        fields = self._pick(fields, COLLECTION_COLUMNS)
        if not fields:
            return False
        assignments = ", ".join(f"{k} = ?" for k in fields)
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE collections SET {assignments} WHERE id = ? AND user_id = ?",
                [*fields.values(), id, user_id],
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def delete_collection(self, user_id: str, id: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM collections WHERE id = ? AND user_id = ?",
                (id, user_id),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def list_collections(self, user_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, name, color FROM collections WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class SQLiteGateway:
    """
    PersistenceGateway over a local DocumentStore.

    Blocking SQLite calls run on a worker thread so the event loop keeps
    serving timers and other tasks while a write is in progress.
    """

    def __init__(self, store: DocumentStore, user_provider: UserProvider):
        self._store = store
        self._user_provider = user_provider

    def _user(self) -> str:
        user_id = self._user_provider()
        if not user_id:
            raise AuthError("Not signed in")
        return user_id

    async def _call(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise TransportError(f"Storage error: {e}") from e

    async def insert_article(self, record: dict[str, Any]) -> str:
        return await self._call(self._store.insert_article, self._user(), record)

    async def update_article(self, id: str, fields: dict[str, Any]) -> None:
        if not await self._call(self._store.update_article, self._user(), id, fields):
            raise TransportError(f"Article not found: {id}")

    async def delete_article(self, id: str) -> None:
        if not await self._call(self._store.delete_article, self._user(), id):
            raise TransportError(f"Article not found: {id}")

    async def insert_collection(self, record: dict[str, Any]) -> str:
        return await self._call(self._store.insert_collection, self._user(), record)

    async def update_collection(self, id: str, fields: dict[str, Any]) -> None:
        if not await self._call(self._store.update_collection, self._user(), id, fields):
            raise TransportError(f"Collection not found: {id}")

    async def delete_collection(self, id: str) -> None:
        if not await self._call(self._store.delete_collection, self._user(), id):
            raise TransportError(f"Collection not found: {id}")

    async def load_all(self) -> LoadResult:
        user_id = self._user()
        articles = await self._call(self._store.list_articles, user_id)
        collections = await self._call(self._store.list_collections, user_id)
        return LoadResult(articles=articles, collections=collections)
