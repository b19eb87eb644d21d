from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Protocol

from .config import get_db_path

FALLBACK_SESSION_KEY = "mock-auth-session"
PROVIDER_SESSION_KEY = "provider-auth-session"
OAUTH_VERIFIER_KEY = "oauth-code-verifier"
CONFIG_NOTICE_DISMISSED_KEY = "config-notification-dismissed"

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS client_storage (
    scope_id TEXT NOT NULL,
    item_key TEXT NOT NULL,
    item_value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (scope_id, item_key)
);
"""


class ClientStorage(Protocol):
    """Per-browser string key-value store, the server-side stand-in for localStorage."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


@dataclass
class MemoryClientStorage:
    items: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.items.get(key)

    def set(self, key: str, value: str) -> None:
        self.items[key] = value

    def delete(self, key: str) -> None:
        self.items.pop(key, None)


def _connect() -> sqlite3.Connection:
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(CREATE_TABLE_SQL)


@dataclass
class SqliteClientStorage:
    scope_id: str

    def get(self, key: str) -> str | None:
        with _connect() as conn:
            _ensure_schema(conn)
            row = conn.execute(
                """
                SELECT item_value FROM client_storage
                WHERE scope_id = ? AND item_key = ?
                LIMIT 1
                """,
                (self.scope_id, key),
            ).fetchone()
        if row is None:
            return None
        return str(row["item_value"])

    def set(self, key: str, value: str) -> None:
        with _connect() as conn:
            _ensure_schema(conn)
            conn.execute(
                """
                INSERT INTO client_storage (scope_id, item_key, item_value)
                VALUES (?, ?, ?)
                ON CONFLICT (scope_id, item_key) DO UPDATE SET
                    item_value = excluded.item_value,
                    updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
                """,
                (self.scope_id, key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with _connect() as conn:
            _ensure_schema(conn)
            conn.execute(
                "DELETE FROM client_storage WHERE scope_id = ? AND item_key = ?",
                (self.scope_id, key),
            )
            conn.commit()
