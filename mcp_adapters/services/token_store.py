"""
Keyed storage for OAuth token records.

``InMemoryTokenStore`` is the process-lifetime default. ``SQLiteTokenStore``
keeps records across restarts with token material encrypted at rest.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

from mcp_adapters.models.oauth import TokenRecord
from mcp_adapters.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenStore(Protocol):
    """One live ``TokenRecord`` per client id; ``set`` replaces, never merges."""

    def get(self, client_id: str) -> Optional[TokenRecord]:
        ...

    def set(self, record: TokenRecord) -> None:
        ...

    def delete(self, client_id: str) -> bool:
        ...

    def clear(self) -> None:
        ...

    def __contains__(self, client_id: object) -> bool:
        ...


class InMemoryTokenStore:
    """Dictionary-backed store whose contents live as long as the process."""

    def __init__(self) -> None:
        self._records: Dict[str, TokenRecord] = {}

    def get(self, client_id: str) -> Optional[TokenRecord]:
        return self._records.get(client_id)

    def set(self, record: TokenRecord) -> None:
        self._records[record.client_id] = record

    def delete(self, client_id: str) -> bool:
        return self._records.pop(client_id, None) is not None

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class SQLiteTokenStore:
    """Token records in a single SQLite table, tokens encrypted with Fernet."""

    # Disk I/O; async callers run these methods in a worker thread.
    blocking = True

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    client_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL
                )
                """
            )

    def get(self, client_id: str) -> Optional[TokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM oauth_tokens WHERE client_id = ?", (client_id,)
            ).fetchone()
        if not row:
            return None
        data = json.loads(row["data"])
        data["access_token"] = self._cipher.decrypt(data.pop("access_token_encrypted"))
        data["refresh_token"] = self._cipher.decrypt_optional(
            data.pop("refresh_token_encrypted", None)
        )
        return TokenRecord.model_validate(data)

    def set(self, record: TokenRecord) -> None:
        data = record.model_dump(mode="json", exclude={"access_token", "refresh_token"})
        data["access_token_encrypted"] = self._cipher.encrypt(record.access_token)
        data["refresh_token_encrypted"] = self._cipher.encrypt_optional(record.refresh_token)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (client_id, data)
                VALUES (?, ?)
                ON CONFLICT(client_id) DO UPDATE SET data = excluded.data
                """,
                (record.client_id, json.dumps(data)),
            )

    def delete(self, client_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_tokens WHERE client_id = ?", (client_id,)
            )
        return cursor.rowcount > 0

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM oauth_tokens")
        logger.info("Cleared all persisted token records")

    def __contains__(self, client_id: object) -> bool:
        if not isinstance(client_id, str):
            return False
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM oauth_tokens WHERE client_id = ?", (client_id,)
            ).fetchone()
        return row is not None

    def client_ids(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT client_id FROM oauth_tokens ORDER BY client_id"
            ).fetchall()
        return [row["client_id"] for row in rows]

    def rotate_encryption(self) -> int:
        """Re-encrypt every stored token under the cipher's current secret."""
        rotated = 0
        with self._connect() as conn:
            rows = conn.execute("SELECT client_id, data FROM oauth_tokens").fetchall()
            for row in rows:
                data = json.loads(row["data"])
                data["access_token_encrypted"] = self._cipher.rotate(
                    data["access_token_encrypted"]
                )
                if data.get("refresh_token_encrypted"):
                    data["refresh_token_encrypted"] = self._cipher.rotate(
                        data["refresh_token_encrypted"]
                    )
                conn.execute(
                    "UPDATE oauth_tokens SET data = ? WHERE client_id = ?",
                    (json.dumps(data), row["client_id"]),
                )
                rotated += 1
        logger.info("Re-encrypted %s token records", rotated)
        return rotated


__all__ = ["InMemoryTokenStore", "SQLiteTokenStore", "TokenStore"]
