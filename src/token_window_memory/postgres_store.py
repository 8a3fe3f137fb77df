"""
PostgreSQL-backed conversation store.

One row per conversation holds the whole message list as JSONB together with a
version counter. Every write is a single statement, so concurrent readers see
either the previous list or the new one, never a partial write.
"""

import logging
import math
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .errors import StoreUnavailable, VersionConflict
from .messages import Message, messages_from_dicts, messages_to_dicts
from .store import MemoryStore

logger = logging.getLogger(__name__)


def connect(dsn: str, timeout: float = 5.0) -> Connection:
    """Open an autocommit connection whose statements are bounded by ``timeout``."""
    try:
        return Connection.connect(
            dsn,
            autocommit=True,
            prepare_threshold=0,
            row_factory=dict_row,
            connect_timeout=max(1, math.ceil(timeout)),
            options=f"-c statement_timeout={int(timeout * 1000)}",
        )
    except psycopg.Error as e:
        raise StoreUnavailable(f"Failed to connect to PostgreSQL: {e}") from e


class PostgresMemoryStore(MemoryStore):
    """Stores conversation windows in the ``chat_memory`` table."""

    def __init__(self, pg_conn=None, dsn: str = "", timeout: float = 5.0):
        if pg_conn is None:
            if not dsn:
                raise ValueError("Either pg_conn or dsn is required")
            pg_conn = connect(dsn, timeout)
        self._pg_conn = pg_conn
        self.setup()

    def setup(self):
        """Create the chat_memory table if it does not exist."""
        with self._cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS chat_memory (
                    conversation_id TEXT PRIMARY KEY,
                    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
                    version BIGINT NOT NULL DEFAULT 1,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
            """)

    @contextmanager
    def _cursor(self):
        try:
            with self._pg_conn.cursor() as cur:
                yield cur
        except psycopg.Error as e:
            logger.warning("PostgreSQL store call failed: %s", e)
            raise StoreUnavailable(f"PostgreSQL store unavailable: {e}") from e

    def load_versioned(self, conversation_id: str) -> tuple[list[Message], int]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT messages, version FROM chat_memory WHERE conversation_id = %s",
                (conversation_id,),
            )
            row = cur.fetchone()
        if not row:
            return [], 0
        if isinstance(row, dict):
            data, version = row["messages"], row["version"]
        else:
            data, version = row[0], row[1]
        return messages_from_dicts(data or []), int(version)

    def append(self, conversation_id: str, message: Message) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO chat_memory (conversation_id, messages, version, updated_at)
                VALUES (%s, %s, 1, now())
                ON CONFLICT (conversation_id) DO UPDATE SET
                    messages = chat_memory.messages || EXCLUDED.messages,
                    version = chat_memory.version + 1,
                    updated_at = now()
                """,
                (conversation_id, Jsonb(messages_to_dicts([message]))),
            )

    def replace(
        self,
        conversation_id: str,
        messages: list[Message],
        expected_version: Optional[int] = None,
    ) -> None:
        payload = Jsonb(messages_to_dicts(messages))
        with self._cursor() as cur:
            if expected_version is None:
                cur.execute(
                    """
                    INSERT INTO chat_memory (conversation_id, messages, version, updated_at)
                    VALUES (%s, %s, 1, now())
                    ON CONFLICT (conversation_id) DO UPDATE SET
                        messages = EXCLUDED.messages,
                        version = chat_memory.version + 1,
                        updated_at = now()
                    """,
                    (conversation_id, payload),
                )
                return
            if expected_version == 0:
                cur.execute(
                    """
                    INSERT INTO chat_memory (conversation_id, messages, version, updated_at)
                    VALUES (%s, %s, 1, now())
                    ON CONFLICT (conversation_id) DO NOTHING
                    """,
                    (conversation_id, payload),
                )
            else:
                cur.execute(
                    """
                    UPDATE chat_memory
                    SET messages = %s, version = version + 1, updated_at = now()
                    WHERE conversation_id = %s AND version = %s
                    """,
                    (payload, conversation_id, expected_version),
                )
            updated = cur.rowcount
        if updated == 0:
            raise VersionConflict(conversation_id, expected_version)

    def delete(self, conversation_id: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM chat_memory WHERE conversation_id = %s",
                (conversation_id,),
            )
