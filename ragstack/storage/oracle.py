"""Oracle Database adapters (python-oracledb, async API).

Both stores open their own connection in ``init()``. ``init()`` recreates
the tables, so every build of the RAG backend starts from empty storage.
Table names come from configuration; values always go through bind
variables.
"""

from __future__ import annotations

import array
import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

import oracledb

from ragstack.storage.base import (
    Conversation,
    ConversationEntry,
    ExtractChunk,
    InsertChunk,
    LoaderEntry,
    MetadataStore,
    VectorStore,
)

if TYPE_CHECKING:
    from ragstack.config import DatabaseConfig

logger = logging.getLogger(__name__)


class _OracleConnection:
    """Connection handling shared by both stores."""

    def __init__(self, db: DatabaseConfig) -> None:
        self.db = db
        self._connection: oracledb.AsyncConnection | None = None

    async def _connect(self) -> None:
        mode = oracledb.AUTH_MODE_SYSDBA if self.db.sysdba else oracledb.AUTH_MODE_DEFAULT
        self._connection = await oracledb.connect_async(
            user=self.db.user, password=self.db.password, dsn=self.db.dsn, mode=mode
        )
        self._connection.autocommit = True

    @property
    def connection(self) -> oracledb.AsyncConnection:
        if self._connection is None:
            raise RuntimeError("connection not initialized")
        return self._connection

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


class OracleStore(_OracleConnection, MetadataStore):
    """Loader metadata, loader custom values and conversations."""

    def __init__(self, db: DatabaseConfig) -> None:
        super().__init__(db)
        self.loaders = db.loaders_table
        self.conversations = db.conversations_table
        self.custom = db.loader_custom_data_table

    async def init(self) -> None:
        await self._connect()
        conn = self.connection

        logger.debug(f"Creating table '{self.conversations}'")
        await conn.execute(f"DROP TABLE IF EXISTS {self.conversations}")
        await conn.execute(
            f"""CREATE TABLE {self.conversations} (
                id              VARCHAR2(400) PRIMARY KEY,
                conversationId  VARCHAR2(400) NOT NULL,
                content         VARCHAR2(4000) NOT NULL,
                createdAt       VARCHAR2(400) NOT NULL,
                actor           VARCHAR2(400) NOT NULL,
                sources         VARCHAR2(4000)
            )"""
        )
        await conn.execute(
            f"CREATE INDEX {self.conversations}_index ON {self.conversations} (conversationId)"
        )

        logger.debug(f"Creating table '{self.loaders}'")
        await conn.execute(f"DROP TABLE IF EXISTS {self.loaders}")
        await conn.execute(
            f"""CREATE TABLE {self.loaders} (
                id              VARCHAR2(400) PRIMARY KEY,
                type            VARCHAR2(400) NOT NULL,
                chunksProcessed INTEGER,
                metadata        VARCHAR2(4000)
            )"""
        )

        logger.debug(f"Creating table '{self.custom}'")
        await conn.execute(f"DROP TABLE IF EXISTS {self.custom}")
        await conn.execute(
            f"""CREATE TABLE {self.custom} (
                customKey       VARCHAR2(400) PRIMARY KEY,
                loaderId        VARCHAR2(400) NOT NULL,
                value           VARCHAR2(4000)
            )"""
        )
        await conn.execute(f"CREATE INDEX {self.custom}_index ON {self.custom} (loaderId)")

    # -- loaders -------------------------------------------------------------

    async def add_loader_metadata(self, loader_id: str, value: LoaderEntry) -> None:
        await self.connection.execute(f"DELETE FROM {self.loaders} WHERE id = :1", [loader_id])
        await self.connection.execute(
            f"INSERT INTO {self.loaders} (id, type, chunksProcessed, metadata) "
            f"VALUES (:1, :2, :3, :4)",
            [loader_id, value.type, value.chunks_processed, json.dumps(value.loader_metadata)],
        )

    async def get_loader_metadata(self, loader_id: str) -> LoaderEntry:
        row = await self.connection.fetchone(
            f"SELECT type, chunksProcessed, metadata FROM {self.loaders} WHERE id = :1",
            [loader_id],
        )
        if row is None:
            raise KeyError(f"Unknown loader '{loader_id}'")
        return LoaderEntry(
            unique_id=loader_id,
            type=row[0],
            chunks_processed=int(row[1] or 0),
            loader_metadata=json.loads(row[2]) if row[2] else {},
        )

    async def has_loader_metadata(self, loader_id: str) -> bool:
        row = await self.connection.fetchone(
            f"SELECT id FROM {self.loaders} WHERE id = :1", [loader_id]
        )
        return row is not None

    async def get_all_loader_metadata(self) -> list[LoaderEntry]:
        rows = await self.connection.fetchall(
            f"SELECT id, type, chunksProcessed, metadata FROM {self.loaders}"
        )
        return [
            LoaderEntry(
                unique_id=row[0],
                type=row[1],
                chunks_processed=int(row[2] or 0),
                loader_metadata=json.loads(row[3]) if row[3] else {},
            )
            for row in rows
        ]

    async def loader_custom_set(self, loader_id: str, key: str, value: dict[str, Any]) -> None:
        await self.loader_custom_delete(key)
        await self.connection.execute(
            f"INSERT INTO {self.custom} (customKey, loaderId, value) VALUES (:1, :2, :3)",
            [key, loader_id, json.dumps(value)],
        )

    async def loader_custom_get(self, key: str) -> dict[str, Any]:
        row = await self.connection.fetchone(
            f"SELECT value FROM {self.custom} WHERE customKey = :1", [key]
        )
        return json.loads(row[0]) if row and row[0] else {}

    async def loader_custom_has(self, key: str) -> bool:
        row = await self.connection.fetchone(
            f"SELECT customKey FROM {self.custom} WHERE customKey = :1", [key]
        )
        return row is not None

    async def loader_custom_delete(self, key: str) -> None:
        await self.connection.execute(f"DELETE FROM {self.custom} WHERE customKey = :1", [key])

    async def delete_loader_metadata_and_custom_values(self, loader_id: str) -> None:
        await self.connection.execute(f"DELETE FROM {self.loaders} WHERE id = :1", [loader_id])
        await self.connection.execute(
            f"DELETE FROM {self.custom} WHERE loaderId = :1", [loader_id]
        )

    # -- conversations -------------------------------------------------------

    async def add_conversation(self, conversation_id: str) -> None:
        # Conversations exist implicitly through their entries.
        return None

    async def get_conversation(self, conversation_id: str) -> Conversation:
        rows = await self.connection.fetchall(
            f"SELECT id, content, createdAt, actor, sources FROM {self.conversations} "
            f"WHERE conversationId = :1 ORDER BY createdAt",
            [conversation_id],
        )
        return Conversation(
            conversation_id=conversation_id,
            entries=[
                ConversationEntry(
                    id=row[0],
                    content=row[1],
                    timestamp=datetime.fromisoformat(row[2]),
                    actor=row[3],
                    sources=json.loads(row[4]) if row[4] else [],
                )
                for row in rows
            ],
        )

    async def has_conversation(self, conversation_id: str) -> bool:
        row = await self.connection.fetchone(
            f"SELECT id FROM {self.conversations} WHERE conversationId = :1 "
            f"FETCH FIRST 1 ROWS ONLY",
            [conversation_id],
        )
        return row is not None

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.connection.execute(
            f"DELETE FROM {self.conversations} WHERE conversationId = :1", [conversation_id]
        )

    async def add_entry_to_conversation(
        self, conversation_id: str, entry: ConversationEntry
    ) -> None:
        sources = json.dumps(entry.sources) if entry.actor == "AI" else None
        await self.connection.execute(
            f"INSERT INTO {self.conversations} "
            f"(id, conversationId, content, createdAt, actor, sources) "
            f"VALUES (:1, :2, :3, :4, :5, :6)",
            [
                entry.id,
                conversation_id,
                entry.content,
                entry.timestamp.isoformat(),
                entry.actor,
                sources,
            ],
        )

    async def clear_conversations(self) -> None:
        await self.connection.execute(f"DELETE FROM {self.conversations}")


class OracleVectorStore(_OracleConnection, VectorStore):
    """Chunks with a FLOAT32 VECTOR column, searched by cosine distance."""

    def __init__(self, db: DatabaseConfig) -> None:
        super().__init__(db)
        self.table = db.vector_table

    async def init(self, dimensions: int) -> None:
        await self._connect()
        await self.connection.execute(f"DROP TABLE IF EXISTS {self.table}")
        await self.connection.execute(
            f"""CREATE TABLE {self.table} (
                id              VARCHAR2(400) PRIMARY KEY,
                pageContent     VARCHAR2(4000),
                uniqueLoaderId  VARCHAR2(400) NOT NULL,
                source          VARCHAR2(400) NOT NULL,
                vector          VECTOR({int(dimensions)}, FLOAT32),
                metadata        VARCHAR2(4000)
            )"""
        )

    async def insert_chunks(self, chunks: list[InsertChunk]) -> int:
        if not chunks:
            return 0
        batch = [
            [
                chunk.metadata["id"],
                chunk.page_content,
                chunk.metadata["unique_loader_id"],
                chunk.metadata["source"],
                array.array("f", chunk.vector),
                json.dumps(chunk.metadata),
            ]
            for chunk in chunks
        ]
        logger.debug(f"Inserting {len(batch)} chunks into '{self.table}'")
        with self.connection.cursor() as cursor:
            await cursor.executemany(
                f"INSERT INTO {self.table} "
                f"(id, pageContent, uniqueLoaderId, source, vector, metadata) "
                f"VALUES (:1, :2, :3, :4, :5, :6)",
                batch,
            )
            return cursor.rowcount

    async def similarity_search(self, query: list[float], k: int) -> list[ExtractChunk]:
        vector = array.array("f", query)
        rows = await self.connection.fetchall(
            f"SELECT pageContent, metadata, VECTOR_DISTANCE(vector, :1, COSINE) AS distance "
            f"FROM {self.table} "
            f"ORDER BY distance ASC "
            f"FETCH FIRST {int(k)} ROWS ONLY",
            [vector],
        )
        return [
            ExtractChunk(
                page_content=row[0] or "",
                metadata=json.loads(row[1]) if row[1] else {},
                score=abs(1 - float(row[2])),
            )
            for row in rows
        ]

    async def get_vector_count(self) -> int:
        row = await self.connection.fetchone(f"SELECT COUNT(id) FROM {self.table}")
        return int(row[0]) if row else 0

    async def delete_keys(self, unique_loader_id: str) -> bool:
        await self.connection.execute(
            f"DELETE FROM {self.table} WHERE uniqueLoaderId = :1", [unique_loader_id]
        )
        return True

    async def reset(self) -> None:
        await self.connection.execute(f"DELETE FROM {self.table}")
