from dataclasses import dataclass
from typing import List, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from doc_chat.exception.custom_exception import PersistenceError
from doc_chat.logger import GLOBAL_LOGGER as log

from .chat_repository import commit_or_raise
from .models import DocumentChunk


@dataclass(frozen=True)
class ChunkRecord:
    id: str
    content: str
    file_name: str


@dataclass(frozen=True)
class EmbeddedChunkRecord:
    id: str
    content: str
    file_name: str
    embedding: List[float]


class DocumentRepository:
    """
    Append-only access to document chunks. Chunks are written in one
    transaction per ingestion and never updated.
    """

    async def add_chunks(self, db: AsyncSession, chunks: Sequence[DocumentChunk]) -> int:
        if not chunks:
            return 0
        try:
            db.add_all(chunks)
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError("Failed to stage document chunks", e) from e
        await commit_or_raise(db, "store document chunks")

        log.info(
            "Chunks persisted | conversation_id=%s | count=%d",
            chunks[0].conversation_id,
            len(chunks),
        )
        return len(chunks)

    async def list_chunks(
        self, db: AsyncSession, conversation_id: str, limit: int
    ) -> List[ChunkRecord]:
        try:
            out = await db.execute(
                select(DocumentChunk.id, DocumentChunk.content, DocumentChunk.file_name)
                .where(DocumentChunk.conversation_id == conversation_id)
                .order_by(DocumentChunk.created_at, DocumentChunk.id)
                .limit(limit)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load document chunks", e) from e
        return [ChunkRecord(id=r.id, content=r.content, file_name=r.file_name) for r in out]

    async def list_embedded_chunks(
        self, db: AsyncSession, conversation_id: str, limit: int
    ) -> List[EmbeddedChunkRecord]:
        try:
            out = await db.execute(
                select(
                    DocumentChunk.id,
                    DocumentChunk.content,
                    DocumentChunk.file_name,
                    DocumentChunk.embedding,
                )
                .where(DocumentChunk.conversation_id == conversation_id)
                .order_by(DocumentChunk.created_at, DocumentChunk.id)
                .limit(limit)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load chunk embeddings", e) from e
        return [
            EmbeddedChunkRecord(
                id=r.id,
                content=r.content,
                file_name=r.file_name,
                embedding=list(r.embedding or []),
            )
            for r in out
        ]

    async def count_chunks(self, db: AsyncSession, conversation_id: str) -> int:
        out = await db.execute(
            select(func.count())
            .select_from(DocumentChunk)
            .where(DocumentChunk.conversation_id == conversation_id)
        )
        return int(out.scalar_one())
