from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.chat_repository import ChatRepository
from db.document_repository import DocumentRepository
from db.models import DocumentChunk
from doc_chat.exception.custom_exception import (
    EmptyDocumentError,
    FileTooLargeError,
    PersistenceError,
    UnsupportedFileTypeError,
)
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.src.document_ingestion.chunker import BoundaryTextSplitter
from doc_chat.utils.document_ops import SUPPORTED_MIME_TYPES, extract_text, normalize_mime_type
from doc_chat.utils.embedder import Embedder
from doc_chat.utils.file_io import LocalObjectStorage, build_storage_path
from doc_chat.utils.ids import generate_chunk_id

MAX_FILE_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class IngestionResult:
    file_name: str
    chunk_count: int
    storage_path: str


class DataIngestor:
    """
    Ingest one uploaded document into a conversation's searchable chunks.

    - reject oversized / unsupported files before any side effect
    - store raw bytes in object storage and record the upload
    - extract text (PDF or plain text)
    - chunk, embed all chunks in one batch, persist them in one transaction
    """

    def __init__(
        self,
        storage: LocalObjectStorage,
        embedder: Embedder,
        chat_repo: Optional[ChatRepository] = None,
        document_repo: Optional[DocumentRepository] = None,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        max_file_bytes: int = MAX_FILE_BYTES,
        supported_mime_types: Iterable[str] = SUPPORTED_MIME_TYPES,
    ):
        self.storage = storage
        self.embedder = embedder
        self.chat_repo = chat_repo or ChatRepository()
        self.document_repo = document_repo or DocumentRepository()
        self.splitter = BoundaryTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.max_file_bytes = max_file_bytes
        self.supported_mime_types = {normalize_mime_type(m) for m in supported_mime_types}

        log.info(
            "DataIngestor initialized | chunk_size=%d | chunk_overlap=%d | max_file_bytes=%d",
            chunk_size,
            chunk_overlap,
            max_file_bytes,
        )

    def validate(self, data: bytes, mime_type: str) -> None:
        """Checks that need no side effect: size cap and supported type."""
        if len(data) > self.max_file_bytes:
            limit_mb = self.max_file_bytes / (1024 * 1024)
            raise FileTooLargeError(f"File size exceeds {limit_mb:g}MB limit")

        if normalize_mime_type(mime_type) not in self.supported_mime_types:
            raise UnsupportedFileTypeError(
                "Unsupported file type. Please upload a PDF or TXT file."
            )

    async def _record_upload(
        self,
        db: AsyncSession,
        conversation_id: str,
        file_name: str,
        storage_path: str,
        byte_size: int,
        mime_type: str,
    ) -> None:
        # Tracking the file is best-effort: the stored bytes are what matter
        try:
            await self.chat_repo.add_uploaded_file(
                db,
                conversation_id=conversation_id,
                file_name=file_name,
                storage_path=storage_path,
                byte_size=byte_size,
                mime_type=mime_type,
            )
        except PersistenceError as e:
            log.warning(
                "File tracking insert failed, continuing ingestion | conversation_id=%s | file=%s | error=%s",
                conversation_id,
                file_name,
                e.details(),
            )

    async def ingest(
        self,
        db: AsyncSession,
        *,
        data: bytes,
        file_name: str,
        mime_type: str,
        conversation_id: str,
        owner_id: str,
    ) -> IngestionResult:
        log.info(
            "Starting ingestion | conversation_id=%s | file=%s | bytes=%d | mime=%s",
            conversation_id,
            file_name,
            len(data),
            mime_type,
        )

        # Step 1: size / type checks
        self.validate(data, mime_type)
        mime = normalize_mime_type(mime_type)

        # Step 2: persist raw bytes, then track the upload
        storage_path = build_storage_path(owner_id, conversation_id, file_name)
        await self.storage.put(storage_path, data)
        await self._record_upload(
            db, conversation_id, file_name, storage_path, len(data), mime
        )

        # Step 3: text extraction
        text = await extract_text(data, mime, file_name=file_name)

        # Step 4: blank documents are rejected
        text = text.strip()
        if not text:
            raise EmptyDocumentError("File is empty")

        # Step 5: chunk -> embed (one batch) -> persist (one transaction)
        documents = self.splitter.create_documents([text], metadatas=[{"source": file_name}])
        log.info("Document chunked | file=%s | chunks=%d", file_name, len(documents))

        vectors = await self.embedder.embed_batch([d.page_content for d in documents])

        rows = [
            DocumentChunk(
                id=generate_chunk_id(conversation_id, position),
                conversation_id=conversation_id,
                file_name=file_name,
                content=doc.page_content,
                chunk_metadata={**doc.metadata, "position": position},
                embedding=vec,
            )
            for position, (doc, vec) in enumerate(zip(documents, vectors))
        ]

        try:
            await self.document_repo.add_chunks(db, rows)
        except PersistenceError:
            log.error(
                "Chunk persistence failed; uploaded file kept for re-ingestion | conversation_id=%s | file=%s | path=%s",
                conversation_id,
                file_name,
                storage_path,
            )
            raise

        log.info(
            "Ingestion complete | conversation_id=%s | file=%s | chunks=%d",
            conversation_id,
            file_name,
            len(rows),
        )
        return IngestionResult(
            file_name=file_name, chunk_count=len(rows), storage_path=storage_path
        )
