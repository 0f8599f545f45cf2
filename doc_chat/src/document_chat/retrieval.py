import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from db.document_repository import ChunkRecord, DocumentRepository
from doc_chat.exception.custom_exception import PersistenceError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.embedder import Embedder


class RetrievalMode(str, Enum):
    SEMANTIC = "semantic"
    FALLBACK_ALL = "fallback-all"
    NONE = "none"


@dataclass(frozen=True)
class RetrievalResult:
    context_text: str
    chunk_count: int
    mode: RetrievalMode


@dataclass(frozen=True)
class ScoredChunk:
    id: str
    content: str
    file_name: str
    score: float


def cosine_sim(v1: Sequence[float], v2: Sequence[float]) -> float:
    if not v1 or not v2 or len(v1) != len(v2):
        return -1.0

    dot = sum(a * b for a, b in zip(v1, v2))

    norm1 = math.sqrt(sum(a * a for a in v1))
    norm2 = math.sqrt(sum(b * b for b in v2))

    if norm1 == 0 or norm2 == 0:
        return -1.0

    return dot / (norm1 * norm2)


def _join(contents: Sequence[str]) -> str:
    return "\n\n".join(contents)


class DocumentRetriever:
    """
    Conversation-scoped retrieval with two explicit paths:

    - semantic:     embed the query, rank stored chunk vectors by cosine
                    similarity, keep the top_k above a permissive threshold
    - fallback-all: semantic ranking failed or matched nothing, so every
                    loaded chunk (up to fallback_limit) becomes context

    A conversation with no chunks at all yields mode "none" and no context.
    retrieve() never raises: provider and store failures degrade the mode.
    """

    def __init__(
        self,
        embedder: Embedder,
        document_repo: Optional[DocumentRepository] = None,
        retriever_config: Optional[dict] = None,
    ):
        cfg = retriever_config or {}
        self.embedder = embedder
        self.document_repo = document_repo or DocumentRepository()
        self.fallback_limit = int(cfg.get("fallback_limit", 100))
        self.top_k = int(cfg.get("top_k", 15))
        self.similarity_threshold = float(cfg.get("similarity_threshold", 0.1))
        self.candidate_limit = int(cfg.get("candidate_limit", 1000))

        log.info(
            "DocumentRetriever initialized | top_k=%d | threshold=%.3f | fallback_limit=%d",
            self.top_k,
            self.similarity_threshold,
            self.fallback_limit,
        )

    async def semantic_rank(
        self, db: AsyncSession, conversation_id: str, query: str
    ) -> Optional[List[ScoredChunk]]:
        """
        Ranked matches above the threshold, best first.
        Returns None when ranking could not be performed at all.
        """
        try:
            query_vec = await self.embedder.embed_one(query)
            candidates = await self.document_repo.list_embedded_chunks(
                db, conversation_id, limit=self.candidate_limit
            )
        except Exception as e:
            log.warning(
                "Semantic ranking unavailable | conversation_id=%s | error=%s",
                conversation_id,
                str(e),
            )
            return None

        scored = [
            ScoredChunk(
                id=c.id,
                content=c.content,
                file_name=c.file_name,
                score=cosine_sim(query_vec, c.embedding),
            )
            for c in candidates
        ]
        matches = [s for s in scored if s.score >= self.similarity_threshold]
        # stable sort keeps document order among equal scores
        matches.sort(key=lambda s: s.score, reverse=True)

        log.info(
            "Semantic ranking done | conversation_id=%s | candidates=%d | matches=%d",
            conversation_id,
            len(candidates),
            len(matches),
        )
        return matches[: self.top_k]

    async def retrieve(
        self, db: AsyncSession, conversation_id: str, query: str
    ) -> RetrievalResult:
        # Step 1: does this conversation have any documents at all?
        try:
            records: List[ChunkRecord] = await self.document_repo.list_chunks(
                db, conversation_id, limit=self.fallback_limit
            )
        except PersistenceError as e:
            log.error(
                "Failed to load chunks, answering without documents | conversation_id=%s | error=%s",
                conversation_id,
                e.details(),
            )
            records = []

        if not records:
            log.info("No documents for conversation | conversation_id=%s", conversation_id)
            return RetrievalResult(context_text="", chunk_count=0, mode=RetrievalMode.NONE)

        # Step 2: semantic path
        matches = await self.semantic_rank(db, conversation_id, query)
        if matches:
            log.info(
                "Retrieved via semantic search | conversation_id=%s | chunks=%d",
                conversation_id,
                len(matches),
            )
            return RetrievalResult(
                context_text=_join([m.content for m in matches]),
                chunk_count=len(matches),
                mode=RetrievalMode.SEMANTIC,
            )

        # Step 3: fallback path
        log.info(
            "Semantic search found nothing, using all documents | conversation_id=%s | chunks=%d",
            conversation_id,
            len(records),
        )
        return RetrievalResult(
            context_text=_join([r.content for r in records]),
            chunk_count=len(records),
            mode=RetrievalMode.FALLBACK_ALL,
        )
