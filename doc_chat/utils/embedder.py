from typing import List, Optional, Sequence

from langchain_core.embeddings import Embeddings

from doc_chat.exception.custom_exception import EmbeddingServiceError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.thread_pool import run_sync


class Embedder:
    """
    Adapter over a LangChain `Embeddings` model.

    - embed_batch(texts) -> one vector per text, same order
    - embed_one(text)    -> a single vector

    Every call goes to the provider (no caching). Any provider failure,
    a short answer, or a vector of the wrong dimension is raised as
    EmbeddingServiceError so callers can decide how to degrade.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        dimension: Optional[int] = None,
        batch_size: int = 100,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.embeddings = embeddings
        self.dimension = dimension
        self.batch_size = batch_size

    def _check_vector(self, vector: Sequence[float]) -> List[float]:
        vec = [float(x) for x in vector]
        if self.dimension is None:
            self.dimension = len(vec)
        elif len(vec) != self.dimension:
            raise EmbeddingServiceError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(vec)}"
            )
        return vec

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        if not texts:
            return []

        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                raw = await run_sync(self.embeddings.embed_documents, batch)
            except Exception as e:
                log.error(
                    "Embedding batch failed | batch_start=%d | batch_size=%d | error=%s",
                    start,
                    len(batch),
                    str(e),
                )
                raise EmbeddingServiceError("Embedding service call failed", e) from e

            if len(raw) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedding service returned {len(raw)} vectors for {len(batch)} texts"
                )
            vectors.extend(self._check_vector(v) for v in raw)

        log.info("Embedded batch | texts=%d | dimension=%s", len(texts), self.dimension)
        return vectors

    async def embed_one(self, text: str) -> List[float]:
        try:
            raw = await run_sync(self.embeddings.embed_query, text)
        except Exception as e:
            log.error("Query embedding failed | error=%s", str(e))
            raise EmbeddingServiceError("Embedding service call failed", e) from e
        return self._check_vector(raw)
