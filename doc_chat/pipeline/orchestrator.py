from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from db.chat_repository import ChatRepository
from db.document_repository import DocumentRepository
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.src.document_chat.answer_stream import AnswerPipeline
from doc_chat.src.document_chat.retrieval import DocumentRetriever
from doc_chat.src.document_ingestion.data_ingestion import MAX_FILE_BYTES, DataIngestor
from doc_chat.utils.completion import LangChainCompletionClient
from doc_chat.utils.document_ops import SUPPORTED_MIME_TYPES
from doc_chat.utils.embedder import Embedder
from doc_chat.utils.file_io import LocalObjectStorage
from doc_chat.utils.model_loader import ModelLoader
from doc_chat.utils.rate_limiter import build_rate_limiter


class Orchestrator:
    """
    Wires the process-wide components:
      - Embedder + completion client (provider adapters)
      - DataIngestor (upload flow)
      - DocumentRetriever + AnswerPipeline (chat flow)
      - Rate limiter (consulted before either flow)
    """

    def __init__(
        self,
        config: dict,
        embedder: Embedder,
        completion,
        session_factory: async_sessionmaker,
        storage: Optional[LocalObjectStorage] = None,
        rate_limiter=None,
        redis_client=None,
    ):
        self.config = config
        self.embedder = embedder
        self.completion = completion

        self.chat_repo = ChatRepository()
        self.document_repo = DocumentRepository()

        ingestion_cfg = config.get("ingestion", {})
        chunking_cfg = config.get("chunking", {})

        self.storage = storage or LocalObjectStorage(ingestion_cfg.get("storage_dir", "data"))

        self.ingestor = DataIngestor(
            storage=self.storage,
            embedder=embedder,
            chat_repo=self.chat_repo,
            document_repo=self.document_repo,
            chunk_size=int(chunking_cfg.get("size", 1000)),
            chunk_overlap=int(chunking_cfg.get("overlap", 200)),
            max_file_bytes=int(ingestion_cfg.get("max_file_bytes", MAX_FILE_BYTES)),
            supported_mime_types=ingestion_cfg.get("supported_mime_types", SUPPORTED_MIME_TYPES),
        )

        self.retriever = DocumentRetriever(
            embedder=embedder,
            document_repo=self.document_repo,
            retriever_config=config.get("retriever", {}),
        )

        self.answer_pipeline = AnswerPipeline(
            retriever=self.retriever,
            completion=completion,
            session_factory=session_factory,
            chat_repo=self.chat_repo,
            queue_size=int(config.get("streaming", {}).get("queue_size", 64)),
        )

        self.rate_limiter = rate_limiter or build_rate_limiter(
            config.get("rate_limit", {}), redis_client=redis_client
        )

        log.info("Orchestrator initialized")

    @classmethod
    def from_config(cls, config: dict, session_factory: async_sessionmaker) -> "Orchestrator":
        """Build the production wiring: provider models come from ModelLoader."""
        loader = ModelLoader(config)
        emb_cfg = config.get("embedding_model", {})

        embedder = Embedder(
            loader.load_embeddings(),
            dimension=emb_cfg.get("dimension"),
            batch_size=int(emb_cfg.get("batch_size", 100)),
        )
        completion = LangChainCompletionClient(loader.load_llm("chat"))

        redis_client = None
        if config.get("rate_limit", {}).get("backend") == "redis":
            from redis_cache.redis_client import get_redis_client, redis_available

            redis_client = get_redis_client()
            if not redis_available(redis_client):
                log.warning("Redis unreachable at startup; rate limiter will admit requests")

        return cls(
            config=config,
            embedder=embedder,
            completion=completion,
            session_factory=session_factory,
            redis_client=redis_client,
        )
