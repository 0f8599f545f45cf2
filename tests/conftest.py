"""
Pytest configuration for the document chat test suite.

Provides:
- a file-backed SQLite database (aiosqlite) per test
- deterministic provider fakes (embeddings + completion streams)
"""
import os

# db.database builds its engine at import time; keep it off Postgres in tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import asyncio
import io
import re
from typing import Dict, List, Optional

import pytest
from langchain_core.embeddings import Embeddings
from pypdf import PdfWriter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.chat_repository import ChatRepository
from db.models import Base, DocumentChunk
from doc_chat.exception.custom_exception import CompletionServiceError
from doc_chat.utils.completion import CompletionDelta
from doc_chat.utils.ids import generate_chunk_id

DIM = 1024

# word -> axis, shared by every fake so stored and query vectors agree
_VOCABULARY: Dict[str, int] = {}


class KeywordEmbeddings(Embeddings):
    """Bag-of-words vectors: texts sharing words have positive cosine similarity."""

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.document_calls: List[List[str]] = []
        self.query_calls: List[str] = []

    def _vec(self, text: str) -> List[float]:
        vec = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            idx = _VOCABULARY.setdefault(word, len(_VOCABULARY)) % self.dim
            vec[idx] += 1.0
        return vec

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls.append(list(texts))
        return [self._vec(t) for t in texts]

    def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        return self._vec(text)


class FailingEmbeddings(Embeddings):
    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("embedding provider down")

    def embed_query(self, text: str) -> List[float]:
        raise RuntimeError("embedding provider down")


class ScriptedCompletion:
    """
    Completion capability fake.

    deltas     -> text pieces streamed in order
    fail_after -> raise after this many pieces
    hang       -> never finish after the pieces (until closed)
    """

    def __init__(self, deltas, fail_after: Optional[int] = None, hang: bool = False):
        self.deltas = list(deltas)
        self.fail_after = fail_after
        self.hang = hang
        self.calls = []
        self.closed = 0

    async def stream_complete(self, messages):
        self.calls.append(messages)
        try:
            for i, d in enumerate(self.deltas):
                if self.fail_after is not None and i == self.fail_after:
                    raise CompletionServiceError("provider exploded")
                yield CompletionDelta(delta=d)
                await asyncio.sleep(0)
            if self.fail_after is not None and self.fail_after >= len(self.deltas):
                raise CompletionServiceError("provider exploded")
            if self.hang:
                await asyncio.Event().wait()
            yield CompletionDelta(done=True)
        finally:
            self.closed += 1


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def conversation(db):
    return await ChatRepository().create_conversation(
        db, "owner-1", title="Test chat", conversation_id="conv-1"
    )


@pytest.fixture
def keyword_embeddings():
    return KeywordEmbeddings()


async def store_chunks(db, conversation_id, contents, embeddings=None, file_name="doc.txt"):
    """Insert chunk rows directly, embedding them with the keyword fake."""
    embeddings = embeddings or KeywordEmbeddings()
    vectors = embeddings.embed_documents(list(contents))
    rows = [
        DocumentChunk(
            id=generate_chunk_id(conversation_id, i),
            conversation_id=conversation_id,
            file_name=file_name,
            content=text,
            chunk_metadata={"position": i},
            embedding=vec,
        )
        for i, (text, vec) in enumerate(zip(contents, vectors))
    ]
    db.add_all(rows)
    await db.commit()
    return rows


def blank_pdf(pages: int = 2) -> bytes:
    """A valid PDF whose pages carry no text layer."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()
