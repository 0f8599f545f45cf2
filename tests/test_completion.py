"""
Tests for the LangChain-backed completion client.
"""
from contextlib import aclosing

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage

from doc_chat.exception.custom_exception import CompletionServiceError
from doc_chat.utils.completion import CompletionDelta, LangChainCompletionClient, _chunk_text


class ExplodingModel:
    def __init__(self):
        self.closed = False

    async def astream(self, messages):
        try:
            yield AIMessage(content="partial")
            raise RuntimeError("connection reset")
        finally:
            self.closed = True


MESSAGES = [
    {"role": "system", "content": "Be brief."},
    {"role": "user", "content": "hi"},
]


class TestStreamComplete:
    async def test_streams_deltas_then_done(self):
        llm = GenericFakeChatModel(messages=iter([AIMessage(content="hello there world")]))
        client = LangChainCompletionClient(llm)

        pieces = [p async for p in client.stream_complete(MESSAGES)]

        assert pieces[-1] == CompletionDelta(done=True)
        assert "".join(p.delta for p in pieces) == "hello there world"
        assert all(p.delta for p in pieces[:-1])

    async def test_provider_error_is_wrapped(self):
        model = ExplodingModel()
        client = LangChainCompletionClient(model)
        received = []

        with pytest.raises(CompletionServiceError):
            async for piece in client.stream_complete(MESSAGES):
                received.append(piece.delta)

        assert received == ["partial"]
        assert model.closed

    async def test_closing_early_closes_provider_stream(self):
        model = ExplodingModel()
        client = LangChainCompletionClient(model)

        async with aclosing(client.stream_complete(MESSAGES)) as stream:
            async for piece in stream:
                assert piece.delta == "partial"
                break

        assert model.closed


class TestChunkText:
    def test_string_content(self):
        assert _chunk_text("abc") == "abc"

    def test_content_parts(self):
        parts = ["a", {"type": "text", "text": "b"}, {"type": "image_url", "image_url": "x"}]

        assert _chunk_text(parts) == "ab"

    def test_unknown_content(self):
        assert _chunk_text(None) == ""
