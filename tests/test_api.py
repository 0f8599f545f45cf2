"""
End-to-end tests of the HTTP surface with in-process fakes for the
embedding and completion providers.
"""
import json

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import get_orchestrator
from api.main import app
from db.database import get_db
from doc_chat.pipeline.orchestrator import Orchestrator
from doc_chat.utils.embedder import Embedder
from doc_chat.utils.file_io import LocalObjectStorage
from doc_chat.utils.rate_limiter import RateLimiter
from tests.conftest import ScriptedCompletion

TEST_CONFIG = {
    "chunking": {"size": 1000, "overlap": 200},
    "ingestion": {"max_file_bytes": 4096},
    "retriever": {"fallback_limit": 100, "top_k": 15, "similarity_threshold": 0.1},
    "streaming": {"queue_size": 8},
}

ALICE = {"X-User-Id": "alice"}
BOB = {"Authorization": "Bearer bob"}


@pytest.fixture
def completion():
    return ScriptedCompletion(["Here is ", "a summary."])


@pytest.fixture
def orchestrator(session_factory, keyword_embeddings, completion, tmp_path):
    return Orchestrator(
        config=TEST_CONFIG,
        embedder=Embedder(keyword_embeddings),
        completion=completion,
        session_factory=session_factory,
        storage=LocalObjectStorage(tmp_path / "uploads"),
        rate_limiter=RateLimiter(max_requests=5, window_seconds=60),
    )


@pytest.fixture
async def client(session_factory, orchestrator):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def sse_events(body: str):
    """Split an SSE body into payloads: dicts, or the literal [DONE]."""
    events = []
    for frame in body.split("\n\n"):
        if not frame.startswith("data: "):
            continue
        payload = frame[len("data: "):]
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


async def upload(client, content: bytes, *, name="notes.txt", mime="text/plain",
                 conversation_id="conv-a", headers=ALICE):
    return await client.post(
        "/upload",
        files={"file": (name, content, mime)},
        data={"conversationId": conversation_id},
        headers=headers,
    )


async def chat(client, text, conversation_id="conv-a", headers=ALICE, prior=()):
    messages = list(prior) + [{"role": "user", "content": text}]
    return await client.post(
        "/chat",
        json={"conversationId": conversation_id, "messages": messages},
        headers=headers,
    )


class TestHealth:
    async def test_health(self, client):
        res = await client.get("/health")

        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_root(self, client):
        assert (await client.get("/")).status_code == 200


class TestAuth:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/conversations"),
            ("get", "/messages/conv-a"),
            ("get", "/files/conv-a"),
            ("get", "/debug/conv-a"),
        ],
    )
    async def test_requires_owner(self, client, method, path):
        res = await getattr(client, method)(path)

        assert res.status_code == 401
        assert res.json() == {"error": "Unauthorized"}

    async def test_chat_requires_owner(self, client):
        res = await chat(client, "hi", headers={})

        assert res.status_code == 401

    async def test_upload_requires_owner(self, client):
        res = await upload(client, b"hello", headers={})

        assert res.status_code == 401


class TestUpload:
    async def test_text_upload(self, client):
        res = await upload(client, b"A fifty character note about quarterly results ok.")

        assert res.status_code == 200
        assert res.json() == {"success": True, "fileName": "notes.txt", "chunkCount": 1}

        files = (await client.get("/files/conv-a", headers=ALICE)).json()
        assert [(f["fileName"], f["mimeType"]) for f in files] == [("notes.txt", "text/plain")]

        debug = (await client.get("/debug/conv-a", headers=ALICE)).json()
        assert debug["filesUploaded"] == 1
        assert debug["documentChunks"] == 1
        assert debug["sampleChunks"][0]["contentPreview"].endswith("...")

    async def test_missing_file(self, client):
        res = await client.post("/upload", data={"conversationId": "conv-a"}, headers=ALICE)

        assert res.status_code == 400
        assert res.json() == {"error": "Missing file or conversationId"}

    async def test_missing_conversation_id(self, client):
        res = await client.post(
            "/upload", files={"file": ("a.txt", b"hello", "text/plain")}, headers=ALICE
        )

        assert res.status_code == 400
        assert res.json() == {"error": "Missing file or conversationId"}

    async def test_unsupported_type(self, client):
        res = await upload(client, b"\x89PNG", name="a.png", mime="image/png")

        assert res.status_code == 400
        assert "Unsupported file type" in res.json()["error"]

    async def test_too_large(self, client):
        res = await upload(client, b"a" * 5000)

        assert res.status_code == 400
        assert "exceeds" in res.json()["error"]

    async def test_blank_file(self, client):
        res = await upload(client, b"   \n  ")

        assert res.status_code == 400
        assert res.json() == {"error": "File is empty"}

    async def test_foreign_conversation(self, client):
        await upload(client, b"alice's notes")

        res = await upload(client, b"bob's notes", headers=BOB)

        assert res.status_code == 404


class TestChat:
    async def test_summarize_uploaded_document(self, client, completion):
        await upload(client, b"A fifty character note about quarterly results ok.")

        res = await chat(client, "summarize")

        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/event-stream")
        assert res.headers["x-retrieval-mode"] in ("semantic", "fallback-all")
        assert sse_events(res.text) == [
            {"content": "Here is "},
            {"content": "a summary."},
            "[DONE]",
        ]

        system = completion.calls[0][0]
        assert system["role"] == "system"
        assert "(1 sections)" in system["content"]
        assert "quarterly results" in system["content"]

        messages = (await client.get("/messages/conv-a", headers=ALICE)).json()
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "summarize"),
            ("assistant", "Here is a summary."),
        ]

    async def test_chat_without_documents(self, client, completion):
        res = await chat(client, "what is in my file?", conversation_id="conv-empty")

        assert res.headers["x-retrieval-mode"] == "none"
        assert sse_events(res.text)[-1] == "[DONE]"
        assert "No documents have been uploaded" in completion.calls[0][0]["content"]

    async def test_prior_messages_are_forwarded(self, client, completion):
        prior = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
        ]

        await chat(client, "second", prior=prior)

        sent = completion.calls[0]
        assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]
        assert sent[-1]["content"] == "second"

    async def test_conversation_created_on_first_chat(self, client):
        await chat(client, "A question that becomes the title of this chat", conversation_id="conv-new")

        conversations = (await client.get("/conversations", headers=ALICE)).json()
        assert [(c["id"], c["title"]) for c in conversations] == [
            ("conv-new", "A question that becomes the title of this chat")
        ]

    async def test_rate_limited_after_five(self, client):
        statuses = [(await chat(client, f"q{i}")).status_code for i in range(6)]

        assert statuses == [200] * 5 + [429]
        assert (await chat(client, "bob's turn", conversation_id="conv-b", headers=BOB)).status_code == 200

    async def test_rejected_input_does_not_spend_rate_limit(self, client):
        for _ in range(5):
            assert (await chat(client, "   ")).status_code == 400
        malformed = await client.post("/chat", json={"messages": []}, headers=ALICE)
        assert malformed.status_code == 422

        statuses = [(await chat(client, f"q{i}")).status_code for i in range(6)]

        assert statuses == [200] * 5 + [429]

    async def test_rate_limit_error_body(self, client):
        for i in range(5):
            await chat(client, f"q{i}")

        res = await chat(client, "one more")

        assert res.json() == {"error": "Rate limit exceeded. Please try again later."}

    async def test_last_message_must_be_user(self, client):
        res = await client.post(
            "/chat",
            json={"conversationId": "conv-a", "messages": [{"role": "assistant", "content": "hi"}]},
            headers=ALICE,
        )

        assert res.status_code == 400

    async def test_blank_message(self, client):
        res = await chat(client, "   ")

        assert res.status_code == 400

    async def test_provider_failure_emits_error_event(self, client, orchestrator):
        orchestrator.answer_pipeline.completion = ScriptedCompletion(["partial"], fail_after=1)

        res = await chat(client, "explain")

        events = sse_events(res.text)
        assert events == [{"content": "partial"}, {"error": "provider exploded"}]

        messages = (await client.get("/messages/conv-a", headers=ALICE)).json()
        assert [m["role"] for m in messages] == ["user"]

    async def test_other_owner_cannot_read_messages(self, client):
        await chat(client, "private")

        res = await client.get("/messages/conv-a", headers=BOB)

        assert res.status_code == 404
        assert res.json() == {"error": "Conversation not found"}


class TestConversations:
    async def test_create_list_rename(self, client):
        created = (await client.post("/conversations", json={"title": "Taxes"}, headers=ALICE)).json()
        conversation_id = created["conversationId"]
        assert conversation_id.startswith("conv_")
        assert created["title"] == "Taxes"

        renamed = await client.patch(
            f"/conversations/{conversation_id}", json={"title": "Taxes 2026"}, headers=ALICE
        )
        assert renamed.json()["title"] == "Taxes 2026"

        listed = (await client.get("/conversations", headers=ALICE)).json()
        assert [c["title"] for c in listed] == ["Taxes 2026"]
        assert (await client.get("/conversations", headers=BOB)).json() == []

    async def test_create_without_body(self, client):
        res = await client.post("/conversations", headers=ALICE)

        assert res.json()["title"] == "New chat"

    async def test_rename_unknown(self, client):
        res = await client.patch("/conversations/nope", json={"title": "x"}, headers=ALICE)

        assert res.status_code == 404
