from contextlib import aclosing
from typing import List, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from api.deps import enforce_rate_limit, get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.exception.custom_exception import ValidationError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.pipeline.orchestrator import Orchestrator
from doc_chat.src.document_chat.answer_stream import AnswerTurn
from doc_chat.utils.sse import sse_content, sse_done, sse_error

router = APIRouter()


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    messages: List[ChatMessage]


async def _event_source(turn: AnswerTurn):
    async with aclosing(turn.stream()) as events:
        async for event in events:
            if event.kind == "delta":
                yield sse_content(event.content)
            elif event.kind == "done":
                yield sse_done()
            else:
                yield sse_error(event.content)


@router.post("/chat")
async def chat(
    req: ChatRequest,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Main chat endpoint (server-sent events).

    Pipeline:
      1. Authenticate (dependency)
      2. Validate the request, then spend a rate-limit slot
      3. Create the conversation on first use
      4. Persist the user message
      5. Retrieve context and compose the system instruction
      6. Stream the completion; the answer is persisted when it completes
    """
    conversation_id = req.conversation_id.strip()
    if not conversation_id:
        raise ValidationError("conversationId required")
    if not req.messages or req.messages[-1].role != "user":
        raise ValidationError("The last message must be a user message")

    user_message = req.messages[-1].content.strip()
    if not user_message:
        raise ValidationError("message required")

    enforce_rate_limit(orchestrator, owner_id)

    log.info("Chat request received | conversation_id=%s", conversation_id)

    await orchestrator.chat_repo.ensure_conversation(
        db, conversation_id, owner_id, title=user_message[:50]
    )

    prior = [{"role": m.role, "content": m.content} for m in req.messages[:-1]]
    turn = await orchestrator.answer_pipeline.prepare_turn(
        db, conversation_id, prior, user_message
    )

    return StreamingResponse(
        _event_source(turn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Retrieval-Mode": turn.retrieval.mode.value,
        },
    )
