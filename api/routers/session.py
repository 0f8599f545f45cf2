from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.pipeline.orchestrator import Orchestrator

router = APIRouter()


class ConversationInfo(BaseModel):
    id: str
    title: str
    created_at: str


class ConversationCreate(BaseModel):
    title: Optional[str] = None


class ConversationRename(BaseModel):
    title: str


@router.get("/conversations", response_model=List[ConversationInfo])
async def list_conversations(
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    List the caller's conversations, newest first.
    """
    conversations = await orchestrator.chat_repo.list_conversations(db, owner_id)
    return [
        ConversationInfo(id=c.id, title=c.title, created_at=str(c.created_at))
        for c in conversations
    ]


@router.post("/conversations")
async def create_conversation(
    body: Optional[ConversationCreate] = None,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    conv = await orchestrator.chat_repo.create_conversation(
        db, owner_id, title=body.title if body else None
    )
    log.info("Created new conversation | conversation_id=%s", conv.id)
    return {"conversationId": conv.id, "title": conv.title}


@router.patch("/conversations/{conversation_id}")
async def rename_conversation(
    conversation_id: str,
    body: ConversationRename,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    conv = await orchestrator.chat_repo.rename_conversation(
        db, conversation_id, owner_id, body.title
    )
    return {"conversationId": conv.id, "title": conv.title}
