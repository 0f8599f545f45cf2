from fastapi import APIRouter, Depends

from api.deps import get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.get("/messages/{conversation_id}")
async def get_messages(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    repo = orchestrator.chat_repo
    await repo.require_conversation(db, conversation_id, owner_id)

    messages = await repo.get_history(db, conversation_id)

    return [
        {"role": m.role, "content": m.content, "created_at": str(m.created_at)}
        for m in messages
    ]
