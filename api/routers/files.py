from fastapi import APIRouter, Depends

from api.deps import get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.get("/files/{conversation_id}")
async def list_files(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    repo = orchestrator.chat_repo
    await repo.require_conversation(db, conversation_id, owner_id)

    files = await repo.list_files(db, conversation_id)
    return [
        {
            "fileName": f.file_name,
            "size": f.byte_size,
            "mimeType": f.mime_type,
            "created_at": str(f.created_at),
        }
        for f in files
    ]
