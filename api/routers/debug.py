from fastapi import APIRouter, Depends

from api.deps import get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.get("/debug/{conversation_id}")
async def debug_conversation(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    What has been ingested for a conversation: uploaded files, stored
    chunk count and a preview of the first few chunks.
    """
    await orchestrator.chat_repo.require_conversation(db, conversation_id, owner_id)

    files = await orchestrator.chat_repo.list_files(db, conversation_id)
    chunk_count = await orchestrator.document_repo.count_chunks(db, conversation_id)
    samples = await orchestrator.document_repo.list_chunks(db, conversation_id, limit=3)

    return {
        "conversationId": conversation_id,
        "filesUploaded": len(files),
        "files": [
            {"fileName": f.file_name, "size": f.byte_size, "mimeType": f.mime_type}
            for f in files
        ],
        "documentChunks": chunk_count,
        "sampleChunks": [
            {"fileName": s.file_name, "contentPreview": s.content[:100] + "..."}
            for s in samples
        ],
    }
