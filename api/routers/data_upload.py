from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from api.deps import get_current_owner, get_orchestrator
from db.database import get_db
from doc_chat.exception.custom_exception import ValidationError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.pipeline.orchestrator import Orchestrator

router = APIRouter()


@router.post("/upload")
async def upload_file(
    file: Optional[UploadFile] = File(None),
    conversation_id: Optional[str] = Form(None, alias="conversationId"),
    owner_id: str = Depends(get_current_owner),
    db=Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Upload endpoint:
      - Validates size and type before touching storage
      - Creates the conversation on first use
      - Runs the ingestion pipeline (store -> extract -> chunk -> embed -> persist)
    """
    if file is None or not conversation_id or not conversation_id.strip():
        raise ValidationError("Missing file or conversationId")
    conversation_id = conversation_id.strip()

    ingestor = orchestrator.ingestor
    file_name = file.filename or "file"
    mime_type = file.content_type or ""

    # never read more than one byte past the cap
    data = await file.read(ingestor.max_file_bytes + 1)
    ingestor.validate(data, mime_type)

    await orchestrator.chat_repo.ensure_conversation(
        db, conversation_id, owner_id, title=file_name
    )

    result = await ingestor.ingest(
        db,
        data=data,
        file_name=file_name,
        mime_type=mime_type,
        conversation_id=conversation_id,
        owner_id=owner_id,
    )

    log.info(
        "Upload completed | conversation_id=%s | file=%s | chunks=%d",
        conversation_id,
        result.file_name,
        result.chunk_count,
    )
    return {"success": True, "fileName": result.file_name, "chunkCount": result.chunk_count}
