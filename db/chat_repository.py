from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from doc_chat.exception.custom_exception import NotFoundError, PersistenceError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.ids import generate_conversation_id

from .models import Conversation, Message, UploadedFile

MESSAGE_ROLES = ("user", "assistant")


async def commit_or_raise(db: AsyncSession, action: str) -> None:
    """Commit the unit of work; on failure roll back and raise PersistenceError."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.error("Store write failed | action=%s | error=%s", action, str(e))
        raise PersistenceError(f"Failed to {action}", e) from e


class ChatRepository:
    """
    Repository providing CRUD operations for Conversation, Message and
    UploadedFile records. Every conversation lookup is scoped by owner.
    """

    async def create_conversation(
        self,
        db: AsyncSession,
        owner_id: str,
        title: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        conv = Conversation(
            id=conversation_id or generate_conversation_id(),
            owner_id=owner_id,
            title=(title or "New chat").strip()[:120] or "New chat",
        )
        db.add(conv)
        await commit_or_raise(db, "create conversation")
        await db.refresh(conv)
        log.info("New conversation created | conversation_id=%s", conv.id)
        return conv

    async def get_conversation(
        self, db: AsyncSession, conversation_id: str, owner_id: str
    ) -> Optional[Conversation]:
        try:
            out = await db.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.owner_id == owner_id,
                )
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load conversation", e) from e
        return out.scalar_one_or_none()

    async def require_conversation(
        self, db: AsyncSession, conversation_id: str, owner_id: str
    ) -> Conversation:
        conv = await self.get_conversation(db, conversation_id, owner_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        return conv

    async def ensure_conversation(
        self,
        db: AsyncSession,
        conversation_id: str,
        owner_id: str,
        title: Optional[str] = None,
    ) -> Conversation:
        """
        Return the owner's conversation, creating it on first use.
        An id that already belongs to someone else is reported as not found.
        """
        conv = await self.get_conversation(db, conversation_id, owner_id)
        if conv is not None:
            return conv

        existing = await db.get(Conversation, conversation_id)
        if existing is not None:
            raise NotFoundError("Conversation not found")

        return await self.create_conversation(
            db, owner_id, title=title, conversation_id=conversation_id
        )

    async def rename_conversation(
        self, db: AsyncSession, conversation_id: str, owner_id: str, title: str
    ) -> Conversation:
        conv = await self.require_conversation(db, conversation_id, owner_id)
        conv.title = title.strip()[:120]
        await commit_or_raise(db, "rename conversation")
        log.info("Conversation renamed | conversation_id=%s", conversation_id)
        return conv

    async def list_conversations(self, db: AsyncSession, owner_id: str):
        """
        List the owner's conversations, most recent first.
        """
        q = await db.execute(
            select(Conversation)
            .where(Conversation.owner_id == owner_id)
            .order_by(Conversation.created_at.desc())
        )
        conversations = q.scalars().all()
        log.info("Listing conversations | count=%d", len(conversations))
        return conversations

    async def add_message(
        self, db: AsyncSession, conversation_id: str, role: str, content: str
    ) -> Message:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role '{role}'")

        msg = Message(conversation_id=conversation_id, role=role, content=content)
        db.add(msg)
        await commit_or_raise(db, f"persist {role} message")

        log.info(
            "Message persisted | conversation_id=%s | role=%s | length=%d",
            conversation_id,
            role,
            len(content),
        )
        return msg

    async def get_history(
        self, db: AsyncSession, conversation_id: str, limit: Optional[int] = None
    ):
        """
        Get the most recent messages of a conversation in chronological order.
        """
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        out = await db.execute(stmt)

        # restore chronological order
        rows = list(reversed(out.scalars().all()))
        log.info(
            "Loaded history | conversation_id=%s | count=%d",
            conversation_id,
            len(rows),
        )
        return rows

    async def add_uploaded_file(
        self,
        db: AsyncSession,
        conversation_id: str,
        file_name: str,
        storage_path: str,
        byte_size: int,
        mime_type: str,
    ) -> UploadedFile:
        record = UploadedFile(
            conversation_id=conversation_id,
            file_name=file_name,
            storage_path=storage_path,
            byte_size=byte_size,
            mime_type=mime_type,
        )
        db.add(record)
        await commit_or_raise(db, "record uploaded file")

        log.info(
            "Uploaded file registered | conversation_id=%s | file=%s",
            conversation_id,
            file_name,
        )
        return record

    async def list_files(self, db: AsyncSession, conversation_id: str):
        q = await db.execute(
            select(UploadedFile)
            .where(UploadedFile.conversation_id == conversation_id)
            .order_by(UploadedFile.created_at)
        )
        files = q.scalars().all()

        log.info(
            "Listed uploaded files | conversation_id=%s | count=%d",
            conversation_id,
            len(files),
        )
        return files
