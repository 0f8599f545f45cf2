"""
Streaming answer pipeline.

A turn moves through

    IDLE -> AWAITING_FIRST_TOKEN -> STREAMING -> COMPLETED | CANCELLED | FAILED

The completion stream is read by a producer task that feeds a bounded
queue; AnswerTurn.stream() consumes the queue and forwards each delta to
the caller as it arrives. Cancelling the turn (turn.cancel() or closing
the stream() generator) cancels the producer, which closes the provider
stream. Only a COMPLETED turn persists an assistant message.
"""

import asyncio
from contextlib import aclosing, suppress
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.chat_repository import ChatRepository
from doc_chat.exception.custom_exception import DocumentChatException, PersistenceError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.prompts.prompt_library import compose_system_instruction
from doc_chat.src.document_chat.retrieval import DocumentRetriever, RetrievalResult


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TurnState.COMPLETED, TurnState.CANCELLED, TurnState.FAILED})


@dataclass(frozen=True)
class StreamEvent:
    kind: str  # "delta" | "done" | "error"
    content: str = ""

    @classmethod
    def delta(cls, text: str) -> "StreamEvent":
        return cls("delta", text)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls("done")

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls("error", message)


@dataclass(frozen=True)
class _Failure:
    error: BaseException


_END = object()
_CANCELLED = object()

PersistAssistant = Callable[[str, str], Awaitable[None]]


class AnswerTurn:
    def __init__(
        self,
        conversation_id: str,
        messages: List[Dict[str, str]],
        completion,
        persist_assistant: PersistAssistant,
        retrieval: Optional[RetrievalResult] = None,
        queue_size: int = 64,
    ):
        self.conversation_id = conversation_id
        self.messages = messages
        self.completion = completion
        self.persist_assistant = persist_assistant
        self.retrieval = retrieval
        self.queue_size = queue_size

        self.state = TurnState.IDLE
        self._cancel = asyncio.Event()
        self._parts: List[str] = []

    @property
    def answer_text(self) -> str:
        return "".join(self._parts)

    def cancel(self) -> None:
        """Ask the turn to stop; honoured before the next delta is forwarded."""
        self._cancel.set()

    def _finish(self, state: TurnState) -> None:
        self.state = state
        log.info(
            "Answer turn finished | conversation_id=%s | state=%s | chars=%d",
            self.conversation_id,
            state.value,
            len(self.answer_text),
        )

    async def _produce(self, queue: asyncio.Queue) -> None:
        try:
            async with aclosing(self.completion.stream_complete(self.messages)) as stream:
                async for piece in stream:
                    if piece.delta:
                        await queue.put(piece.delta)
                    if piece.done:
                        break
        except Exception as e:
            await queue.put(_Failure(e))
            return
        await queue.put(_END)

    async def _next(self, queue: asyncio.Queue):
        if self._cancel.is_set():
            return _CANCELLED

        getter = asyncio.ensure_future(queue.get())
        waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (getter, waiter):
                if not task.done():
                    task.cancel()

        if getter in done:
            return getter.result()
        return _CANCELLED

    async def stream(self) -> AsyncIterator[StreamEvent]:
        if self.state is not TurnState.IDLE:
            raise RuntimeError("An answer turn can only be streamed once")

        self.state = TurnState.AWAITING_FIRST_TOKEN
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        producer = asyncio.create_task(self._produce(queue))

        try:
            while True:
                item = await self._next(queue)

                if item is _CANCELLED:
                    self._finish(TurnState.CANCELLED)
                    return

                if item is _END:
                    break

                if isinstance(item, _Failure):
                    log.error(
                        "Completion failed mid-stream | conversation_id=%s | error=%s",
                        self.conversation_id,
                        str(item.error),
                    )
                    self._finish(TurnState.FAILED)
                    message = (
                        str(item.error)
                        if isinstance(item.error, DocumentChatException)
                        else "Completion service failed"
                    )
                    yield StreamEvent.error(message)
                    return

                self.state = TurnState.STREAMING
                self._parts.append(item)
                yield StreamEvent.delta(item)

            if self._cancel.is_set():
                self._finish(TurnState.CANCELLED)
                return

            try:
                await self.persist_assistant(self.conversation_id, self.answer_text)
            except PersistenceError as e:
                log.error(
                    "Failed to persist assistant message | conversation_id=%s | error=%s",
                    self.conversation_id,
                    e.details(),
                )
                self._finish(TurnState.FAILED)
                yield StreamEvent.error(str(e))
                return

            self._finish(TurnState.COMPLETED)
            yield StreamEvent.done()

        finally:
            if not producer.done():
                producer.cancel()
                with suppress(asyncio.CancelledError):
                    await producer
            if self.state not in TERMINAL_STATES:
                # consumer went away (client disconnect / generator closed)
                self._finish(TurnState.CANCELLED)


class AnswerPipeline:
    """
    user message -> persist -> retrieve -> compose -> stream -> persist answer
    """

    def __init__(
        self,
        retriever: DocumentRetriever,
        completion,
        session_factory: async_sessionmaker,
        chat_repo: Optional[ChatRepository] = None,
        queue_size: int = 64,
    ):
        self.retriever = retriever
        self.completion = completion
        self.session_factory = session_factory
        self.chat_repo = chat_repo or ChatRepository()
        self.queue_size = queue_size

    async def _persist_assistant(self, conversation_id: str, content: str) -> None:
        # Runs after the response has started streaming, so it cannot use
        # the request-scoped session.
        async with self.session_factory() as db:
            await self.chat_repo.add_message(db, conversation_id, "assistant", content)

    async def prepare_turn(
        self,
        db: AsyncSession,
        conversation_id: str,
        prior_messages: Sequence[Dict[str, str]],
        user_message: str,
    ) -> AnswerTurn:
        # The transcript records the user's turn even if generation fails later
        await self.chat_repo.add_message(db, conversation_id, "user", user_message)

        retrieval = await self.retriever.retrieve(db, conversation_id, user_message)
        system_instruction = compose_system_instruction(
            retrieval.context_text, retrieval.chunk_count
        )

        messages = [{"role": "system", "content": system_instruction}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in prior_messages)
        messages.append({"role": "user", "content": user_message})

        log.info(
            "Answer turn prepared | conversation_id=%s | mode=%s | sections=%d | messages=%d",
            conversation_id,
            retrieval.mode.value,
            retrieval.chunk_count,
            len(messages),
        )
        return AnswerTurn(
            conversation_id=conversation_id,
            messages=messages,
            completion=self.completion,
            persist_assistant=self._persist_assistant,
            retrieval=retrieval,
            queue_size=self.queue_size,
        )

    async def answer(
        self,
        db: AsyncSession,
        conversation_id: str,
        prior_messages: Sequence[Dict[str, str]],
        user_message: str,
    ) -> AsyncIterator[StreamEvent]:
        turn = await self.prepare_turn(db, conversation_id, prior_messages, user_message)
        async with aclosing(turn.stream()) as events:
            async for event in events:
                yield event
