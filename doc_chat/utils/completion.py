from dataclasses import dataclass
from typing import AsyncIterator, Dict, List

from langchain_core.language_models.chat_models import BaseChatModel

from doc_chat.exception.custom_exception import CompletionServiceError
from doc_chat.logger import GLOBAL_LOGGER as log


@dataclass(frozen=True)
class CompletionDelta:
    """One item of a completion stream: a text piece, or the end marker."""

    delta: str = ""
    done: bool = False


def _chunk_text(content) -> str:
    # Some providers (Gemini) may hand back a list of content parts
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict) and p.get("type", "text") == "text":
                parts.append(p.get("text", ""))
        return "".join(parts)
    return ""


class LangChainCompletionClient:
    """
    Completion capability backed by a LangChain chat model.

    stream_complete(messages) is an async generator; closing it (aclose)
    closes the provider stream underneath.
    """

    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    async def stream_complete(
        self, messages: List[Dict[str, str]]
    ) -> AsyncIterator[CompletionDelta]:
        log.info("Completion stream requested | messages=%d", len(messages))
        stream = self.llm.astream(messages)
        try:
            async for chunk in stream:
                text = _chunk_text(getattr(chunk, "content", ""))
                if text:
                    yield CompletionDelta(delta=text)
        except Exception as e:
            log.error("Completion stream failed | error=%s", str(e))
            raise CompletionServiceError("Completion service failed", e) from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        yield CompletionDelta(done=True)
