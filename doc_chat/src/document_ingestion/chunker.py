"""
Overlapping, boundary-aware text chunking.

Windows of at most `chunk_size` characters are cut from the start of the
text. Each window ends at the latest natural boundary (paragraph, line,
sentence, word) found in its back half, or at a hard cut when there is
none. The next window starts exactly `chunk_overlap` characters before
the previous one ended, so:

  - every chunk is <= chunk_size characters
  - consecutive chunks share exactly `chunk_overlap` characters
  - chunks[0] + chunks[1][overlap:] + chunks[2][overlap:] + ... == text
"""

from __future__ import annotations

from typing import Any, Iterator, List, Sequence, Tuple

from langchain_core.documents import Document
from langchain_text_splitters import TextSplitter

from doc_chat.exception.custom_exception import EmptyInputError

DEFAULT_SEPARATORS: Sequence[str] = ("\n\n", "\n", ". ", "? ", "! ", " ")


def _find_break(
    text: str, min_end: int, limit: int, separators: Sequence[str]
) -> int | None:
    """Latest end offset in (min_end, limit] that falls right after a separator."""
    for sep in separators:
        idx = text.rfind(sep, min_end, limit)
        if idx != -1:
            return idx + len(sep)
    return None


class BoundaryTextSplitter(TextSplitter):
    """
    TextSplitter with exact overlap and lossless reassembly.

    Unlike RecursiveCharacterTextSplitter it never strips or drops
    separators, so create_documents(..., add_start_index) yields offsets
    that point at the chunk's true position in the source text.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
        add_start_index: bool = True,
        **kwargs: Any,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk size must be > 0")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk overlap must be >= 0 and smaller than chunk size")

        super().__init__(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            add_start_index=add_start_index,
            strip_whitespace=False,
            **kwargs,
        )
        self._separators = tuple(separators)

    def iter_spans(self, text: str) -> Iterator[Tuple[int, int]]:
        size, overlap = self._chunk_size, self._chunk_overlap
        n = len(text)
        start = 0

        while True:
            limit = start + size
            if limit >= n:
                yield start, n
                return

            # only look for a boundary in the back half of the window so
            # chunks stay close to the target size
            min_end = max(start + overlap, start + size // 2)
            end = _find_break(text, min_end, limit, self._separators) or limit

            yield start, end
            start = end - overlap

    def split_text(self, text: str) -> List[str]:
        return [text[s:e] for s, e in self.iter_spans(text)]


class ChunkSequence:
    """
    Lazy, finite and restartable: every iteration re-walks the text and
    yields the same Documents in the same order.
    """

    def __init__(self, text: str, splitter: BoundaryTextSplitter):
        if not text or not text.strip():
            raise EmptyInputError("Cannot chunk empty text")
        self.text = text
        self.splitter = splitter

    def __iter__(self) -> Iterator[Document]:
        for position, (start, end) in enumerate(self.splitter.iter_spans(self.text)):
            yield Document(
                page_content=self.text[start:end],
                metadata={"position": position, "start_index": start, "end_index": end},
            )

    def to_list(self) -> List[Document]:
        return list(self)


def chunk(
    text: str,
    size: int = 1000,
    overlap: int = 200,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> ChunkSequence:
    splitter = BoundaryTextSplitter(
        chunk_size=size, chunk_overlap=overlap, separators=separators
    )
    return ChunkSequence(text, splitter)
