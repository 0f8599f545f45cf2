from __future__ import annotations

import re
import time
import uuid
from pathlib import Path

from doc_chat.exception.custom_exception import StorageError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.thread_pool import run_sync


def _safe_segment(value: str) -> str:
    # Clean path segment (only alphanum, dash, underscore)
    return re.sub(r"[^a-zA-Z0-9_\-]", "_", value) or "_"


def build_storage_path(owner_id: str, conversation_id: str, file_name: str) -> str:
    """
    Namespaced object key: {owner}/{conversation}/{epoch_millis}_{hex8}.{ext}
    """
    extension = Path(file_name).suffix.lower().lstrip(".")
    extension = re.sub(r"[^a-z0-9]", "", extension) or "bin"
    stamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    return (
        f"{_safe_segment(owner_id)}/{_safe_segment(conversation_id)}/"
        f"{stamp}_{suffix}.{extension}"
    )


class LocalObjectStorage:
    """
    Object storage on the local filesystem, rooted at `base_dir`.
    """

    def __init__(self, base_dir: str | Path = "data"):
        self.base_dir = Path(base_dir).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.base_dir / path).resolve()
        if not target.is_relative_to(self.base_dir):
            raise StorageError(f"Storage path escapes the storage root: {path}")
        return target

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)

    async def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            await run_sync(self._write, target, data)
        except OSError as e:
            log.error("Failed to store file | path=%s | error=%s", path, str(e))
            raise StorageError("Failed to upload file", e) from e

        log.info("File stored | path=%s | bytes=%d", path, len(data))
        return path
