# orchestrator/orchestrator_manager.py
from __future__ import annotations

import threading
from typing import Optional

from db.database import AsyncSessionLocal
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.pipeline.orchestrator import Orchestrator
from doc_chat.utils.config_loader import load_config


class OrchestratorManager:
    """
    Holds the single process-wide Orchestrator.

    It is built lazily on first use so importing the API does not need
    provider keys, and the rate limiter's windows live as long as the
    process does.
    """

    def __init__(self):
        self._orchestrator: Optional[Orchestrator] = None
        self._lock = threading.Lock()

    def get_orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            with self._lock:
                if self._orchestrator is None:
                    log.info("Creating Orchestrator")
                    self._orchestrator = Orchestrator.from_config(
                        load_config(), session_factory=AsyncSessionLocal
                    )
        return self._orchestrator

    def set_orchestrator(self, orchestrator: Optional[Orchestrator]) -> None:
        self._orchestrator = orchestrator


orchestrator_manager = OrchestratorManager()
