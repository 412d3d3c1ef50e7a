from __future__ import annotations

import logging
from collections import deque

from submission_console.errors import CollaboratorError, ConsoleError, InconsistentStateError

logger = logging.getLogger(__name__)


class MessageBoard:
    """Operator message banner. Holds one current message; the last one wins."""

    def __init__(self, history_size: int = 50):
        self.current = ""
        self.history: deque[str] = deque(maxlen=history_size)

    def show(self, message: str) -> None:
        self.current = message
        if message:
            self.history.append(message)
            logger.info(f"[message] {message}")

    def report(self, exc: ConsoleError) -> None:
        if isinstance(exc, InconsistentStateError):
            logger.error(f"[message] inconsistent response from {exc.command}: {exc.message}")
        elif isinstance(exc, CollaboratorError):
            logger.warning(f"[message] {exc.command} failed: {exc.message}")
        self.show(exc.message)

    def clear(self) -> None:
        self.current = ""
