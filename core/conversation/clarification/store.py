"""Pending clarification requests owned by one conversation manager"""

import logging
from typing import Dict, List, Optional

from .engine import ClarificationRequest

logger = logging.getLogger(__name__)


class PendingClarificationStore:
    """
    Pending clarification requests keyed by conversation ID.

    Holds at most one request per conversation; storing a new request for a
    conversation replaces the previous one. Nothing is persisted.
    """

    def __init__(self):
        self._pending: Dict[str, ClarificationRequest] = {}

    def get(self, conversation_id: str) -> Optional[ClarificationRequest]:
        return self._pending.get(conversation_id)

    def put(self, request: ClarificationRequest):
        replaced = self._pending.get(request.conversation_id)
        self._pending[request.conversation_id] = request
        if replaced:
            logger.debug(
                f"Replaced clarification for {request.conversation_id} "
                f"(attempt {replaced.attempts} -> {request.attempts})"
            )

    def remove(self, conversation_id: str) -> bool:
        """Remove a pending request; returns True if one existed"""
        return self._pending.pop(conversation_id, None) is not None

    def count(self) -> int:
        return len(self._pending)

    def conversation_ids(self) -> List[str]:
        return list(self._pending)

    def clear(self) -> int:
        """Discard every pending request and return how many were dropped"""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
