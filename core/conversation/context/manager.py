"""
Conversation context management.

This module holds the per-conversation context (bounded session history,
detected and preferred language, pending-clarification link) and the
context store that caches it in memory and persists it through a
StateStore.
"""

import copy
import logging
import uuid
from typing import Dict, Any, List, Optional
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field

from .storage import StateStore

logger = logging.getLogger(__name__)


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string or datetime into a timezone-aware datetime"""
    if not value:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ConversationTurn:
    """One processed user message"""
    user_input: str
    intent: Optional[str] = None
    entities: Dict[str, Any] = field(default_factory=dict)
    target_agent: Optional[str] = None
    requires_clarification: bool = False
    language: Optional[str] = None
    turn_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turn_id": self.turn_id,
            "user_input": self.user_input,
            "intent": self.intent,
            "entities": copy.deepcopy(self.entities),
            "target_agent": self.target_agent,
            "requires_clarification": self.requires_clarification,
            "language": self.language,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ConversationContext:
    """Structured conversation context"""
    conversation_id: str
    user_id: str = "anonymous"
    session_history: List[Dict[str, Any]] = field(default_factory=list)
    detected_language: Optional[str] = None
    preferred_language: Optional[str] = None
    pending_clarification_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence"""
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "session_history": copy.deepcopy(self.session_history),
            "detected_language": self.detected_language,
            "preferred_language": self.preferred_language,
            "pending_clarification_id": self.pending_clarification_id,
            "metadata": copy.deepcopy(self.metadata),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationContext':
        """Create from dictionary"""
        return cls(
            conversation_id=data["conversation_id"],
            user_id=data.get("user_id", "anonymous"),
            session_history=data.get("session_history", []),
            detected_language=data.get("detected_language"),
            preferred_language=data.get("preferred_language"),
            pending_clarification_id=data.get("pending_clarification_id"),
            metadata=data.get("metadata", {}),
            created_at=_parse_datetime(data.get("created_at")),
            last_updated=_parse_datetime(data.get("last_updated")),
        )

    def copy(self) -> 'ConversationContext':
        """Deep copy used to stage changes before they are persisted"""
        return copy.deepcopy(self)

    def add_turn(self, turn: ConversationTurn, max_history: int):
        """Append a turn, evicting the oldest beyond max_history"""
        self.session_history.append(turn.to_dict())
        if max_history >= 0 and len(self.session_history) > max_history:
            del self.session_history[:len(self.session_history) - max_history]

    def last_entity_value(self, name: str) -> Optional[Any]:
        """Most recent value of an entity across session history"""
        for turn in reversed(self.session_history):
            value = (turn.get("entities") or {}).get(name)
            if value is not None:
                return value
        return None


class ConversationContextStore:
    """
    Per-conversation context cache backed by a StateStore.

    Reads go to the cache first. Writes go to the state store first and only
    reach the cache once the store accepted them, so a failed write never
    leaves the cache ahead of persistence.
    """

    KEY_PREFIX = "conversation"

    def __init__(self, storage: StateStore, max_history: int = 20,
                 max_context_age: timedelta = timedelta(hours=24),
                 max_cache_size: int = 1000):
        self.storage = storage
        self.max_history = max_history
        self.max_context_age = max_context_age
        self.max_cache_size = max_cache_size
        self._context_cache: Dict[str, ConversationContext] = {}

    def _context_key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}:{conversation_id}:context"

    def _turns_key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}:{conversation_id}:turns"

    async def load(self, conversation_id: str) -> Optional[ConversationContext]:
        """
        Load context for a conversation.

        Args:
            conversation_id: Conversation identifier

        Returns:
            A private copy of the context, or None if unknown
        """
        cached = self._context_cache.get(conversation_id)
        if cached and self._is_context_fresh(cached):
            return cached.copy()

        data = await self.storage.get(self._context_key(conversation_id))
        if data is None:
            self._context_cache.pop(conversation_id, None)
            return None

        context = ConversationContext.from_dict(data)
        self._cache_put(context)
        return context.copy()

    async def get_or_create(self, conversation_id: str, user_id: str = "anonymous") -> ConversationContext:
        """Load context, creating a fresh unsaved one for new conversations"""
        context = await self.load(conversation_id)
        if context is None:
            now = datetime.now(timezone.utc)
            context = ConversationContext(
                conversation_id=conversation_id,
                user_id=user_id or "anonymous",
                created_at=now,
                last_updated=now,
            )
            logger.debug(f"Created new context for conversation {conversation_id}")
        return context

    async def save(self, context: ConversationContext):
        """Persist context; the cache is only updated after the store accepts it"""
        context.last_updated = datetime.now(timezone.utc)
        if self.max_history >= 0 and len(context.session_history) > self.max_history:
            del context.session_history[:len(context.session_history) - self.max_history]

        await self.storage.put(
            self._context_key(context.conversation_id),
            context.to_dict(),
            ttl=self.max_context_age,
        )
        self._cache_put(context.copy())

    async def record_turn(self, conversation_id: str, turn: ConversationTurn) -> bool:
        """
        Append a turn to the long-lived conversation log.

        Returns:
            Success status
        """
        try:
            await self.storage.append(self._turns_key(conversation_id), turn.to_dict(),
                                      ttl=self.max_context_age)
            return True
        except Exception as e:
            logger.error(f"Failed to record conversation turn for {conversation_id}: {str(e)}")
            return False

    async def get_conversation_history(self, conversation_id: str,
                                       limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get logged turns for a conversation in chronological order"""
        return await self.storage.get_list(self._turns_key(conversation_id), limit)

    async def delete(self, conversation_id: str):
        """Remove context and the turn log for a conversation"""
        self._context_cache.pop(conversation_id, None)
        await self.storage.delete(self._context_key(conversation_id))
        await self.storage.delete(self._turns_key(conversation_id))

    def get_cached(self, conversation_id: str) -> Optional[ConversationContext]:
        """Get cached context without touching the store; stale entries are dropped"""
        context = self._context_cache.get(conversation_id)
        if context is None:
            return None
        if not self._is_context_fresh(context):
            del self._context_cache[conversation_id]
            return None
        return context

    def active_conversation_ids(self) -> List[str]:
        self.evict_stale()
        return list(self._context_cache)

    def evict_stale(self) -> int:
        """
        Drop cached contexts older than max_context_age.

        Returns:
            Number of entries removed
        """
        stale = [cid for cid, context in self._context_cache.items() if not self._is_context_fresh(context)]
        for cid in stale:
            del self._context_cache[cid]
        if stale:
            logger.debug(f"Evicted {len(stale)} stale contexts from cache")
        return len(stale)

    def clear_cache(self):
        self._context_cache.clear()

    def _cache_put(self, context: ConversationContext):
        """Cache a context, evicting the least recently stored entries past max_cache_size"""
        self._context_cache.pop(context.conversation_id, None)
        self._context_cache[context.conversation_id] = context
        while self._context_cache and len(self._context_cache) > self.max_cache_size:
            oldest = next(iter(self._context_cache))
            del self._context_cache[oldest]

    def _is_context_fresh(self, context: ConversationContext) -> bool:
        if not context.last_updated:
            return True
        return datetime.now(timezone.utc) - context.last_updated < self.max_context_age
