"""
Context storage and persistence layer.

This module defines the key/value + list-append store that conversation
context is persisted through, and an in-memory implementation with TTL
expiry and periodic cleanup.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple, Callable
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from enum import Enum
import asyncio

logger = logging.getLogger(__name__)


class StoreStatus(str, Enum):
    """Lifecycle states of a state store"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


class StoreError(Exception):
    """Raised when the state store cannot serve a request"""
    pass


@dataclass
class StorageConfig:
    """Configuration for context storage"""
    default_ttl: timedelta = timedelta(hours=24)
    max_list_items: int = 200
    cleanup_interval: timedelta = timedelta(hours=1)


StatusCallback = Callable[[StoreStatus, StoreStatus], None]


class StateStore(ABC):
    """
    Persistence collaborator used by the conversation context store.

    Implementations expose an explicit lifecycle: callers can poll `status`
    or register a callback that is invoked with (old, new) on every
    transition.
    """

    def __init__(self, on_status_change: Optional[StatusCallback] = None):
        self._status = StoreStatus.DISCONNECTED
        self._on_status_change = on_status_change

    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == StoreStatus.CONNECTED

    def _set_status(self, status: StoreStatus):
        previous = self._status
        if previous == status:
            return
        self._status = status
        logger.info(f"State store status changed: {previous.value} -> {status.value}")
        if self._on_status_change:
            self._on_status_change(previous, status)

    def _check_connected(self):
        if self._status != StoreStatus.CONNECTED:
            raise StoreError(f"State store is {self._status.value}")

    @abstractmethod
    async def connect(self):
        """Open the store"""
        pass

    @abstractmethod
    async def close(self):
        """Close the store; later calls raise StoreError"""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None if missing or expired"""
        pass

    @abstractmethod
    async def put(self, key: str, value: Any, ttl: Optional[timedelta] = None):
        """Store a value, replacing any previous one"""
        pass

    @abstractmethod
    async def append(self, key: str, item: Any, max_items: Optional[int] = None,
                     ttl: Optional[timedelta] = None) -> int:
        """Append to a list, evicting the oldest entries past max_items"""
        pass

    @abstractmethod
    async def get_list(self, key: str, limit: Optional[int] = None) -> List[Any]:
        """Get the newest `limit` entries of a list in chronological order"""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key; returns True if it existed"""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: timedelta) -> bool:
        """Reset the time-to-live of a key; returns True if it exists"""
        pass


class InMemoryStateStore(StateStore):
    """
    Process-local state store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, config: Optional[StorageConfig] = None,
                 on_status_change: Optional[StatusCallback] = None):
        super().__init__(on_status_change)
        self.config = config or StorageConfig()
        self._values: Dict[str, Tuple[Any, Optional[datetime]]] = {}
        self._lists: Dict[str, Tuple[List[Any], Optional[datetime]]] = {}
        self._cleanup_task = None

    async def connect(self):
        if self._status == StoreStatus.CLOSED:
            raise StoreError("State store has been closed")
        self._set_status(StoreStatus.CONNECTED)

    async def close(self):
        self.stop_background_cleanup()
        self._values.clear()
        self._lists.clear()
        self._set_status(StoreStatus.CLOSED)

    async def get(self, key: str) -> Optional[Any]:
        self._check_connected()
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._values[key]
            return None
        return copy.deepcopy(value)

    async def put(self, key: str, value: Any, ttl: Optional[timedelta] = None):
        self._check_connected()
        self._values[key] = (copy.deepcopy(value), self._expiry(ttl))

    async def append(self, key: str, item: Any, max_items: Optional[int] = None,
                     ttl: Optional[timedelta] = None) -> int:
        self._check_connected()
        max_items = max_items or self.config.max_list_items
        items, expires_at = self._lists.get(key, ([], None))
        if self._is_expired(expires_at):
            items = []
        items.append(copy.deepcopy(item))
        if len(items) > max_items:
            del items[:len(items) - max_items]
        self._lists[key] = (items, self._expiry(ttl))
        return len(items)

    async def get_list(self, key: str, limit: Optional[int] = None) -> List[Any]:
        self._check_connected()
        entry = self._lists.get(key)
        if entry is None:
            return []
        items, expires_at = entry
        if self._is_expired(expires_at):
            del self._lists[key]
            return []
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return copy.deepcopy(items)

    async def delete(self, key: str) -> bool:
        self._check_connected()
        existed = key in self._values or key in self._lists
        self._values.pop(key, None)
        self._lists.pop(key, None)
        return existed

    async def expire(self, key: str, ttl: timedelta) -> bool:
        self._check_connected()
        expires_at = self._expiry(ttl)
        found = False
        if key in self._values:
            self._values[key] = (self._values[key][0], expires_at)
            found = True
        if key in self._lists:
            self._lists[key] = (self._lists[key][0], expires_at)
            found = True
        return found

    def cleanup_expired(self) -> int:
        """
        Remove every expired key.

        Returns:
            Number of keys removed
        """
        expired = [key for key, (_, expires_at) in self._values.items() if self._is_expired(expires_at)]
        for key in expired:
            del self._values[key]
        expired_lists = [key for key, (_, expires_at) in self._lists.items() if self._is_expired(expires_at)]
        for key in expired_lists:
            del self._lists[key]
        return len(expired) + len(expired_lists)

    def key_count(self) -> int:
        """Get count of stored keys, expired ones included"""
        return len(set(self._values) | set(self._lists))

    def start_background_cleanup(self):
        """Start background cleanup task"""
        if not self._cleanup_task:
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup())

    def stop_background_cleanup(self):
        """Stop background cleanup task"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _periodic_cleanup(self):
        """Periodically clean up expired keys"""
        while True:
            try:
                await asyncio.sleep(self.config.cleanup_interval.total_seconds())
                cleaned = self.cleanup_expired()
                if cleaned > 0:
                    logger.info(f"Cleaned up {cleaned} expired keys")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in periodic cleanup: {str(e)}")

    def _expiry(self, ttl: Optional[timedelta]) -> Optional[datetime]:
        ttl = ttl if ttl is not None else self.config.default_ttl
        if ttl is None:
            return None
        return datetime.now(timezone.utc) + ttl

    @staticmethod
    def _is_expired(expires_at: Optional[datetime]) -> bool:
        return expires_at is not None and datetime.now(timezone.utc) >= expires_at
