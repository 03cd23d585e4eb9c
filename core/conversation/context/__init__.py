"""Context management components"""

from .manager import ConversationContextStore, ConversationContext, ConversationTurn
from .storage import InMemoryStateStore, StateStore, StorageConfig, StoreError, StoreStatus

__all__ = [
    'ConversationContextStore',
    'ConversationContext',
    'ConversationTurn',
    'InMemoryStateStore',
    'StateStore',
    'StorageConfig',
    'StoreError',
    'StoreStatus',
]
