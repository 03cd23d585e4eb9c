"""Conversation processing pipeline components"""

from .config import ConversationConfig
from .processor import ConversationManager, ProcessMessageResult
from .validators import InputValidator, ValidationError

__all__ = [
    'ConversationConfig',
    'ConversationManager',
    'ProcessMessageResult',
    'InputValidator',
    'ValidationError',
]
