"""
Core conversation handling system.

This package turns household-shopping utterances into routing decisions:
- Language detection, intent recognition and entity extraction
- Context management and persistence
- Clarification questions for incomplete or ambiguous requests
- Agent routing
- The pipeline that ties them together across turns
"""

from .context import (
    ConversationContextStore,
    ConversationContext,
    ConversationTurn,
    InMemoryStateStore,
    StateStore,
    StoreError,
)
from .understanding import (
    LanguageDetector,
    LanguageDetectionResult,
    IntentRecognizer,
    IntentModel,
    IntentType,
    IntentResult,
    EntityExtractor,
    EntityResult,
)
from .clarification import (
    ClarificationEngine,
    ClarificationRequest,
    GuidanceType,
)
from .routing import (
    AgentRouter,
    RoutingError,
    RoutingResult,
    RuleBasedAgentRouter,
)
from .pipeline import (
    ConversationConfig,
    ConversationManager,
    ProcessMessageResult,
    ValidationError,
)

__all__ = [
    'ConversationContextStore',
    'ConversationContext',
    'ConversationTurn',
    'InMemoryStateStore',
    'StateStore',
    'StoreError',
    'LanguageDetector',
    'LanguageDetectionResult',
    'IntentRecognizer',
    'IntentModel',
    'IntentType',
    'IntentResult',
    'EntityExtractor',
    'EntityResult',
    'ClarificationEngine',
    'ClarificationRequest',
    'GuidanceType',
    'AgentRouter',
    'RoutingError',
    'RoutingResult',
    'RuleBasedAgentRouter',
    'ConversationConfig',
    'ConversationManager',
    'ProcessMessageResult',
    'ValidationError',
]
