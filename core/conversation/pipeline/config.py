"""Configuration for the conversation pipeline"""

from dataclasses import dataclass


@dataclass
class ConversationConfig:
    """Tunable behavior of the conversation manager"""
    enable_llm_intent_recognition: bool = True
    enable_entity_extraction: bool = True
    enable_context_learning: bool = True
    max_context_history: int = 20
    intent_confidence_threshold: float = 0.7
    entity_confidence_threshold: float = 0.6
    enable_clarification_questions: bool = True
    max_clarification_attempts: int = 3
    fallback_intent: str = "general_inquiry"
    enable_multilingual_support: bool = True
    default_language: str = "zh-CN"

    # Minimum detection confidence before a turn may change the sticky
    # preferred language of a conversation
    preferred_language_threshold: float = 0.6

    # Minimum detection confidence before clarification questions are asked
    # in the detected language instead of the preferred one
    clarification_language_threshold: float = 0.7

    fallback_agent: str = "inventory"
    routing_confidence_threshold: float = 0.5
    context_ttl_seconds: int = 86400
    cleanup_interval_seconds: int = 3600
    max_cached_contexts: int = 1000
    max_input_length: int = 2000
