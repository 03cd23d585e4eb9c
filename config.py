"""Configuration settings for the household shopping assistant"""
import os
from pydantic_settings import BaseSettings

from core.conversation.pipeline.config import ConversationConfig


def detect_environment() -> str:
    """
    Detect current environment from the ENVIRONMENT variable.
    Returns: 'dev', 'staging', or 'prod'
    """
    explicit_env = os.getenv("ENVIRONMENT", "").lower()
    if explicit_env in ("dev", "staging", "prod", "production", "development"):
        if explicit_env == "production":
            return "prod"
        if explicit_env == "development":
            return "dev"
        return explicit_env

    # Local development
    return "dev"


class Settings(BaseSettings):
    """Application settings using Pydantic for validation and environment variable loading"""

    # Understanding pipeline
    ENABLE_LLM_INTENT_RECOGNITION: bool = True
    ENABLE_ENTITY_EXTRACTION: bool = True
    ENABLE_CONTEXT_LEARNING: bool = True
    MAX_CONTEXT_HISTORY: int = 20
    INTENT_CONFIDENCE_THRESHOLD: float = 0.7
    ENTITY_CONFIDENCE_THRESHOLD: float = 0.6
    FALLBACK_INTENT: str = "general_inquiry"

    # Clarification
    ENABLE_CLARIFICATION_QUESTIONS: bool = True
    MAX_CLARIFICATION_ATTEMPTS: int = 3

    # Languages
    ENABLE_MULTILINGUAL_SUPPORT: bool = True
    DEFAULT_LANGUAGE: str = "zh-CN"
    PREFERRED_LANGUAGE_THRESHOLD: float = 0.6
    CLARIFICATION_LANGUAGE_THRESHOLD: float = 0.7

    # Routing
    FALLBACK_AGENT: str = "inventory"
    ROUTING_CONFIDENCE_THRESHOLD: float = 0.5

    # Context storage
    CONTEXT_TTL_SECONDS: int = 86400
    CLEANUP_INTERVAL_SECONDS: int = 3600
    MAX_CACHED_CONTEXTS: int = 1000

    # Application settings
    MAX_INPUT_LENGTH: int = 2000
    ENVIRONMENT: str = detect_environment()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.ENVIRONMENT == "dev"

    def conversation_config(self) -> ConversationConfig:
        """Build the conversation pipeline configuration from these settings"""
        return ConversationConfig(
            enable_llm_intent_recognition=self.ENABLE_LLM_INTENT_RECOGNITION,
            enable_entity_extraction=self.ENABLE_ENTITY_EXTRACTION,
            enable_context_learning=self.ENABLE_CONTEXT_LEARNING,
            max_context_history=self.MAX_CONTEXT_HISTORY,
            intent_confidence_threshold=self.INTENT_CONFIDENCE_THRESHOLD,
            entity_confidence_threshold=self.ENTITY_CONFIDENCE_THRESHOLD,
            enable_clarification_questions=self.ENABLE_CLARIFICATION_QUESTIONS,
            max_clarification_attempts=self.MAX_CLARIFICATION_ATTEMPTS,
            fallback_intent=self.FALLBACK_INTENT,
            enable_multilingual_support=self.ENABLE_MULTILINGUAL_SUPPORT,
            default_language=self.DEFAULT_LANGUAGE,
            preferred_language_threshold=self.PREFERRED_LANGUAGE_THRESHOLD,
            clarification_language_threshold=self.CLARIFICATION_LANGUAGE_THRESHOLD,
            fallback_agent=self.FALLBACK_AGENT,
            routing_confidence_threshold=self.ROUTING_CONFIDENCE_THRESHOLD,
            context_ttl_seconds=self.CONTEXT_TTL_SECONDS,
            cleanup_interval_seconds=self.CLEANUP_INTERVAL_SECONDS,
            max_cached_contexts=self.MAX_CACHED_CONTEXTS,
            max_input_length=self.MAX_INPUT_LENGTH,
        )

    class Config:
        # Load from .env file
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
