"""Data models for the conversation API"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class ProcessMessageRequest(BaseModel):
    """A user message for one conversation"""
    message: str = ""
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None


class ProcessMessageResponse(BaseModel):
    """Outcome of processing one message"""
    success: bool
    conversation_id: str
    response: str
    intent_result: Optional[Dict[str, Any]] = None
    entity_result: Optional[Dict[str, Any]] = None
    routing_result: Optional[Dict[str, Any]] = None
    language_detection: Optional[Dict[str, Any]] = None
    clarification_request: Optional[Dict[str, Any]] = None
    updated_context: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class DetectLanguageRequest(BaseModel):
    text: str = ""


class DetectLanguageResponse(BaseModel):
    """Detected language with per-language unit counts"""
    language: str
    confidence: float  # 0.0 to 1.0
    scores: Dict[str, int] = Field(default_factory=dict)


class SupportedLanguagesResponse(BaseModel):
    languages: List[str]


class PreferredLanguageRequest(BaseModel):
    language: str


class PreferredLanguageResponse(BaseModel):
    conversation_id: str
    preferred_language: Optional[str] = None


class ConversationStatsResponse(BaseModel):
    """Manager-wide conversation statistics"""
    active_conversations: int
    pending_clarifications: int
    total_messages: int = 0
    successful_messages: int = 0
    failed_messages: int = 0
    clarifications_raised: int = 0
    clarifications_resolved: int = 0
    clarifications_expired: int = 0
    average_processing_time_ms: float = 0.0


class ClarificationResponse(BaseModel):
    """A pending clarification request"""
    request_id: str
    conversation_id: str
    question: str
    expected_entity_type: str
    guidance_type: str
    missing_entities: List[str] = Field(default_factory=list)
    suggested_responses: List[str] = Field(default_factory=list)
    attempts: int
    max_attempts: int
    original_input: str
    intent: Optional[str] = None
    language: Optional[str] = None
    created_at: str


class CancelClarificationResponse(BaseModel):
    conversation_id: str
    canceled: bool
