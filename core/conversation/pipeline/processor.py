"""
Main conversation processing pipeline.

This module orchestrates one user message through language detection,
context retrieval, clarification follow-up, intent recognition, entity
extraction, the clarification decision, agent routing and persistence.
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from core.conversation.context import (
    ConversationContextStore,
    ConversationContext,
    ConversationTurn,
    InMemoryStateStore,
    StateStore,
    StorageConfig,
    StoreError,
)
from core.conversation.understanding import (
    LanguageDetector,
    LanguageDetectionResult,
    IntentRecognizer,
    IntentModel,
    IntentType,
    IntentResult,
    EntityExtractor,
    EntityResult,
)
from core.conversation.clarification import (
    ClarificationEngine,
    ClarificationRequest,
    ClarificationState,
    PendingClarificationStore,
)
from core.conversation.clarification import templates
from core.conversation.routing import AgentRouter, RoutingError, RoutingResult, RuleBasedAgentRouter
from core.conversation.routing.router import KNOWN_AGENTS
from .config import ConversationConfig
from .validators import InputValidator

logger = logging.getLogger(__name__)


@dataclass
class ProcessMessageResult:
    """Result of pipeline processing"""
    success: bool
    conversation_id: str
    response: str = ""
    intent_result: Optional[IntentResult] = None
    entity_result: Optional[EntityResult] = None
    routing_result: Optional[RoutingResult] = None
    language_detection: Optional[LanguageDetectionResult] = None
    clarification_request: Optional[ClarificationRequest] = None
    updated_context: Optional[ConversationContext] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def requires_clarification(self) -> bool:
        return bool(self.metadata.get("requires_clarification"))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses; language fields only appear when detection ran"""
        result = {
            "success": self.success,
            "conversation_id": self.conversation_id,
            "response": self.response,
            "intent_result": self.intent_result.to_dict() if self.intent_result else None,
            "entity_result": self.entity_result.to_dict() if self.entity_result else None,
            "routing_result": self.routing_result.to_dict() if self.routing_result else None,
            "clarification_request": (
                self.clarification_request.to_dict() if self.clarification_request else None
            ),
            "updated_context": self.updated_context.to_dict() if self.updated_context else None,
            "metadata": dict(self.metadata),
            "error": self.error,
        }
        if self.language_detection is not None:
            result["language_detection"] = self.language_detection.to_dict()
        return result


class ConversationManager:
    """
    Main conversation processing pipeline.

    This class coordinates all components to process user messages through:
    1. Input sanitization and language detection
    2. Context retrieval and pending-clarification follow-up
    3. Intent recognition and entity extraction
    4. Clarification decision
    5. Agent routing
    6. Context persistence

    Every change a message makes is staged on a copy of the context; the
    pending clarification table and context cache only change after the
    state store has accepted the new context.
    """

    def __init__(self, config: Optional[ConversationConfig] = None,
                 router: Optional[AgentRouter] = None,
                 storage: Optional[StateStore] = None,
                 intent_model: Optional[IntentModel] = None):
        self.config = config or ConversationConfig()

        # Initialize components
        self.language_detector = LanguageDetector(self.config.default_language)
        self.intent_recognizer = IntentRecognizer(
            confidence_threshold=self.config.intent_confidence_threshold,
            fallback_intent=IntentType(self.config.fallback_intent),
        )
        self.entity_extractor = EntityExtractor(self.config.entity_confidence_threshold)
        self.clarification_engine = ClarificationEngine(
            max_attempts=self.config.max_clarification_attempts,
            enabled=self.config.enable_clarification_questions,
        )
        self.pending_clarifications = PendingClarificationStore()
        self.intent_model = intent_model

        # Collaborators
        self.router: Optional[AgentRouter] = router or RuleBasedAgentRouter(
            fallback_agent=self.config.fallback_agent,
            confidence_threshold=self.config.routing_confidence_threshold,
        )
        self._owns_storage = storage is None
        self.storage: Optional[StateStore] = storage or InMemoryStateStore(StorageConfig(
            default_ttl=self._context_ttl(),
            cleanup_interval=self._cleanup_interval(),
        ))
        self.context_store: Optional[ConversationContextStore] = ConversationContextStore(
            self.storage,
            max_history=self.config.max_context_history,
            max_context_age=self._context_ttl(),
            max_cache_size=self.config.max_cached_contexts,
        )
        self._is_shutdown = False

        # Processing metrics
        self.metrics = self._empty_metrics()

        logger.info(
            "Conversation manager initialized",
            extra={
                "multilingual": self.config.enable_multilingual_support,
                "clarification": self.config.enable_clarification_questions,
                "default_language": self.config.default_language,
            }
        )

    async def process_message(self, text: Optional[str], conversation_id: Optional[str] = None,
                              user_id: Optional[str] = None) -> ProcessMessageResult:
        """
        Process a user message through the conversation pipeline.

        Args:
            text: User's message; any string including an empty one is accepted
            conversation_id: Conversation identifier, generated when blank. IDs
                that fail InputValidator.require_conversation_id produce a
                failed result with error_type ValidationError
            user_id: Optional user identifier

        Returns:
            Processing result. success is False only when a collaborator
            (state store or router) failed or the conversation ID is invalid.
        """
        start_time = time.time()
        message = InputValidator.sanitize_message(text, self.config.max_input_length)
        conversation_id = (conversation_id or "").strip() or str(uuid.uuid4())

        detection: Optional[LanguageDetectionResult] = None
        response_language = self.config.default_language
        intent_result: Optional[IntentResult] = None

        try:
            conversation_id = InputValidator.require_conversation_id(conversation_id)

            # Stage 1: Language detection
            if self.config.enable_multilingual_support:
                detection = self.language_detector.detect(message)

            # Stage 2: Context retrieval
            context_store = await self._ensure_store()
            context = await context_store.get_or_create(conversation_id, user_id or "anonymous")
            staged = context.copy()
            self._update_languages(staged, detection)
            response_language = self._response_language(staged, detection)
            language = detection.language if detection else response_language

            # Stage 3: Understanding, folding in any pending clarification
            pending = self.pending_clarifications.get(conversation_id)
            clarification_request: Optional[ClarificationRequest] = None
            clarification_state = ClarificationState.NONE

            if pending is not None:
                merged = self.clarification_engine.merge_input(pending, message)
                intent_result = await self._recognize_intent(merged, language)
                entity_result = self._extract_entities(merged, intent_result, language, staged)

                answer_intent = self.intent_recognizer.recognize(message, language)
                answer_entities = self._extract_entities(message, answer_intent, language, staged)
                merged_analysis = self.clarification_engine.analyze(merged, intent_result, entity_result)

                if self.clarification_engine.is_resolved(pending, message, merged_analysis, entity_result,
                                                          answer_intent, answer_entities):
                    clarification_state = ClarificationState.RESOLVED
                else:
                    clarification_request = self.clarification_engine.next_attempt(
                        pending, merged, merged_analysis, intent_result.intent, response_language
                    )
                    clarification_state = (
                        ClarificationState.PENDING if clarification_request else ClarificationState.EXPIRED
                    )
            else:
                intent_result = await self._recognize_intent(message, language)
                entity_result = self._extract_entities(message, intent_result, language, staged)
                clarification_request = self.clarification_engine.evaluate(
                    conversation_id, message, intent_result, entity_result, response_language
                )
                if clarification_request:
                    clarification_state = ClarificationState.PENDING

            logger.debug(
                f"Understood message for {conversation_id}: {intent_result.intent.value} "
                f"({intent_result.confidence:.2f})",
                extra={"entities": entity_result.entities, "language": language}
            )

            # Stage 4: Routing
            routing_result: Optional[RoutingResult] = None
            if clarification_request is None:
                routing_result = await self._route(intent_result, entity_result, staged)

            # Stage 5: Persistence
            turn = ConversationTurn(
                user_input=message,
                intent=intent_result.intent.value,
                entities=entity_result.entities,
                target_agent=routing_result.target_agent if routing_result else None,
                requires_clarification=clarification_request is not None,
                language=language,
            )
            staged.add_turn(turn, self.config.max_context_history)
            staged.pending_clarification_id = (
                clarification_request.request_id if clarification_request else None
            )
            await context_store.save(staged)
            await context_store.record_turn(conversation_id, turn)

            # Stage 6: Commit the clarification table
            if clarification_request:
                self.pending_clarifications.put(clarification_request)
            else:
                self.pending_clarifications.remove(conversation_id)

            processing_time = (time.time() - start_time) * 1000
            self._update_metrics(True, processing_time, clarification_request, clarification_state)

            if clarification_request:
                response = clarification_request.question
            else:
                response = templates.routed_response(routing_result.target_agent, response_language)

            metadata = {
                "requires_clarification": clarification_request is not None,
                "response_language": response_language,
                "processing_time_ms": processing_time,
                "clarification_resolved": clarification_state == ClarificationState.RESOLVED,
                "clarification_state": clarification_state.value,
            }
            if detection is not None:
                metadata["detected_language"] = detection.language

            return ProcessMessageResult(
                success=True,
                conversation_id=conversation_id,
                response=response,
                intent_result=intent_result,
                entity_result=entity_result,
                routing_result=routing_result,
                language_detection=detection,
                clarification_request=clarification_request,
                updated_context=staged,
                metadata=metadata,
            )

        except Exception as e:
            logger.error(f"Error processing message for {conversation_id}: {str(e)}", exc_info=True)

            processing_time = (time.time() - start_time) * 1000
            self._update_metrics(False, processing_time)

            metadata = {
                "requires_clarification": False,
                "response_language": response_language,
                "processing_time_ms": processing_time,
                "clarification_resolved": False,
                "error": str(e),
                "error_type": type(e).__name__,
            }
            if detection is not None:
                metadata["detected_language"] = detection.language

            return ProcessMessageResult(
                success=False,
                conversation_id=conversation_id,
                response=templates.localize(templates.HEADERS["processing_error"], response_language),
                intent_result=intent_result,
                language_detection=detection,
                metadata=metadata,
                error=str(e),
            )

    def detect_language(self, text: Optional[str]) -> LanguageDetectionResult:
        """Detect the language of a text without touching any conversation"""
        return self.language_detector.detect(InputValidator.sanitize_message(text, self.config.max_input_length))

    def get_supported_languages(self) -> List[str]:
        return self.language_detector.get_supported_languages()

    async def set_preferred_language(self, conversation_id: str, language: str):
        """
        Set the sticky preferred language of a conversation.

        Raises:
            ValidationError: If the conversation ID or language tag is invalid
            StoreError: If the context could not be persisted
        """
        conversation_id = InputValidator.require_conversation_id(conversation_id)
        InputValidator.require_language(language)

        context_store = await self._ensure_store()
        context = await context_store.get_or_create(conversation_id)
        context.preferred_language = language
        await context_store.save(context)
        logger.info(f"Preferred language for {conversation_id} set to {language}")

    async def get_preferred_language(self, conversation_id: str) -> Optional[str]:
        """
        Preferred language of a conversation, or None.

        Reads through the context cache to the state store, so preferences
        saved by another manager sharing the store are visible.
        """
        if self._is_shutdown:
            return None
        context_store = await self._ensure_store()
        context = await context_store.load(conversation_id)
        return context.preferred_language if context else None

    def get_conversation_stats(self) -> Dict[str, Any]:
        """Get conversation and processing statistics"""
        active = len(self.context_store.active_conversation_ids()) if self.context_store else 0
        return {
            "active_conversations": active,
            "pending_clarifications": self.pending_clarifications.count(),
            "total_messages": self.metrics["total_processed"],
            "successful_messages": self.metrics["successful"],
            "failed_messages": self.metrics["failed"],
            "clarifications_raised": self.metrics["clarifications_raised"],
            "clarifications_resolved": self.metrics["clarifications_resolved"],
            "clarifications_expired": self.metrics["clarifications_expired"],
            "average_processing_time_ms": self.metrics["avg_processing_time"],
        }

    def get_pending_clarification(self, conversation_id: str) -> Optional[ClarificationRequest]:
        return self.pending_clarifications.get(conversation_id)

    def cancel_clarification_request(self, conversation_id: str) -> bool:
        """
        Drop a pending clarification.

        Returns:
            True if a request was pending, False otherwise
        """
        canceled = self.pending_clarifications.remove(conversation_id)
        if canceled:
            logger.info(f"Clarification for {conversation_id} {ClarificationState.CANCELED.value}")
        return canceled

    async def clear_conversation_context(self, conversation_id: str):
        """Forget a conversation: cached context, pending clarification and stored record"""
        self.pending_clarifications.remove(conversation_id)
        context_store = await self._ensure_store()
        await context_store.delete(conversation_id)
        logger.info(f"Cleared context for conversation {conversation_id}")

    async def shutdown(self):
        """Release pending state and collaborators; safe to call more than once"""
        if self._is_shutdown:
            return
        self._is_shutdown = True

        dropped = self.pending_clarifications.clear()
        if self.context_store is not None:
            self.context_store.clear_cache()
        if self.storage is not None:
            try:
                await self.storage.close()
            except Exception as e:
                logger.error(f"Error closing state store: {str(e)}")

        self.storage = None
        self.context_store = None
        self.router = None
        self.intent_model = None
        logger.info(f"Conversation manager shut down ({dropped} pending clarifications discarded)")

    def get_metrics(self) -> Dict[str, Any]:
        """Get processing metrics"""
        return self.metrics.copy()

    def reset_metrics(self):
        """Reset processing metrics"""
        self.metrics = self._empty_metrics()

    async def _ensure_store(self) -> ConversationContextStore:
        """Connect the state store on first use"""
        if self._is_shutdown or self.context_store is None:
            raise StoreError("Conversation manager has been shut down")
        if not self.storage.is_connected:
            await self.storage.connect()
            if self._owns_storage and isinstance(self.storage, InMemoryStateStore):
                self.storage.start_background_cleanup()
        return self.context_store

    async def _recognize_intent(self, text: str, language: str) -> IntentResult:
        """Model recognizer first when enabled, rule tables otherwise"""
        if self.config.enable_llm_intent_recognition and self.intent_model is not None:
            try:
                result = await self.intent_model.recognize(text, language)
            except Exception as e:
                logger.warning(f"Intent model failed, using rules: {str(e)}")
                result = None
            if result is not None:
                return result
        return self.intent_recognizer.recognize(text, language)

    def _extract_entities(self, text: str, intent_result: IntentResult, language: str,
                          context: ConversationContext) -> EntityResult:
        if not self.config.enable_entity_extraction:
            return EntityResult(language=language)
        return self.entity_extractor.extract(
            text,
            intent=intent_result.intent,
            language=language,
            context=context if self.config.enable_context_learning else None,
        )

    async def _route(self, intent_result: IntentResult, entity_result: EntityResult,
                     context: ConversationContext) -> RoutingResult:
        if self.router is None:
            raise RoutingError("No router configured")

        routing_result = await self.router.route(intent_result, entity_result.entities, context)
        if not isinstance(routing_result, RoutingResult):
            raise RoutingError(f"Router returned {type(routing_result).__name__}, expected RoutingResult")

        if routing_result.target_agent not in KNOWN_AGENTS:
            logger.warning(
                f"Router chose unknown agent {routing_result.target_agent!r}, "
                f"using {self.config.fallback_agent}"
            )
            routing_result.target_agent = self.config.fallback_agent
            routing_result.is_fallback = True
        return routing_result

    def _update_languages(self, context: ConversationContext,
                          detection: Optional[LanguageDetectionResult]):
        if detection is None:
            return
        context.detected_language = detection.language
        if detection.confidence >= self.config.preferred_language_threshold:
            context.preferred_language = detection.language

    def _response_language(self, context: ConversationContext,
                           detection: Optional[LanguageDetectionResult]) -> str:
        if detection is not None and detection.confidence >= self.config.clarification_language_threshold:
            return detection.language
        return context.preferred_language or self.config.default_language

    def _update_metrics(self, success: bool, processing_time: float,
                        clarification_request: Optional[ClarificationRequest] = None,
                        clarification_state: ClarificationState = ClarificationState.NONE):
        """Update processing metrics"""
        self.metrics["total_processed"] += 1

        if success:
            self.metrics["successful"] += 1
        else:
            self.metrics["failed"] += 1

        if clarification_request is not None and clarification_request.attempts == 1:
            self.metrics["clarifications_raised"] += 1
        if clarification_state == ClarificationState.RESOLVED:
            self.metrics["clarifications_resolved"] += 1
        elif clarification_state == ClarificationState.EXPIRED:
            self.metrics["clarifications_expired"] += 1

        # Update average processing time
        current_avg = self.metrics["avg_processing_time"]
        total = self.metrics["total_processed"]
        self.metrics["avg_processing_time"] = (
            (current_avg * (total - 1) + processing_time) / total
        )

    def _context_ttl(self) -> timedelta:
        return timedelta(seconds=self.config.context_ttl_seconds)

    def _cleanup_interval(self) -> timedelta:
        return timedelta(seconds=self.config.cleanup_interval_seconds)

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            "total_processed": 0,
            "successful": 0,
            "failed": 0,
            "clarifications_raised": 0,
            "clarifications_resolved": 0,
            "clarifications_expired": 0,
            "avg_processing_time": 0,
        }
