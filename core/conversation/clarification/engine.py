"""
Clarification engine.

Decides whether an utterance needs a follow-up question (missing required
entities, ambiguous references, bare commands, unrecognizable input),
builds localized clarification requests, and judges whether the user's next
message answered a pending request.

A conversation's clarification moves through
NONE -> PENDING -> RESOLVED | CANCELED | EXPIRED-BY-MAX-ATTEMPTS; the pending
entries themselves live in a PendingClarificationStore owned by the manager.
"""

import re
import uuid
import logging
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum

from core.conversation.understanding.intent_recognizer import IntentType, IntentResult
from core.conversation.understanding.entity_extractor import EntityResult, TIME_PERIODS
from . import templates

logger = logging.getLogger(__name__)


class GuidanceType(str, Enum):
    """Why a clarification was raised"""
    ENTITY_MISSING = "entity_missing"
    CONTEXT_NEEDED = "context_needed"
    INCOMPLETE_COMMAND = "incomplete_command"
    AMBIGUOUS_INTENT = "ambiguous_intent"


class ClarificationState(str, Enum):
    """Lifecycle of a conversation's clarification"""
    NONE = "none"
    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELED = "canceled"
    EXPIRED = "expired_by_max_attempts"


# Required entities per intent, keyed by the action that triggers the requirement
REQUIRED_ENTITIES: Dict[IntentType, List[tuple]] = {
    IntentType.INVENTORY_MANAGEMENT: [
        ("item_name", {"添加", "消耗", "更新"}),
        ("quantity", {"添加", "消耗"}),
    ],
    IntentType.PROCUREMENT_MANAGEMENT: [
        ("platform", {"导入"}),
    ],
}

# Inputs that name an operation or a domain but nothing to act on
BARE_COMMANDS = {
    "查询", "查看", "添加", "消耗", "导入", "分析", "发送", "更新", "删除", "修改", "购买",
    "库存", "采购", "订单", "财务", "报告", "通知", "提醒",
    "query", "check", "add", "consume", "import", "analyze", "send", "update", "delete",
    "inventory", "stock", "orders", "report", "notify",
}

# Below this, a fallback intent with no entities counts as not understood
INTENT_CLARIFICATION_THRESHOLD = 0.5

_CONCRETE_ENTITIES = ("item_name", "items", "platform", "platforms")
_CLASSIFIABLE = re.compile(r"[A-Za-z\u4e00-\u9fff]")
_PUNCTUATION = re.compile(r"[\s\W_]+", re.UNICODE)


@dataclass
class ClarificationAnalysis:
    """Outcome of the raise decision for one utterance"""
    needs_clarification: bool
    guidance_type: Optional[GuidanceType] = None
    missing_entities: List[str] = field(default_factory=list)
    ambiguous_terms: List[str] = field(default_factory=list)


@dataclass
class ClarificationRequest:
    """An outstanding follow-up question for one conversation"""
    conversation_id: str
    question: str
    expected_entity_type: str
    guidance_type: GuidanceType
    original_input: str
    missing_entities: List[str] = field(default_factory=list)
    suggested_responses: List[str] = field(default_factory=list)
    attempts: int = 1
    max_attempts: int = 3
    intent: Optional[str] = None
    language: Optional[str] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "conversation_id": self.conversation_id,
            "question": self.question,
            "expected_entity_type": self.expected_entity_type,
            "guidance_type": self.guidance_type.value,
            "missing_entities": list(self.missing_entities),
            "suggested_responses": list(self.suggested_responses),
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "original_input": self.original_input,
            "intent": self.intent,
            "language": self.language,
            "created_at": self.created_at.isoformat(),
        }


class ClarificationEngine:
    """
    Raise decision, question generation and answer resolution.

    The engine is stateless; callers keep pending requests and pass them back
    in when the next message arrives.
    """

    def __init__(self, max_attempts: int = 3, enabled: bool = True):
        self.max_attempts = max_attempts
        self.enabled = enabled
        self._initialize_patterns()

    def _initialize_patterns(self):
        """Compile ambiguous-term and time-period patterns"""
        self.term_patterns = []
        for group, terms in templates.AMBIGUOUS_TERM_GROUPS.items():
            for term in terms:
                if term.isascii():
                    pattern = re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)
                else:
                    pattern = re.compile(re.escape(term))
                self.term_patterns.append((term, group, pattern))

        # Phrases like 这个月 contain demonstratives but are specific
        periods = sorted(TIME_PERIODS, key=len, reverse=True)
        self.time_period_pattern = re.compile("|".join(re.escape(p) for p in periods), re.IGNORECASE)

    def analyze(self, text: str, intent_result: IntentResult,
                entity_result: EntityResult) -> ClarificationAnalysis:
        """
        Decide whether an utterance needs clarification.

        Checks run in order: missing required entities, ambiguous terms,
        bare commands, unrecognizable input.
        """
        missing = self.find_missing_entities(intent_result.intent, entity_result.entities)
        if missing:
            return ClarificationAnalysis(True, GuidanceType.ENTITY_MISSING, missing_entities=missing)

        ambiguous = self.find_ambiguous_terms(text, entity_result.entities)
        if ambiguous:
            return ClarificationAnalysis(True, GuidanceType.CONTEXT_NEEDED, ambiguous_terms=ambiguous)

        if self.is_incomplete_command(text, entity_result.entities):
            return ClarificationAnalysis(True, GuidanceType.INCOMPLETE_COMMAND)

        if self._is_unrecognized(text, intent_result, entity_result):
            return ClarificationAnalysis(True, GuidanceType.AMBIGUOUS_INTENT)

        return ClarificationAnalysis(False)

    def find_missing_entities(self, intent: IntentType, entities: Dict[str, Any]) -> List[str]:
        """Required entities the utterance did not supply"""
        action = entities.get("action")
        missing = []
        for entity_name, actions in REQUIRED_ENTITIES.get(intent, []):
            if action in actions and not self._has_entity(entities, entity_name):
                missing.append(entity_name)
        return missing

    def find_ambiguous_terms(self, text: str, entities: Dict[str, Any]) -> List[str]:
        """Ambiguous terms in the text, unless a concrete item or platform resolves them"""
        if any(entities.get(name) for name in _CONCRETE_ENTITIES):
            return []
        stripped = self.time_period_pattern.sub(" ", text or "")
        return [term for term, _, pattern in self.term_patterns if pattern.search(stripped)]

    def is_incomplete_command(self, text: str, entities: Dict[str, Any]) -> bool:
        """A bare operation or domain word with nothing to act on"""
        normalized = _PUNCTUATION.sub("", (text or "").lower())
        if normalized not in BARE_COMMANDS:
            return False
        return not any(value is not None for key, value in entities.items() if key != "action")

    def _is_unrecognized(self, text: str, intent_result: IntentResult,
                         entity_result: EntityResult) -> bool:
        if not _CLASSIFIABLE.search(text or ""):
            return False
        return (intent_result.is_fallback
                and intent_result.confidence < INTENT_CLARIFICATION_THRESHOLD
                and not entity_result.entities)

    def build_request(self, conversation_id: str, analysis: ClarificationAnalysis,
                      original_input: str, intent: Optional[IntentType] = None,
                      language: Optional[str] = None, attempts: int = 1) -> ClarificationRequest:
        """Build a localized clarification request from an analysis"""
        guidance = analysis.guidance_type
        header = templates.localize(templates.HEADERS[guidance.value], language)
        questions = self._generate_questions(analysis, intent, language)

        return ClarificationRequest(
            conversation_id=conversation_id,
            question=templates.format_question(header, questions),
            expected_entity_type=analysis.missing_entities[0] if analysis.missing_entities else "general",
            guidance_type=guidance,
            original_input=original_input,
            missing_entities=list(analysis.missing_entities),
            suggested_responses=self._generate_suggestions(analysis, language),
            attempts=attempts,
            max_attempts=self.max_attempts,
            intent=intent.value if intent else None,
            language=language,
        )

    def evaluate(self, conversation_id: str, text: str, intent_result: IntentResult,
                 entity_result: EntityResult, language: Optional[str] = None) -> Optional[ClarificationRequest]:
        """
        Raise decision for a fresh utterance.

        Returns:
            A first-attempt request, or None when the turn can be routed
        """
        if not self.enabled:
            return None
        analysis = self.analyze(text, intent_result, entity_result)
        if not analysis.needs_clarification:
            return None
        logger.info(
            f"Clarification needed for conversation {conversation_id}",
            extra={"guidance_type": analysis.guidance_type.value,
                   "missing_entities": analysis.missing_entities}
        )
        return self.build_request(conversation_id, analysis, text, intent_result.intent, language)

    def merge_input(self, pending: ClarificationRequest, answer: str) -> str:
        """Combine the utterance that triggered a request with its answer"""
        return f"{pending.original_input} {answer}".strip()

    def is_resolved(self, pending: ClarificationRequest, answer: str,
                    merged_analysis: ClarificationAnalysis, merged_entities: EntityResult,
                    answer_intent: IntentResult, answer_entities: EntityResult) -> bool:
        """
        Judge whether a message answered a pending request.

        Missing-entity requests are resolved once the merged input supplies
        every previously missing entity. Other requests are resolved when
        the answer on its own is specific: not ambiguous and carrying a
        recognized intent or entity.
        """
        if not merged_analysis.needs_clarification:
            return True

        if pending.guidance_type == GuidanceType.ENTITY_MISSING:
            return all(self._has_entity(merged_entities.entities, name) for name in pending.missing_entities)

        if not (answer or "").strip():
            return False
        if self.find_ambiguous_terms(answer, answer_entities.entities):
            return False
        return not answer_intent.is_fallback or bool(answer_entities.entities)

    def next_attempt(self, pending: ClarificationRequest, merged_text: str,
                     merged_analysis: ClarificationAnalysis, intent: Optional[IntentType],
                     language: Optional[str]) -> Optional[ClarificationRequest]:
        """
        Re-raise an unresolved request.

        Returns:
            The replacement request with attempts + 1, or None once the
            attempt cap is reached
        """
        if not self.enabled or pending.attempts >= self.max_attempts:
            logger.info(
                f"Clarification attempts exhausted for conversation {pending.conversation_id}, "
                f"proceeding without clarification"
            )
            return None

        analysis = merged_analysis
        if not analysis.needs_clarification:
            analysis = ClarificationAnalysis(
                True, pending.guidance_type, missing_entities=list(pending.missing_entities)
            )
        request = self.build_request(
            pending.conversation_id, analysis, merged_text, intent, language,
            attempts=pending.attempts + 1,
        )
        request.request_id = pending.request_id
        return request

    def _generate_questions(self, analysis: ClarificationAnalysis, intent: Optional[IntentType],
                            language: Optional[str]) -> List[str]:
        guidance = analysis.guidance_type

        if guidance == GuidanceType.ENTITY_MISSING:
            questions = []
            for entity_name in analysis.missing_entities:
                table = templates.ENTITY_QUESTIONS.get(entity_name)
                if table:
                    questions.append(templates.localize(table, language))
                else:
                    default = templates.localize(templates.DEFAULT_ENTITY_QUESTION, language)
                    questions.append(default.format(entity=entity_name))
            return questions

        if guidance == GuidanceType.CONTEXT_NEEDED:
            groups = []
            for term in analysis.ambiguous_terms:
                group = self._term_group(term)
                if group not in groups:
                    groups.append(group)
            return [templates.localize(templates.AMBIGUITY_QUESTIONS[group], language) for group in groups]

        if guidance == GuidanceType.INCOMPLETE_COMMAND:
            table = templates.COMPLETION_QUESTIONS.get(intent.value if intent else "",
                                                       templates.DEFAULT_COMPLETION_QUESTION)
            return [templates.localize(table, language)]

        return []

    def _generate_suggestions(self, analysis: ClarificationAnalysis, language: Optional[str]) -> List[str]:
        if analysis.guidance_type == GuidanceType.ENTITY_MISSING:
            suggestions: List[str] = []
            for entity_name in analysis.missing_entities:
                table = templates.ENTITY_SUGGESTIONS.get(entity_name)
                if table:
                    suggestions.extend(templates.localize_list(table, language))
            return suggestions
        return templates.localize_list(templates.GUIDANCE_SUGGESTIONS[analysis.guidance_type.value], language)

    def _term_group(self, term: str) -> str:
        for known, group, _ in self.term_patterns:
            if known == term:
                return group
        return "reference"

    @staticmethod
    def _has_entity(entities: Dict[str, Any], name: str) -> bool:
        if entities.get(name) is not None:
            return True
        plural = {"item_name": "items", "quantity": "quantities", "platform": "platforms"}.get(name)
        return bool(plural and entities.get(plural))
