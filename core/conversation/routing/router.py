"""
Agent routing.

Maps a recognized intent and its entities to the capability agent that
should act on it. The conversation manager only depends on the AgentRouter
interface; RuleBasedAgentRouter is the deterministic default.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from core.conversation.understanding.intent_recognizer import IntentType, IntentResult
from core.conversation.context import ConversationContext

logger = logging.getLogger(__name__)


class AgentType(str, Enum):
    """Downstream capability agents"""
    INVENTORY = "inventory"
    PROCUREMENT = "procurement"
    FINANCE = "finance"
    NOTIFICATION = "notification"


KNOWN_AGENTS = {agent.value for agent in AgentType}

FALLBACK_CONFIDENCE = 0.2


class RoutingError(Exception):
    """Raised when a router cannot produce a decision"""
    pass


@dataclass
class RoutingResult:
    """Routing decision for one turn"""
    target_agent: str
    confidence: float
    reasoning: str = ""
    is_fallback: bool = False
    suggested_actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_agent": self.target_agent,
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "is_fallback": self.is_fallback,
            "suggested_actions": list(self.suggested_actions),
        }


class AgentRouter(ABC):
    """Routing collaborator interface"""

    @abstractmethod
    async def route(self, intent: IntentResult, entities: Dict[str, Any],
                    context: ConversationContext) -> RoutingResult:
        """
        Decide which agent handles a turn.

        Args:
            intent: Recognized intent
            entities: Authoritative entity bag
            context: Conversation context including session history

        Returns:
            Routing decision; must always name an agent
        """
        pass


class RuleBasedAgentRouter(AgentRouter):
    """
    Routes by a fixed intent-to-agent table.

    Query intents are routed by the entities they mention. Anything without
    a confident match goes to the fallback agent.
    """

    INTENT_AGENT_MAP: Dict[IntentType, AgentType] = {
        IntentType.INVENTORY_MANAGEMENT: AgentType.INVENTORY,
        IntentType.PROCUREMENT_MANAGEMENT: AgentType.PROCUREMENT,
        IntentType.FINANCIAL_ANALYSIS: AgentType.FINANCE,
        IntentType.NOTIFICATION_MANAGEMENT: AgentType.NOTIFICATION,
    }

    SUGGESTED_ACTIONS: Dict[AgentType, List[str]] = {
        AgentType.INVENTORY: ["check_stock", "update_stock"],
        AgentType.PROCUREMENT: ["import_orders", "generate_shopping_list"],
        AgentType.FINANCE: ["generate_report", "analyze_spending"],
        AgentType.NOTIFICATION: ["send_notification"],
    }

    def __init__(self, fallback_agent: str = AgentType.INVENTORY.value,
                 confidence_threshold: float = 0.5):
        if fallback_agent not in KNOWN_AGENTS:
            raise ValueError(f"Unknown fallback agent: {fallback_agent}")
        self.fallback_agent = fallback_agent
        self.confidence_threshold = confidence_threshold

    async def route(self, intent: IntentResult, entities: Dict[str, Any],
                    context: ConversationContext) -> RoutingResult:
        agent = self.INTENT_AGENT_MAP.get(intent.intent)
        reasoning = f"intent {intent.intent.value}"

        if agent is None and intent.intent == IntentType.QUERY_INFORMATION:
            agent = self._agent_for_entities(entities)
            reasoning = f"query about {agent.value} entities" if agent else reasoning

        if agent is None or intent.confidence < self.confidence_threshold:
            return self._fallback(f"no confident match for {reasoning}")

        return RoutingResult(
            target_agent=agent.value,
            confidence=intent.confidence,
            reasoning=reasoning,
            suggested_actions=list(self.SUGGESTED_ACTIONS[agent]),
        )

    def _agent_for_entities(self, entities: Dict[str, Any]) -> Optional[AgentType]:
        if entities.get("platform"):
            return AgentType.PROCUREMENT
        if entities.get("time_period"):
            return AgentType.FINANCE
        if entities.get("item_name"):
            return AgentType.INVENTORY
        return None

    def _fallback(self, reasoning: str) -> RoutingResult:
        logger.debug(f"Routing to fallback agent {self.fallback_agent}: {reasoning}")
        return RoutingResult(
            target_agent=self.fallback_agent,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=reasoning,
            is_fallback=True,
        )
