"""Agent routing components"""

from .router import (
    AgentRouter,
    AgentType,
    RoutingError,
    RoutingResult,
    RuleBasedAgentRouter,
)

__all__ = [
    'AgentRouter',
    'AgentType',
    'RoutingError',
    'RoutingResult',
    'RuleBasedAgentRouter',
]
