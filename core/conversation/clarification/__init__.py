"""Clarification components"""

from .engine import (
    ClarificationAnalysis,
    ClarificationEngine,
    ClarificationRequest,
    ClarificationState,
    GuidanceType,
)
from .store import PendingClarificationStore

__all__ = [
    'ClarificationAnalysis',
    'ClarificationEngine',
    'ClarificationRequest',
    'ClarificationState',
    'GuidanceType',
    'PendingClarificationStore',
]
