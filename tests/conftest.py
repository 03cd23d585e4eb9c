"""
Shared pytest fixtures for conversation tests.

Provides fixtures for:
- Conversation configuration
- Conversation manager factory with custom configs
- State stores that fail on demand
"""

import pytest
import pytest_asyncio
from dataclasses import replace
from typing import Any, Optional
from datetime import timedelta

from core.conversation import ConversationConfig, ConversationManager
from core.conversation.context import InMemoryStateStore, StoreError
from core.conversation.understanding import (
    LanguageDetector,
    IntentRecognizer,
    EntityExtractor,
)
from core.conversation.clarification import ClarificationEngine


class FailingStateStore(InMemoryStateStore):
    """In-memory store whose writes can be switched to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_puts = False
        self.fail_appends = False

    async def put(self, key: str, value: Any, ttl: Optional[timedelta] = None):
        if self.fail_puts:
            raise StoreError("simulated write failure")
        await super().put(key, value, ttl)

    async def append(self, key: str, item: Any, max_items: Optional[int] = None,
                     ttl: Optional[timedelta] = None) -> int:
        if self.fail_appends:
            raise StoreError("simulated append failure")
        return await super().append(key, item, max_items, ttl)


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """Default configuration with the model recognizer switched off."""
    return ConversationConfig(enable_llm_intent_recognition=False)


# =============================================================================
# Components
# =============================================================================

@pytest.fixture
def detector():
    return LanguageDetector()


@pytest.fixture
def recognizer():
    return IntentRecognizer()


@pytest.fixture
def extractor():
    return EntityExtractor()


@pytest.fixture
def engine():
    return ClarificationEngine(max_attempts=3)


# =============================================================================
# Managers
# =============================================================================

@pytest_asyncio.fixture
async def manager_factory(config):
    """Build managers with config overrides; all are shut down afterwards."""
    created = []

    def _create(storage=None, router=None, intent_model=None, **overrides):
        manager = ConversationManager(
            replace(config, **overrides),
            router=router,
            storage=storage if storage is not None else InMemoryStateStore(),
            intent_model=intent_model,
        )
        created.append(manager)
        return manager

    yield _create

    for manager in created:
        await manager.shutdown()


@pytest_asyncio.fixture
async def manager(manager_factory):
    """Manager with the default configuration."""
    return manager_factory()


@pytest.fixture
def failing_store():
    return FailingStateStore()
