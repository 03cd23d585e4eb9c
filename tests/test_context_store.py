"""
Tests for context storage and the conversation context store.

Verifies that:
1. The in-memory state store honors its lifecycle and TTLs
2. Context round-trips through persistence with bounded history
3. The context cache never runs ahead of the state store
"""

import pytest
from datetime import datetime, timedelta, timezone

from core.conversation.context import (
    ConversationContextStore,
    ConversationContext,
    ConversationTurn,
    InMemoryStateStore,
    StorageConfig,
    StoreError,
    StoreStatus,
)


class TestInMemoryStateStore:
    """Tests for the in-memory state store."""

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        store = InMemoryStateStore()

        assert store.status == StoreStatus.DISCONNECTED
        with pytest.raises(StoreError):
            await store.get("key")

    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        store = InMemoryStateStore()
        await store.connect()

        await store.put("key", {"value": 1})
        assert await store.get("key") == {"value": 1}
        assert await store.delete("key") is True
        assert await store.delete("key") is False
        assert await store.get("key") is None

    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        store = InMemoryStateStore()
        await store.connect()
        value = {"items": ["抽纸"]}

        await store.put("key", value)
        value["items"].append("牛奶")
        fetched = await store.get("key")
        fetched["items"].append("面包")

        assert await store.get("key") == {"items": ["抽纸"]}

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        store = InMemoryStateStore()
        await store.connect()

        await store.put("key", "value", ttl=timedelta(seconds=-1))

        assert await store.get("key") is None

    @pytest.mark.asyncio
    async def test_expire_and_cleanup(self):
        store = InMemoryStateStore()
        await store.connect()
        await store.put("a", 1)
        await store.append("b", 1)

        assert await store.expire("a", timedelta(seconds=-1)) is True
        assert await store.expire("missing", timedelta(seconds=10)) is False
        assert store.cleanup_expired() == 1
        assert store.key_count() == 1

    @pytest.mark.asyncio
    async def test_append_bounds_list(self):
        store = InMemoryStateStore(StorageConfig(max_list_items=3))
        await store.connect()

        for index in range(5):
            length = await store.append("turns", index)

        assert length == 3
        assert await store.get_list("turns") == [2, 3, 4]
        assert await store.get_list("turns", limit=2) == [3, 4]

    @pytest.mark.asyncio
    async def test_status_callback(self):
        transitions = []
        store = InMemoryStateStore(on_status_change=lambda old, new: transitions.append((old, new)))

        await store.connect()
        await store.close()

        assert transitions == [
            (StoreStatus.DISCONNECTED, StoreStatus.CONNECTED),
            (StoreStatus.CONNECTED, StoreStatus.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_closed_store_cannot_reconnect(self):
        store = InMemoryStateStore()
        await store.connect()
        await store.close()

        with pytest.raises(StoreError):
            await store.connect()
        with pytest.raises(StoreError):
            await store.put("key", "value")

    @pytest.mark.asyncio
    async def test_background_cleanup_lifecycle(self):
        store = InMemoryStateStore()
        await store.connect()

        store.start_background_cleanup()
        assert store._cleanup_task is not None
        await store.close()

        assert store._cleanup_task is None


class TestConversationContext:
    """Tests for the context dataclass."""

    def test_round_trip(self):
        now = datetime.now(timezone.utc)
        context = ConversationContext(
            conversation_id="c-1",
            user_id="u-1",
            detected_language="en-US",
            preferred_language="en-US",
            pending_clarification_id="r-1",
            created_at=now,
            last_updated=now,
        )
        context.add_turn(ConversationTurn(user_input="add milk", intent="inventory_management"), 10)

        restored = ConversationContext.from_dict(context.to_dict())

        assert restored.conversation_id == "c-1"
        assert restored.preferred_language == "en-US"
        assert restored.pending_clarification_id == "r-1"
        assert restored.created_at == now
        assert restored.session_history[0]["user_input"] == "add milk"

    def test_history_is_bounded(self):
        context = ConversationContext(conversation_id="c-1")

        for index in range(5):
            context.add_turn(ConversationTurn(user_input=str(index)), max_history=3)

        assert [turn["user_input"] for turn in context.session_history] == ["2", "3", "4"]

    def test_last_entity_value(self):
        context = ConversationContext(conversation_id="c-1")
        context.add_turn(ConversationTurn(user_input="a", entities={"item_name": "抽纸"}), 10)
        context.add_turn(ConversationTurn(user_input="b", entities={"item_name": "牛奶"}), 10)
        context.add_turn(ConversationTurn(user_input="c", entities={}), 10)

        assert context.last_entity_value("item_name") == "牛奶"
        assert context.last_entity_value("platform") is None

    def test_copy_is_independent(self):
        context = ConversationContext(conversation_id="c-1")
        staged = context.copy()

        staged.add_turn(ConversationTurn(user_input="x"), 10)

        assert context.session_history == []


class TestConversationContextStore:
    """Tests for the cached context store."""

    @pytest.fixture
    def storage(self):
        return InMemoryStateStore()

    @pytest.fixture
    def context_store(self, storage):
        return ConversationContextStore(storage, max_history=2)

    @pytest.mark.asyncio
    async def test_get_or_create_does_not_persist(self, storage, context_store):
        await storage.connect()

        context = await context_store.get_or_create("c-1", "u-1")

        assert context.user_id == "u-1"
        assert await context_store.load("c-1") is None
        assert context_store.get_cached("c-1") is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, storage, context_store):
        await storage.connect()
        context = await context_store.get_or_create("c-1")
        for index in range(3):
            context.add_turn(ConversationTurn(user_input=str(index)), max_history=10)

        await context_store.save(context)
        loaded = await context_store.load("c-1")

        assert len(loaded.session_history) == 2
        assert context_store.active_conversation_ids() == ["c-1"]

    @pytest.mark.asyncio
    async def test_load_returns_private_copy(self, storage, context_store):
        await storage.connect()
        await context_store.save(await context_store.get_or_create("c-1"))

        loaded = await context_store.load("c-1")
        loaded.preferred_language = "en-US"

        assert context_store.get_cached("c-1").preferred_language is None

    @pytest.mark.asyncio
    async def test_failed_save_leaves_cache_untouched(self, failing_store):
        context_store = ConversationContextStore(failing_store)
        await failing_store.connect()
        await context_store.save(await context_store.get_or_create("c-1"))

        staged = await context_store.load("c-1")
        staged.preferred_language = "en-US"
        failing_store.fail_puts = True
        with pytest.raises(StoreError):
            await context_store.save(staged)

        assert context_store.get_cached("c-1").preferred_language is None

    @pytest.mark.asyncio
    async def test_record_turn_is_best_effort(self, failing_store):
        context_store = ConversationContextStore(failing_store)
        await failing_store.connect()
        turn = ConversationTurn(user_input="查询库存")

        assert await context_store.record_turn("c-1", turn) is True
        failing_store.fail_appends = True
        assert await context_store.record_turn("c-1", turn) is False

        history = await context_store.get_conversation_history("c-1")
        assert [entry["user_input"] for entry in history] == ["查询库存"]

    @pytest.mark.asyncio
    async def test_delete(self, storage, context_store):
        await storage.connect()
        await context_store.save(await context_store.get_or_create("c-1"))
        await context_store.record_turn("c-1", ConversationTurn(user_input="x"))

        await context_store.delete("c-1")

        assert context_store.get_cached("c-1") is None
        assert await context_store.load("c-1") is None
        assert await context_store.get_conversation_history("c-1") == []

    @pytest.mark.asyncio
    async def test_stale_context_is_reloaded(self, storage):
        context_store = ConversationContextStore(storage, max_context_age=timedelta(hours=1))
        await storage.connect()
        await context_store.save(await context_store.get_or_create("c-1"))

        context_store._context_cache["c-1"].last_updated -= timedelta(hours=2)

        assert context_store.get_cached("c-1") is None
        assert context_store.active_conversation_ids() == []
        assert (await context_store.load("c-1")).conversation_id == "c-1"

    @pytest.mark.asyncio
    async def test_stale_entries_are_evicted(self, storage):
        context_store = ConversationContextStore(storage, max_context_age=timedelta(hours=1))
        await storage.connect()
        for conversation_id in ("c-1", "c-2", "c-3"):
            await context_store.save(await context_store.get_or_create(conversation_id))

        context_store._context_cache["c-1"].last_updated -= timedelta(hours=2)
        context_store._context_cache["c-2"].last_updated -= timedelta(hours=2)

        assert context_store.get_cached("c-1") is None
        assert "c-1" not in context_store._context_cache
        assert context_store.active_conversation_ids() == ["c-3"]
        assert set(context_store._context_cache) == {"c-3"}

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self, storage):
        context_store = ConversationContextStore(storage, max_cache_size=2)
        await storage.connect()
        for conversation_id in ("c-1", "c-2", "c-3"):
            await context_store.save(await context_store.get_or_create(conversation_id))

        assert context_store.active_conversation_ids() == ["c-2", "c-3"]
        assert context_store.get_cached("c-1") is None

        reloaded = await context_store.load("c-1")

        assert reloaded.conversation_id == "c-1"
        assert context_store.active_conversation_ids() == ["c-3", "c-1"]
