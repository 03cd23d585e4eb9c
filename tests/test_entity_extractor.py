"""
Tests for entity extraction.

Verifies that:
1. Item/quantity/unit triples are extracted in Chinese and English
2. Plural fields stay aligned and scalars only appear when unambiguous
3. Platform names are normalized and never read as quantities
4. Intent relevance and the confidence threshold decide what is authoritative
5. References such as "这个" resolve against earlier turns
"""

import pytest

from core.conversation.context import ConversationContext
from core.conversation.understanding import EntityExtractor, EntityType, IntentType
from core.conversation.understanding.entity_extractor import parse_quantity, parse_chinese_number


class TestChineseExtraction:
    """Tests for Chinese pattern tables."""

    def test_item_quantity_unit_triple(self, extractor):
        result = extractor.extract("消耗抽纸2包", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["action"] == "消耗"
        assert result.entities["item_name"] == "抽纸"
        assert result.entities["quantity"] == 2
        assert result.entities["unit"] == "包"
        assert result.entities["items"] == ["抽纸"]
        assert result.entities["quantities"] == [2]

    def test_multiple_items(self, extractor):
        """Several triples produce aligned plural lists and no scalar quantity."""
        result = extractor.extract("添加牛奶3瓶和面包2个", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert {"牛奶", "面包"} <= set(result.entities["items"])
        assert result.entities["quantities"] == [3, 2]
        assert "quantity" not in result.entities
        assert result.entities["item_name"] == "牛奶"

    def test_repeated_item_stays_aligned(self, extractor):
        """Each mention of the same item pairs with its own quantity."""
        result = extractor.extract("添加牛奶3瓶和牛奶2个", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["items"] == ["牛奶", "牛奶"]
        assert result.entities["quantities"] == [3, 2]
        assert result.entities["unique_items"] == ["牛奶"]
        assert "quantity" not in result.entities

    def test_chinese_numerals(self, extractor):
        result = extractor.extract("添加牛奶两瓶", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["item_name"] == "牛奶"
        assert result.entities["quantity"] == 2
        assert result.entities["unit"] == "瓶"

    def test_zero_is_a_quantity(self, extractor):
        result = extractor.extract("消耗抽纸0包", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["quantity"] == 0
        assert result.has("quantity")

    def test_quantity_without_item(self, extractor):
        result = extractor.extract("添加2个", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["quantity"] == 2
        assert result.entities["unit"] == "个"
        assert "item_name" not in result.entities

    def test_gazetteer_item(self, extractor):
        result = extractor.extract("查询抽纸库存", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["item_name"] == "抽纸"
        assert result.entities["action"] == "查询"

    def test_time_period(self, extractor):
        result = extractor.extract("生成本月财务报告", IntentType.FINANCIAL_ANALYSIS, "zh-CN")

        assert result.entities["time_period"] == "本月"

    def test_long_repeated_item(self, extractor):
        result = extractor.extract("添加 " + "抽纸" * 100 + " 2包", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert result.entities["item_name"] == "抽纸"
        assert result.entities["quantity"] == 2


class TestPlatforms:
    """Tests for platform and channel extraction."""

    def test_chinese_platform(self, extractor):
        result = extractor.extract("导入淘宝订单", IntentType.PROCUREMENT_MANAGEMENT, "zh-CN")

        assert result.entities["platform"] == "淘宝"
        assert result.entities["platforms"] == ["淘宝"]
        assert result.entities["action"] == "导入"

    def test_latin_platform_is_normalized(self, extractor):
        result = extractor.extract("import Taobao orders", IntentType.PROCUREMENT_MANAGEMENT, "en-US")

        assert result.entities["platform"] == "淘宝"
        assert result.entities["action"] == "导入"

    def test_numeric_platform_is_not_a_quantity(self, extractor):
        result = extractor.extract("从1688导入订单", IntentType.PROCUREMENT_MANAGEMENT, "zh-CN")

        assert result.entities["platform"] == "1688"
        assert "quantity" not in result.entities
        assert "quantities" not in result.entities

    def test_channel(self, extractor):
        result = extractor.extract("发送Teams通知", IntentType.NOTIFICATION_MANAGEMENT, "zh-CN")

        assert "teams" in result.entities["platforms"]


class TestEnglishExtraction:
    """Tests for English pattern tables."""

    def test_quantity_unit_item(self, extractor):
        result = extractor.extract("consume 3 packs of tissue", IntentType.INVENTORY_MANAGEMENT, "en-US")

        assert result.entities["quantities"] == [3]
        assert result.entities["unit"] == "pack"
        assert result.entities["item_name"] == "tissue"
        assert result.entities["action"] == "消耗"

    def test_add_bottles(self, extractor):
        result = extractor.extract("add 2 bottles of milk", IntentType.INVENTORY_MANAGEMENT, "en-US")

        assert result.entities["item_name"] == "milk"
        assert result.entities["quantity"] == 2
        assert result.entities["unit"] == "bottle"
        assert result.entities["action"] == "添加"

    def test_unicode_case_variants_are_normalized(self, extractor):
        """Long s (U+017F) matches s case-insensitively and maps to the canonical entry."""
        result = extractor.extract("conſume 3 packſ of tiſſue", IntentType.INVENTORY_MANAGEMENT, "en-US")

        assert result.entities["action"] == "消耗"
        assert result.entities["quantity"] == 3
        assert result.entities["unit"] == "pack"
        assert result.entities["item_name"] == "tissue"

    def test_unicode_case_variant_gazetteer_item(self, extractor):
        result = extractor.extract("add 2 bottles of ſhampoo", IntentType.INVENTORY_MANAGEMENT, "en-US")

        assert result.entities["item_name"] == "shampoo"
        assert result.entities["quantity"] == 2


class TestConfidence:
    """Tests for intent relevance and the confidence threshold."""

    def test_opportunistic_entities_lose_confidence(self, extractor):
        result = extractor.extract("查询抽纸库存", IntentType.FINANCIAL_ANALYSIS, "zh-CN")

        item = next(e for e in result.extracted if e.entity_type == EntityType.ITEM_NAME)
        assert item.source == "opportunistic"
        assert item.confidence == pytest.approx(0.8)
        assert result.entities["item_name"] == "抽纸"

    def test_low_confidence_kept_out_of_entities(self, extractor):
        """A bare number found for an unrelated intent drops below the threshold."""
        result = extractor.extract("你好 5", IntentType.FINANCIAL_ANALYSIS, "zh-CN")

        assert "quantity" not in result.entities
        assert any(e.entity_type == EntityType.QUANTITY for e in result.extracted)

    def test_bare_number_without_intent(self, extractor):
        result = extractor.extract("你好 5", None, "zh-CN")

        assert result.entities["quantity"] == 5

    def test_summary_marks_accepted(self, extractor):
        result = extractor.extract("你好 5", IntentType.FINANCIAL_ANALYSIS, "zh-CN")

        summary = extractor.get_entities_summary(result)
        assert summary["quantity"][0]["accepted"] is False


class TestContextInference:
    """Tests for resolving references against session history."""

    @pytest.fixture
    def context(self):
        return ConversationContext(
            conversation_id="ctx-1",
            session_history=[{"user_input": "消耗抽纸2包", "entities": {"item_name": "抽纸"}}],
        )

    def test_reference_resolves_to_previous_item(self, extractor, context):
        result = extractor.extract("消耗这个2包", IntentType.INVENTORY_MANAGEMENT, "zh-CN", context)

        assert result.entities["item_name"] == "抽纸"
        assert result.entities["quantity"] == 2
        inferred = next(e for e in result.extracted if e.entity_type == EntityType.ITEM_NAME)
        assert inferred.source == "context"

    def test_no_inference_without_context(self, extractor):
        result = extractor.extract("消耗这个2包", IntentType.INVENTORY_MANAGEMENT, "zh-CN")

        assert "item_name" not in result.entities
        assert result.entities["quantity"] == 2

    def test_explicit_item_wins(self, extractor, context):
        result = extractor.extract("消耗这个牛奶2瓶", IntentType.INVENTORY_MANAGEMENT, "zh-CN", context)

        assert result.entities["item_name"] == "牛奶"


class TestEdgeCases:
    """Tests for degenerate input."""

    @pytest.mark.parametrize("text", ["", "   ", None, "!@#"])
    def test_empty_bag(self, extractor, text):
        result = extractor.extract(text, None, "zh-CN")

        assert result.entities == {}

    def test_parse_quantity(self):
        assert parse_quantity("12") == 12
        assert parse_quantity("1.5") == 1.5
        assert parse_quantity("2.0") == 2
        assert parse_quantity("二十三") == 23
        assert parse_chinese_number("十") == 10
        assert parse_chinese_number("两") == 2
