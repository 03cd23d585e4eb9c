"""
Entity extraction module with intent-specific rules.

This module extracts shopping entities (items, quantities, units, actions,
platforms and time periods) from user messages using ordered,
language-specific pattern tables and small gazetteers.
"""

import re
import logging
from typing import Dict, Any, List, Optional, Tuple, Set, Union
from dataclasses import dataclass, field
from enum import Enum

from .intent_recognizer import IntentType
from .language_detector import SupportedLanguage
from core.conversation.context import ConversationContext

logger = logging.getLogger(__name__)

Number = Union[int, float]


class EntityType(str, Enum):
    """Types of entities that can be extracted"""
    ITEM_NAME = "item_name"
    QUANTITY = "quantity"
    UNIT = "unit"
    ACTION = "action"
    PLATFORM = "platform"
    TIME_PERIOD = "time_period"


@dataclass
class ExtractedEntity:
    """Represents an extracted entity mention"""
    entity_type: EntityType
    value: Any
    position: int = 0
    confidence: float = 1.0
    source: str = "direct"  # "direct", "gazetteer", "opportunistic", "context"
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


@dataclass
class EntityResult:
    """Entity bag produced for one utterance"""
    entities: Dict[str, Any] = field(default_factory=dict)
    extracted: List[ExtractedEntity] = field(default_factory=list)
    language: Optional[str] = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.entities.get(name, default)

    def has(self, name: str) -> bool:
        """Check for a scalar or its plural form, treating 0 as present"""
        plural = PLURAL_KEYS.get(name)
        if self.entities.get(name) is not None:
            return True
        return bool(plural and self.entities.get(plural))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": dict(self.entities),
            "extracted": [
                {
                    "type": entity.entity_type.value,
                    "value": entity.value,
                    "confidence": round(entity.confidence, 4),
                    "source": entity.source,
                }
                for entity in self.extracted
            ],
            "language": self.language,
        }


PLURAL_KEYS = {
    EntityType.ITEM_NAME.value: "items",
    EntityType.QUANTITY.value: "quantities",
    EntityType.PLATFORM.value: "platforms",
}

# Item names the assistant knows about, mapped to their canonical form
ZH_ITEMS = ["抽纸", "卫生纸", "纸巾", "牛奶", "洗发水", "沐浴露", "牙膏", "洗衣液", "面包",
            "鸡蛋", "大米", "食用油", "酱油", "洗洁精", "矿泉水"]
EN_ITEMS = {
    "laundry detergent": "laundry detergent",
    "toothpaste": "toothpaste",
    "shampoo": "shampoo",
    "tissues": "tissue",
    "tissue": "tissue",
    "milk": "milk",
    "bread": "bread",
    "eggs": "eggs",
    "egg": "eggs",
    "rice": "rice",
    "oil": "oil",
    "detergent": "laundry detergent",
    "water": "water",
}

ZH_UNITS = ["公斤", "千克", "毫升", "包", "个", "瓶", "盒", "袋", "斤", "克", "升", "箱", "卷", "支", "块",
            "条", "桶", "罐", "提", "件"]
EN_UNITS = {
    "packs": "pack", "pack": "pack", "packets": "pack", "packet": "pack",
    "pieces": "piece", "piece": "piece", "pcs": "piece",
    "bottles": "bottle", "bottle": "bottle",
    "boxes": "box", "box": "box",
    "bags": "bag", "bag": "bag",
    "cans": "can", "can": "can",
    "rolls": "roll", "roll": "roll",
    "loaves": "loaf", "loaf": "loaf",
    "cartons": "carton", "carton": "carton",
    "dozen": "dozen",
    "kg": "kg", "kilograms": "kg", "kilogram": "kg",
    "liters": "liter", "liter": "liter", "litres": "liter", "litre": "liter",
    "ml": "ml",
}

# Action verbs normalized to their Chinese form
ZH_ACTIONS = ["消耗", "添加", "查询", "更新", "导入", "购买", "分析", "发送", "删除", "修改"]
EN_ACTIONS = {
    "consumed": "消耗", "consume": "消耗", "used": "消耗", "use": "消耗",
    "added": "添加", "add": "添加",
    "query": "查询", "check": "查询",
    "update": "更新",
    "import": "导入",
    "purchase": "购买", "buy": "购买",
    "analyse": "分析", "analyze": "分析",
    "send": "发送",
    "delete": "删除", "remove": "删除",
    "modify": "修改", "change": "修改",
}

# Platform and channel names normalized to a canonical form
PLATFORMS = {
    "抖音商城": "抖音商城",
    "中免日上": "中免日上",
    "拼多多": "拼多多",
    "淘宝": "淘宝",
    "京东": "京东",
    "1688": "1688",
    "钉钉": "钉钉",
    "微信": "微信",
    "抖音": "抖音商城",
    "pinduoduo": "拼多多",
    "taobao": "淘宝",
    "jd.com": "京东",
    "jd": "京东",
    "pdd": "拼多多",
    "douyin": "抖音商城",
    "cdf": "中免日上",
    "teams": "teams",
    "dingtalk": "钉钉",
    "wechat": "微信",
}

TIME_PERIODS = {
    "这个月": "本月", "本月": "本月", "上个月": "上月", "上月": "上月",
    "本季度": "本季度", "上季度": "上季度", "今年": "今年", "去年": "去年",
    "本周": "本周", "这周": "本周", "上周": "上周", "今天": "今天", "昨天": "昨天",
    "this month": "本月", "last month": "上月", "this quarter": "本季度",
    "last quarter": "上季度", "this year": "今年", "last year": "去年",
    "this week": "本周", "last week": "上周", "today": "今天", "yesterday": "昨天",
}

CHINESE_DIGITS = {"零": 0, "一": 1, "二": 2, "两": 2, "三": 3, "四": 4,
                  "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}

# Entity types each intent cares about; anything else is opportunistic
INTENT_ENTITY_TYPES: Dict[IntentType, Set[EntityType]] = {
    IntentType.INVENTORY_MANAGEMENT: {EntityType.ITEM_NAME, EntityType.QUANTITY,
                                      EntityType.UNIT, EntityType.ACTION},
    IntentType.PROCUREMENT_MANAGEMENT: {EntityType.PLATFORM, EntityType.ACTION,
                                        EntityType.ITEM_NAME, EntityType.QUANTITY, EntityType.UNIT},
    IntentType.FINANCIAL_ANALYSIS: {EntityType.TIME_PERIOD, EntityType.ACTION},
    IntentType.NOTIFICATION_MANAGEMENT: {EntityType.PLATFORM, EntityType.ACTION},
    IntentType.QUERY_INFORMATION: {EntityType.ITEM_NAME, EntityType.ACTION,
                                   EntityType.TIME_PERIOD, EntityType.PLATFORM},
}

_REFERENCE_WORDS = re.compile(r"这个|那个|它|\bthis\b|\bthat\b|\bit\b", re.IGNORECASE)

# Captured "items" that only point at something mentioned earlier
_REFERENCE_ITEM = re.compile(r"(?:[这那][个些]?)?(?:东西)?|它|什么的")


def _normalize(table: Dict[str, str], token: str) -> str:
    """Map a case-insensitively matched token to its canonical form"""
    key = token.casefold()
    return table.get(key, key)


def _alternation(words) -> str:
    """Regex alternation with longer words first so they win over prefixes"""
    return "|".join(re.escape(word) for word in sorted(words, key=len, reverse=True))


def parse_chinese_number(token: str) -> int:
    """Parse a simple Chinese numeral such as 三, 十二 or 二十三"""
    total, current = 0, 0
    for char in token:
        if char in CHINESE_DIGITS:
            current = CHINESE_DIGITS[char]
        elif char == "十":
            total += (current or 1) * 10
            current = 0
        elif char == "百":
            total += (current or 1) * 100
            current = 0
    return total + current


def parse_quantity(token: str) -> Number:
    """Parse Arabic or Chinese digits into an int, or a float for decimals"""
    token = token.strip()
    if re.fullmatch(r"\d+", token):
        return int(token)
    if re.fullmatch(r"\d+\.\d+", token):
        value = float(token)
        return int(value) if value.is_integer() else value
    return parse_chinese_number(token)


class EntityExtractor:
    """
    Extracts and normalizes entities from user messages.

    Patterns are applied in a fixed order: quantity+unit+item triples, bare
    quantity+unit pairs, gazetteer items, platforms, actions, time periods and
    finally bare numbers.
    """

    def __init__(self, confidence_threshold: float = 0.6):
        self.confidence_threshold = confidence_threshold
        self._initialize_patterns()

    def _initialize_patterns(self):
        """Initialize extraction patterns"""
        zh_number = r"\d+(?:\.\d+)?|[零一二两三四五六七八九十百]+"
        zh_units = _alternation(ZH_UNITS)
        zh_actions = _alternation(ZH_ACTIONS)
        en_units = _alternation(EN_UNITS)
        en_actions = _alternation(EN_ACTIONS)
        en_stop = r"and|or|from|to|in|for|on|at|with|of|please"

        # <action>? <item><quantity><unit>
        self.zh_triple_pattern = re.compile(
            rf"(?:{zh_actions})?(?:[和及与、，,;；\s]|以及|还有)*"
            rf"(?P<item>[\u4e00-\u9fffA-Za-z]+?)\s*(?P<quantity>{zh_number})\s*(?P<unit>{zh_units})"
        )
        # <action>? <quantity> <unit>? (of)? <item>
        self.en_triple_pattern = re.compile(
            rf"(?:\b(?:{en_actions})\s+)?\b(?P<quantity>\d+(?:\.\d+)?)\s*(?:(?P<unit>{en_units})\b\s*)?"
            rf"(?:of\s+)?(?P<item>(?!(?:{en_stop})\b)[a-z][a-z\-]*"
            rf"(?:\s+(?!(?:{en_stop})\b)[a-z][a-z\-]*)?)",
            re.IGNORECASE
        )
        self.zh_quantity_unit_pattern = re.compile(
            rf"(?P<quantity>{zh_number})\s*(?P<unit>{zh_units})"
        )
        self.en_quantity_unit_pattern = re.compile(
            rf"\b(?P<quantity>\d+(?:\.\d+)?)\s*(?P<unit>{en_units})\b", re.IGNORECASE
        )
        self.zh_item_pattern = re.compile(_alternation(ZH_ITEMS))
        self.en_item_pattern = re.compile(rf"\b(?:{_alternation(EN_ITEMS)})\b", re.IGNORECASE)
        self.zh_action_pattern = re.compile(zh_actions)
        self.en_action_pattern = re.compile(rf"\b(?:{en_actions})\b", re.IGNORECASE)
        self.platform_pattern = re.compile(
            rf"(?<![a-z0-9])(?:{_alternation(PLATFORMS)})(?![a-z0-9])", re.IGNORECASE
        )
        self.time_period_pattern = re.compile(_alternation(TIME_PERIODS), re.IGNORECASE)
        self.number_pattern = re.compile(r"\d+(?:\.\d+)?")

        # Leading words that can bleed into an item captured by a triple
        self.action_prefix_pattern = re.compile(rf"^.*(?:{zh_actions})")
        self.filler_prefix_pattern = re.compile(r"^[我要请帮把给再又还了的买]+")

    def extract(self, text: str, intent: Optional[IntentType] = None,
                language: Optional[str] = None,
                context: Optional[ConversationContext] = None) -> EntityResult:
        """
        Extract entities from a message.

        Args:
            text: Sanitized user input
            intent: Recognized intent, used to weight relevant entity types
            language: Detected language tag, selects the primary rule table
            context: Conversation context; when given, references such as
                "这个" are resolved against earlier turns

        Returns:
            Entity bag, possibly empty
        """
        language = language or SupportedLanguage.ZH_CN.value
        message = (text or "").strip()
        if not message:
            return EntityResult(language=language)

        try:
            mentions = self._collect_mentions(message, language)
            self._apply_intent_relevance(mentions, intent)
            if context is not None:
                mentions.extend(self._apply_context_inference(message, mentions, context))
            entities = self._build_entity_bag(mentions)
        except Exception as e:
            logger.warning(f"Entity extraction failed, returning empty bag: {str(e)}", exc_info=True)
            return EntityResult(language=language)

        return EntityResult(entities=entities, extracted=mentions, language=language)

    def _collect_mentions(self, message: str, language: str) -> List[ExtractedEntity]:
        """Apply every pattern table in order and collect raw mentions"""
        mentions: List[ExtractedEntity] = []

        platforms = self._extract_platforms(message)
        mentions.extend(platforms)

        # Platform names such as 1688 must not be read as quantities
        masked = self._mask_spans(message, [(p.position, p.metadata["end"]) for p in platforms])

        if language == SupportedLanguage.EN_US.value:
            primary = (self._extract_en_triples, self._extract_en_quantity_units, self._extract_en_items)
            secondary = (self._extract_zh_triples, self._extract_zh_quantity_units, self._extract_zh_items)
        else:
            primary = (self._extract_zh_triples, self._extract_zh_quantity_units, self._extract_zh_items)
            secondary = (self._extract_en_triples, self._extract_en_quantity_units, self._extract_en_items)

        quantity_mentions = self._extract_quantities(masked, *primary)
        if not quantity_mentions:
            # Mixed input: fall back to the other language's table
            quantity_mentions = self._extract_quantities(masked, *secondary)
        mentions.extend(quantity_mentions)

        mentions.extend(self._extract_actions(message))
        mentions.extend(self._extract_time_periods(message))

        if not any(m.entity_type == EntityType.QUANTITY for m in mentions):
            mentions.extend(self._extract_bare_numbers(masked))

        mentions.sort(key=lambda m: m.position)
        return mentions

    def _extract_quantities(self, message: str, triples, quantity_units, items) -> List[ExtractedEntity]:
        """Run triple, quantity+unit and gazetteer item rules for one language"""
        mentions, covered = triples(message)
        pairs, covered = quantity_units(message, covered)
        mentions.extend(pairs)
        mentions.extend(items(message, covered, {m.value for m in mentions
                                                 if m.entity_type == EntityType.ITEM_NAME}))
        return mentions

    def _extract_zh_triples(self, message: str) -> Tuple[List[ExtractedEntity], List[Tuple[int, int]]]:
        mentions: List[ExtractedEntity] = []
        covered: List[Tuple[int, int]] = []
        for match in self.zh_triple_pattern.finditer(message):
            item, confidence = self._clean_zh_item(match.group("item"))
            if not item:
                continue
            position = match.start("item")
            mentions.append(ExtractedEntity(EntityType.ITEM_NAME, item, position, confidence, "direct"))
            mentions.append(ExtractedEntity(EntityType.QUANTITY, parse_quantity(match.group("quantity")),
                                            match.start("quantity"), 0.95, "direct"))
            mentions.append(ExtractedEntity(EntityType.UNIT, match.group("unit"),
                                            match.start("unit"), 0.95, "direct"))
            covered.append((match.start(), match.end()))
        return mentions, covered

    def _extract_en_triples(self, message: str) -> Tuple[List[ExtractedEntity], List[Tuple[int, int]]]:
        mentions: List[ExtractedEntity] = []
        covered: List[Tuple[int, int]] = []
        for match in self.en_triple_pattern.finditer(message):
            item, confidence = self._clean_en_item(match.group("item"))
            if not item:
                continue
            mentions.append(ExtractedEntity(EntityType.QUANTITY, parse_quantity(match.group("quantity")),
                                            match.start("quantity"), 0.95, "direct"))
            if match.group("unit"):
                mentions.append(ExtractedEntity(EntityType.UNIT, _normalize(EN_UNITS, match.group("unit")),
                                                match.start("unit"), 0.95, "direct"))
            mentions.append(ExtractedEntity(EntityType.ITEM_NAME, item, match.start("item"),
                                            confidence, "direct"))
            covered.append((match.start(), match.end()))
        return mentions, covered

    def _extract_zh_quantity_units(self, message: str,
                                   covered: List[Tuple[int, int]]) -> Tuple[List[ExtractedEntity], List[Tuple[int, int]]]:
        return self._extract_quantity_units(self.zh_quantity_unit_pattern, message, covered, lambda unit: unit)

    def _extract_en_quantity_units(self, message: str,
                                   covered: List[Tuple[int, int]]) -> Tuple[List[ExtractedEntity], List[Tuple[int, int]]]:
        return self._extract_quantity_units(self.en_quantity_unit_pattern, message, covered,
                                            lambda unit: _normalize(EN_UNITS, unit))

    def _extract_quantity_units(self, pattern, message: str, covered: List[Tuple[int, int]],
                                normalize_unit) -> Tuple[List[ExtractedEntity], List[Tuple[int, int]]]:
        mentions: List[ExtractedEntity] = []
        covered = list(covered)
        for match in pattern.finditer(message):
            if self._is_covered(match.start(), covered):
                continue
            mentions.append(ExtractedEntity(EntityType.QUANTITY, parse_quantity(match.group("quantity")),
                                            match.start("quantity"), 0.9, "direct"))
            mentions.append(ExtractedEntity(EntityType.UNIT, normalize_unit(match.group("unit")),
                                            match.start("unit"), 0.9, "direct"))
            covered.append((match.start(), match.end()))
        return mentions, covered

    def _extract_zh_items(self, message: str, covered: List[Tuple[int, int]],
                          known: Set[str]) -> List[ExtractedEntity]:
        return self._extract_gazetteer_items(self.zh_item_pattern, message, covered, known, lambda item: item)

    def _extract_en_items(self, message: str, covered: List[Tuple[int, int]],
                          known: Set[str]) -> List[ExtractedEntity]:
        return self._extract_gazetteer_items(self.en_item_pattern, message, covered, known,
                                             lambda item: _normalize(EN_ITEMS, item))

    def _extract_gazetteer_items(self, pattern, message: str, covered: List[Tuple[int, int]],
                                 known: Set[str], normalize) -> List[ExtractedEntity]:
        mentions: List[ExtractedEntity] = []
        seen = set(known)
        for match in pattern.finditer(message):
            if self._is_covered(match.start(), covered):
                continue
            item = normalize(match.group(0))
            if item in seen:
                continue
            seen.add(item)
            mentions.append(ExtractedEntity(EntityType.ITEM_NAME, item, match.start(), 0.9, "gazetteer"))
        return mentions

    def _extract_platforms(self, message: str) -> List[ExtractedEntity]:
        mentions: List[ExtractedEntity] = []
        for match in self.platform_pattern.finditer(message):
            mentions.append(ExtractedEntity(
                EntityType.PLATFORM,
                _normalize(PLATFORMS, match.group(0)),
                match.start(),
                0.95,
                "gazetteer",
                metadata={"end": match.end(), "raw": match.group(0)}
            ))
        return mentions

    def _extract_actions(self, message: str) -> List[ExtractedEntity]:
        mentions: List[ExtractedEntity] = []
        for match in self.zh_action_pattern.finditer(message):
            mentions.append(ExtractedEntity(EntityType.ACTION, match.group(0), match.start(), 0.9, "direct"))
        for match in self.en_action_pattern.finditer(message):
            mentions.append(ExtractedEntity(EntityType.ACTION, _normalize(EN_ACTIONS, match.group(0)),
                                            match.start(), 0.9, "direct"))
        return mentions

    def _extract_time_periods(self, message: str) -> List[ExtractedEntity]:
        return [
            ExtractedEntity(EntityType.TIME_PERIOD, _normalize(TIME_PERIODS, match.group(0)),
                            match.start(), 0.9, "direct")
            for match in self.time_period_pattern.finditer(message)
        ]

    def _extract_bare_numbers(self, message: str) -> List[ExtractedEntity]:
        return [
            ExtractedEntity(EntityType.QUANTITY, parse_quantity(match.group(0)), match.start(), 0.6, "inferred")
            for match in self.number_pattern.finditer(message)
        ]

    def _apply_intent_relevance(self, mentions: List[ExtractedEntity], intent: Optional[IntentType]):
        """Lower confidence for entity types the intent does not ask for"""
        relevant = INTENT_ENTITY_TYPES.get(intent) if intent is not None else None
        if relevant is None:
            # Fallback and help intents use general extraction
            return
        for mention in mentions:
            if mention.entity_type not in relevant:
                mention.confidence = max(0.5, mention.confidence - 0.1)
                mention.source = "opportunistic"

    def _apply_context_inference(self, message: str, mentions: List[ExtractedEntity],
                                 context: ConversationContext) -> List[ExtractedEntity]:
        """Resolve a demonstrative reference to the last item named in the conversation"""
        if any(m.entity_type == EntityType.ITEM_NAME for m in mentions):
            return []
        reference = _REFERENCE_WORDS.search(message)
        if not reference:
            return []
        previous_item = context.last_entity_value(EntityType.ITEM_NAME.value)
        if not previous_item:
            return []
        return [ExtractedEntity(
            EntityType.ITEM_NAME,
            previous_item,
            reference.start(),
            0.8,
            "context",
            metadata={"inferred_from": "session_history", "reference": reference.group(0)}
        )]

    def _build_entity_bag(self, mentions: List[ExtractedEntity]) -> Dict[str, Any]:
        """Turn authoritative mentions into scalar and plural entity fields"""
        accepted = [m for m in mentions if m.confidence >= self.confidence_threshold]
        by_type: Dict[EntityType, List[ExtractedEntity]] = {}
        for mention in accepted:
            by_type.setdefault(mention.entity_type, []).append(mention)

        entities: Dict[str, Any] = {}

        # One entry per mention so items and quantities stay aligned by position
        items = [m.value for m in by_type.get(EntityType.ITEM_NAME, [])]
        if items:
            entities["item_name"] = items[0]
            entities["items"] = items
            entities["unique_items"] = self._unique(items)

        quantities = [m.value for m in by_type.get(EntityType.QUANTITY, [])]
        if quantities:
            entities["quantities"] = quantities
            if len(quantities) == 1:
                entities["quantity"] = quantities[0]

        if EntityType.UNIT in by_type:
            entities["unit"] = by_type[EntityType.UNIT][0].value

        if EntityType.ACTION in by_type:
            entities["action"] = by_type[EntityType.ACTION][0].value

        platforms = self._unique([m.value for m in by_type.get(EntityType.PLATFORM, [])])
        if platforms:
            entities["platform"] = platforms[0]
            entities["platforms"] = platforms

        if EntityType.TIME_PERIOD in by_type:
            entities["time_period"] = by_type[EntityType.TIME_PERIOD][0].value

        return entities

    def _clean_zh_item(self, item: str) -> Tuple[str, float]:
        """Strip verbs and fillers captured ahead of an item and map to the gazetteer"""
        cleaned = self.action_prefix_pattern.sub("", item)
        cleaned = self.filler_prefix_pattern.sub("", cleaned).strip()
        known = self.zh_item_pattern.search(cleaned)
        if known:
            return known.group(0), 0.95
        if not cleaned or self.time_period_pattern.fullmatch(cleaned) or _REFERENCE_ITEM.fullmatch(cleaned):
            return "", 0.0
        return cleaned, 0.75

    def _clean_en_item(self, item: str) -> Tuple[str, float]:
        cleaned = re.sub(r"\s+", " ", item).strip().casefold()
        known = self.en_item_pattern.search(cleaned)
        if known:
            return _normalize(EN_ITEMS, known.group(0)), 0.95
        if cleaned in EN_UNITS:
            return "", 0.0
        return cleaned, 0.7

    @staticmethod
    def _mask_spans(message: str, spans: List[Tuple[int, int]]) -> str:
        """Blank out spans while keeping character positions stable"""
        chars = list(message)
        for start, end in spans:
            for index in range(start, end):
                chars[index] = " "
        return "".join(chars)

    @staticmethod
    def _is_covered(position: int, covered: List[Tuple[int, int]]) -> bool:
        return any(start <= position < end for start, end in covered)

    @staticmethod
    def _unique(values: List[Any]) -> List[Any]:
        seen = []
        for value in values:
            if value not in seen:
                seen.append(value)
        return seen

    def get_entities_summary(self, result: EntityResult) -> Dict[str, Any]:
        """Get a summary of extracted entities"""
        summary = {}

        for entity in result.extracted:
            summary.setdefault(entity.entity_type.value, []).append({
                "value": entity.value,
                "confidence": entity.confidence,
                "source": entity.source,
                "accepted": entity.confidence >= self.confidence_threshold,
            })

        return summary
