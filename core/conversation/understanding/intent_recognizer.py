"""
Rule-based intent recognition.

Intents are recognized from explicit, ordered pattern tables. Each table is a
list of IntentPattern entries (pattern, intent, weight) per language, so the
tables can be tested on their own and swapped for a model later without
touching the clarification or orchestration code.
"""

import re
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Pattern, Tuple
from dataclasses import dataclass, field
from enum import Enum

from .language_detector import SupportedLanguage

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    """All supported intent types"""
    INVENTORY_MANAGEMENT = "inventory_management"
    PROCUREMENT_MANAGEMENT = "procurement_management"
    FINANCIAL_ANALYSIS = "financial_analysis"
    NOTIFICATION_MANAGEMENT = "notification_management"
    QUERY_INFORMATION = "query_information"
    HELP_REQUEST = "help_request"

    # Fallback
    GENERAL_INQUIRY = "general_inquiry"


# Evaluation order; the first intent with a match wins
INTENT_PRIORITY: List[IntentType] = [
    IntentType.INVENTORY_MANAGEMENT,
    IntentType.PROCUREMENT_MANAGEMENT,
    IntentType.FINANCIAL_ANALYSIS,
    IntentType.NOTIFICATION_MANAGEMENT,
    IntentType.QUERY_INFORMATION,
    IntentType.HELP_REQUEST,
]

EMPTY_INPUT_CONFIDENCE = 0.1
NO_MATCH_CONFIDENCE = 0.3
VAGUE_INPUT_CONFIDENCE = 0.4
MAX_CONFIDENCE = 0.95


@dataclass
class IntentPattern:
    """A weighted keyword pattern voting for one intent"""
    pattern: str
    intent_type: IntentType
    weight: float = 1.0


@dataclass
class IntentResult:
    """Result of intent recognition"""
    intent: IntentType
    confidence: float
    matched_keywords: List[str] = field(default_factory=list)
    source: str = "rules"
    is_fallback: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value,
            "confidence": round(self.confidence, 4),
            "matched_keywords": list(self.matched_keywords),
            "source": self.source,
            "is_fallback": self.is_fallback,
        }


def _zh(intent: IntentType, *words: str, weight: float = 1.0) -> List[IntentPattern]:
    return [IntentPattern(re.escape(word), intent, weight) for word in words]


def _en(intent: IntentType, *words: str, weight: float = 1.0) -> List[IntentPattern]:
    return [IntentPattern(rf"\b{word}\b", intent, weight) for word in words]


class IntentRecognizer:
    """
    Keyword-table intent recognizer.

    Intents are checked in a fixed priority order
    (inventory > procurement > financial > notification > query > help);
    confidence grows with the total weight of the matched keywords.
    """

    def __init__(self, confidence_threshold: float = 0.7,
                 fallback_intent: IntentType = IntentType.GENERAL_INQUIRY):
        self.confidence_threshold = confidence_threshold
        self.fallback_intent = IntentType(fallback_intent)
        self._initialize_patterns()

    def _initialize_patterns(self):
        """Initialize all intent patterns"""
        inventory = IntentType.INVENTORY_MANAGEMENT
        procurement = IntentType.PROCUREMENT_MANAGEMENT
        financial = IntentType.FINANCIAL_ANALYSIS
        notification = IntentType.NOTIFICATION_MANAGEMENT
        query = IntentType.QUERY_INFORMATION
        help_request = IntentType.HELP_REQUEST

        self.zh_patterns: List[IntentPattern] = [
            *_zh(inventory, "库存", "消耗", "添加", "补货", "用完", "用掉"),
            *_zh(inventory, "抽纸", "牛奶", "洗发水", "牙膏", "洗衣液", "面包", "鸡蛋", "大米"),
            *_zh(inventory, "剩余", "剩下", "照片", "图片", "拍照", "扫描", "识别", weight=0.5),
            *_zh(procurement, "采购", "购买", "订单", "导入", "购物清单", "下单"),
            *_zh(procurement, "淘宝", "1688", "京东", "拼多多", "抖音商城", "中免日上", "excel"),
            *_zh(procurement, "建议", "文件", weight=0.5),
            *_zh(financial, "财务", "支出", "报告", "预算", "花费", "消费", "账单", "月度", "季度", "统计"),
            *_zh(financial, "分析", "异常", weight=0.5),
            *_zh(notification, "通知", "提醒", "告知", "推送", "teams", "钉钉", "微信"),
            *_zh(notification, "发送", weight=0.5),
            *_zh(query, "查询", "查看", "显示", "列出", "状态", "情况", "怎么样", "多少"),
            *_zh(help_request, "帮助", "怎么", "如何", "什么", "为什么", "能否", "可以"),
        ]

        self.en_patterns: List[IntentPattern] = [
            *_en(inventory, "inventory", "stock", "consumed?", "used up", "add(?:ed)?", "restock"),
            *_en(inventory, "tissues?", "milk", "shampoo", "toothpaste", "detergent", "bread", "eggs?", "rice"),
            *_en(inventory, "remaining", "photo", "scan", weight=0.5),
            *_en(procurement, "purchase", "buy", "orders?", "import", "shopping list"),
            *_en(procurement, "taobao", "jd", "pinduoduo", "pdd", "douyin", "excel"),
            *_en(procurement, "suggestions?", "files?", weight=0.5),
            *_en(financial, "finance", "financial", "expenses?", "spending", "budget", "reports?", "costs?", "bills?"),
            *_en(financial, "analy[sz]e", "analysis", "anomal(?:y|ies)", weight=0.5),
            *_en(notification, "notify", "notifications?", "remind(?:er)?", "push", "teams", "dingtalk", "wechat"),
            *_en(notification, "send", weight=0.5),
            *_en(query, "query", "check", "show", "list", "status", "view", "how much", "how many"),
            *_en(help_request, "help", "how", "what", "why", "can you"),
        ]

        self.vague_patterns: List[str] = [
            "这个", "那个", "这些", "那些", "东西", "什么的", "这样", "那样", "它",
            r"\bthis\b", r"\bthat\b", r"\bit\b", r"\bthese\b", r"\bthose\b",
            r"\bsomething\b", r"\bstuff\b", r"\bthings?\b", r"\bwhatever\b",
        ]

        self._compiled: Dict[str, List[Tuple[Pattern[str], IntentPattern]]] = {
            SupportedLanguage.ZH_CN.value: self._compile(self.zh_patterns),
            SupportedLanguage.EN_US.value: self._compile(self.en_patterns),
        }
        self._vague_compiled = [re.compile(p, re.IGNORECASE) for p in self.vague_patterns]

    @staticmethod
    def _compile(patterns: List[IntentPattern]) -> List[Tuple[Pattern[str], IntentPattern]]:
        return [(re.compile(p.pattern, re.IGNORECASE), p) for p in patterns]

    def recognize(self, text: str, language: Optional[str] = None) -> IntentResult:
        """
        Recognize the intent of an utterance.

        Args:
            text: Sanitized user input
            language: Detected language tag; its table is consulted first

        Returns:
            Recognized intent with confidence, or the fallback intent
        """
        message = self._preprocess_message(text)
        if not message:
            return IntentResult(
                intent=self.fallback_intent,
                confidence=EMPTY_INPUT_CONFIDENCE,
                is_fallback=True,
                metadata={"reason": "empty_input"},
            )

        matches = self._match_all(message, language)
        winner = next((intent for intent in INTENT_PRIORITY if intent in matches), None)

        if winner is None:
            return IntentResult(
                intent=self.fallback_intent,
                confidence=NO_MATCH_CONFIDENCE,
                is_fallback=True,
                metadata={"reason": "no_match"},
            )

        keywords = [keyword for keyword, _ in matches[winner]]
        confidence = self._score(matches[winner])

        if self._is_vague(message, matches):
            intent = IntentType.HELP_REQUEST if winner == IntentType.HELP_REQUEST else self.fallback_intent
            return IntentResult(
                intent=intent,
                confidence=min(confidence, VAGUE_INPUT_CONFIDENCE),
                matched_keywords=keywords,
                is_fallback=intent == self.fallback_intent,
                metadata={"reason": "vague_input"},
            )

        if confidence < self.confidence_threshold:
            return IntentResult(
                intent=self.fallback_intent,
                confidence=confidence,
                matched_keywords=keywords,
                is_fallback=True,
                metadata={"reason": "low_confidence", "candidate": winner.value},
            )

        return IntentResult(
            intent=winner,
            confidence=confidence,
            matched_keywords=keywords,
            metadata={"pattern_match": True},
        )

    def _preprocess_message(self, message: str) -> str:
        """Preprocess message for intent detection"""
        return (message or "").strip().lower()

    def _match_all(self, message: str,
                   language: Optional[str]) -> Dict[IntentType, List[Tuple[str, float]]]:
        """Collect matched keywords per intent, preferred language table first"""
        primary = language if language in self._compiled else SupportedLanguage.ZH_CN.value
        tables = [primary] + [lang for lang in self._compiled if lang != primary]

        matches: Dict[IntentType, List[Tuple[str, float]]] = {}
        for table in tables:
            found: Dict[IntentType, List[Tuple[str, float]]] = {}
            for regex, pattern in self._compiled[table]:
                match = regex.search(message)
                if match:
                    found.setdefault(pattern.intent_type, []).append((match.group(0), pattern.weight))
            for intent, hits in found.items():
                matches.setdefault(intent, []).extend(hits)
        return matches

    def _score(self, hits: List[Tuple[str, float]]) -> float:
        total_weight = sum(weight for _, weight in hits)
        return min(MAX_CONFIDENCE, 0.6 + 0.15 * total_weight)

    def _is_vague(self, message: str, matches: Dict[IntentType, List[Tuple[str, float]]]) -> bool:
        """Vague input holds demonstratives or fillers and no content keyword"""
        if not any(regex.search(message) for regex in self._vague_compiled):
            return False
        return not any(intent != IntentType.HELP_REQUEST for intent in matches)

    def get_patterns(self, language: str) -> List[IntentPattern]:
        """Get the ordered pattern table for a language"""
        if language == SupportedLanguage.EN_US.value:
            return list(self.en_patterns)
        return list(self.zh_patterns)


class IntentModel(ABC):
    """Optional model-backed recognizer consulted before the rule tables"""

    @abstractmethod
    async def recognize(self, text: str, language: Optional[str] = None) -> Optional[IntentResult]:
        """
        Recognize the intent of an utterance.

        Returns:
            An IntentResult with source="model", or None to defer to the rules
        """
        pass
