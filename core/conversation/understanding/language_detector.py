"""
Script-based language detection.

Chinese text is measured in ideographs and English text in Latin word
tokens. Digits, punctuation and whitespace carry no language signal and are
ignored, so "1688" or "!!!" never tips the balance.
"""

import re
import logging
from typing import Dict, List
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class SupportedLanguage(str, Enum):
    """Languages understood by the assistant"""
    ZH_CN = "zh-CN"
    EN_US = "en-US"


SUPPORTED_LANGUAGES: List[str] = [lang.value for lang in SupportedLanguage]

# Confidence reported when nothing in the input can be classified
NO_SIGNAL_CONFIDENCE = 0.3

# Confidence reported when both scripts are equally present
TIE_CONFIDENCE = 0.5

_CJK_CHAR = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")
_LATIN_WORD = re.compile(r"[A-Za-z]+")


@dataclass
class LanguageDetectionResult:
    """Result of language detection"""
    language: str
    confidence: float
    scores: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "language": self.language,
            "confidence": round(self.confidence, 4),
            "scores": dict(self.scores),
        }


def is_supported_language(language: str) -> bool:
    """Check whether a language tag is one the assistant can answer in"""
    return language in SUPPORTED_LANGUAGES


class LanguageDetector:
    """
    Detects the dominant language of an utterance.

    Detection is pure: it never looks at or changes conversation state.
    """

    def __init__(self, default_language: str = SupportedLanguage.ZH_CN.value):
        if not is_supported_language(default_language):
            raise ValueError(f"Unsupported default language: {default_language}")
        self.default_language = default_language

    def detect(self, text: str) -> LanguageDetectionResult:
        """
        Detect the language of a piece of text.

        Args:
            text: Raw user input, possibly empty or mixed-script

        Returns:
            Detected language tag with confidence between 0 and 1
        """
        scores = self.score(text or "")
        total = sum(scores.values())

        if total == 0:
            return LanguageDetectionResult(
                language=self.default_language,
                confidence=NO_SIGNAL_CONFIDENCE,
                scores=scores,
            )

        zh_units = scores[SupportedLanguage.ZH_CN.value]
        en_units = scores[SupportedLanguage.EN_US.value]

        if zh_units == en_units:
            return LanguageDetectionResult(
                language=self.default_language,
                confidence=TIE_CONFIDENCE,
                scores=scores,
            )

        if zh_units > en_units:
            language, dominant = SupportedLanguage.ZH_CN.value, zh_units
        else:
            language, dominant = SupportedLanguage.EN_US.value, en_units

        result = LanguageDetectionResult(
            language=language,
            confidence=dominant / total,
            scores=scores,
        )
        logger.debug(
            f"Detected language {result.language} ({result.confidence:.2f})",
            extra={"scores": scores}
        )
        return result

    def score(self, text: str) -> Dict[str, int]:
        """Count classifiable units per language"""
        return {
            SupportedLanguage.ZH_CN.value: len(_CJK_CHAR.findall(text)),
            SupportedLanguage.EN_US.value: len(_LATIN_WORD.findall(text)),
        }

    def get_supported_languages(self) -> List[str]:
        """Get the fixed list of supported language tags"""
        return list(SUPPORTED_LANGUAGES)
