"""
Tests for script-based language detection.

Verifies that:
1. Chinese ideographs and Latin words are counted as language units
2. Input without classifiable units falls back to the default language
3. Ties fall back to the default language at a middling confidence
"""

import pytest

from core.conversation.understanding import LanguageDetector, SUPPORTED_LANGUAGES
from core.conversation.understanding.language_detector import (
    NO_SIGNAL_CONFIDENCE,
    TIE_CONFIDENCE,
    is_supported_language,
)


class TestDetection:
    """Tests for LanguageDetector.detect()."""

    def test_chinese_text(self, detector):
        """Pure Chinese text is detected with full confidence."""
        result = detector.detect("这是中文测试")

        assert result.language == "zh-CN"
        assert result.confidence == pytest.approx(1.0)
        assert result.scores["zh-CN"] == 6

    def test_english_text(self, detector):
        """Pure English text counts words, not letters."""
        result = detector.detect("This is English test")

        assert result.language == "en-US"
        assert result.confidence == pytest.approx(1.0)
        assert result.scores["en-US"] == 4

    def test_mixed_text_uses_dominant_language(self, detector):
        """Mixed input picks the language with more units."""
        result = detector.detect("发送Teams通知")

        assert result.language == "zh-CN"
        assert result.confidence == pytest.approx(0.8)

    def test_digits_and_symbols_carry_no_signal(self, detector):
        """Digits do not count towards either language."""
        result = detector.detect("import 1688")

        assert result.language == "en-US"
        assert result.confidence == pytest.approx(1.0)

    @pytest.mark.parametrize("text", ["", "!@# $%^", "123 456", "   "])
    def test_no_signal_falls_back_to_default(self, detector, text):
        """Empty and punctuation-only input uses the default language."""
        result = detector.detect(text)

        assert result.language == "zh-CN"
        assert result.confidence == NO_SIGNAL_CONFIDENCE
        assert result.confidence < 0.7

    def test_none_is_treated_as_empty(self, detector):
        result = detector.detect(None)

        assert result.language == "zh-CN"
        assert result.confidence == NO_SIGNAL_CONFIDENCE

    def test_tie_falls_back_to_default(self):
        """Equal unit counts resolve to the configured default."""
        detector = LanguageDetector(default_language="en-US")

        result = detector.detect("hello 你")

        assert result.language == "en-US"
        assert result.confidence == TIE_CONFIDENCE

    def test_to_dict(self, detector):
        data = detector.detect("查询库存").to_dict()

        assert data["language"] == "zh-CN"
        assert data["confidence"] == 1.0
        assert data["scores"] == {"zh-CN": 4, "en-US": 0}


class TestSupportedLanguages:
    """Tests for the fixed supported-language list."""

    def test_supported_languages(self, detector):
        languages = detector.get_supported_languages()

        assert languages == ["zh-CN", "en-US"]
        assert languages is not SUPPORTED_LANGUAGES

    def test_is_supported_language(self):
        assert is_supported_language("zh-CN")
        assert is_supported_language("en-US")
        assert not is_supported_language("fr-FR")

    def test_unsupported_default_is_rejected(self):
        with pytest.raises(ValueError):
            LanguageDetector(default_language="fr-FR")
