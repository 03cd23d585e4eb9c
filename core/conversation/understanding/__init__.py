"""Language, intent and entity understanding components"""

from .language_detector import (
    LanguageDetector,
    LanguageDetectionResult,
    SupportedLanguage,
    SUPPORTED_LANGUAGES,
)
from .intent_recognizer import IntentRecognizer, IntentModel, IntentType, IntentResult, IntentPattern
from .entity_extractor import EntityExtractor, EntityType, EntityResult, ExtractedEntity

__all__ = [
    'LanguageDetector',
    'LanguageDetectionResult',
    'SupportedLanguage',
    'SUPPORTED_LANGUAGES',
    'IntentRecognizer',
    'IntentModel',
    'IntentType',
    'IntentResult',
    'IntentPattern',
    'EntityExtractor',
    'EntityType',
    'EntityResult',
    'ExtractedEntity',
]
