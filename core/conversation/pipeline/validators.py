"""
Input validators for the conversation pipeline.

User text is never rejected: it is sanitized so that any string, including
an empty one, can flow through the pipeline. Identifiers and language tags
passed to management calls are validated and raise ValidationError.
"""

import unicodedata
from typing import Any, Optional, Tuple

from core.conversation.understanding.language_detector import SUPPORTED_LANGUAGES


class ValidationError(ValueError):
    """Raised for invalid arguments to management operations"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class InputValidator:
    """Validates and sanitizes input data for the conversation pipeline"""

    # Maximum allowed message length
    MAX_MESSAGE_LENGTH = 2000

    # Maximum conversation ID length
    MAX_CONVERSATION_ID_LENGTH = 128

    @classmethod
    def sanitize_message(cls, message: Any, max_length: Optional[int] = None) -> str:
        """
        Sanitize user text.

        Args:
            message: Raw message; None and non-strings are coerced
            max_length: Truncation limit, defaults to MAX_MESSAGE_LENGTH

        Returns:
            Trimmed text with control characters removed
        """
        if message is None:
            return ""
        if not isinstance(message, str):
            message = str(message)

        cleaned = "".join(
            char for char in message
            if char in "\n\t" or unicodedata.category(char)[0] != "C"
        )
        cleaned = cleaned.strip()

        limit = max_length or cls.MAX_MESSAGE_LENGTH
        if len(cleaned) > limit:
            cleaned = cleaned[:limit].rstrip()
        return cleaned

    @classmethod
    def validate_conversation_id(cls, conversation_id: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate conversation ID.

        Args:
            conversation_id: Conversation ID to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not isinstance(conversation_id, str):
            return False, "Conversation ID must be a string"

        conversation_id = conversation_id.strip()
        if not conversation_id:
            return False, "Conversation ID cannot be empty"

        if len(conversation_id) > cls.MAX_CONVERSATION_ID_LENGTH:
            return False, f"Conversation ID too long (max {cls.MAX_CONVERSATION_ID_LENGTH} characters)"

        if any(unicodedata.category(char)[0] == "C" for char in conversation_id):
            return False, "Conversation ID contains control characters"

        return True, None

    @classmethod
    def require_conversation_id(cls, conversation_id: Any) -> str:
        """
        Validate a conversation ID, raising ValidationError when invalid.

        The same policy applies to message processing and management calls,
        so any ID a conversation was created under can be managed.

        Returns:
            The ID with surrounding whitespace removed
        """
        is_valid, error = cls.validate_conversation_id(conversation_id)
        if not is_valid:
            raise ValidationError("conversation_id", error)
        return conversation_id.strip()

    @classmethod
    def require_language(cls, language: Any) -> str:
        """Validate a language tag, raising ValidationError when unsupported"""
        if language not in SUPPORTED_LANGUAGES:
            raise ValidationError(
                "language",
                f"Unsupported language {language!r} (supported: {', '.join(SUPPORTED_LANGUAGES)})"
            )
        return language
