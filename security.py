"""
Input sanitization for user-supplied text (display names and chat messages).
"""

import re
from typing import Optional

from core.logging_config import get_logger

logger = get_logger(__name__)


class SecurityError(Exception):
    """Raised when security validation fails"""
    pass


class InputValidationError(SecurityError):
    """Raised when input validation fails"""
    pass


class InputSanitizer:
    """Sanitizes and validates user inputs before they go on the wire"""

    # C0/C1 control characters except tab and newline
    CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b-\x1f\x7f-\x9f]')

    MAX_LENGTHS = {
        'text': 10000,
        'message': 500,
        'display_name': 50,
    }

    @classmethod
    def sanitize_text(cls, text: str, input_type: str = 'text') -> str:
        """
        Sanitize text input.

        Control characters are removed. Display names additionally have their
        whitespace collapsed; messages keep their line breaks.

        Args:
            text: Input text to sanitize
            input_type: Key of MAX_LENGTHS selecting the rules to apply

        Returns:
            Sanitized text

        Raises:
            InputValidationError: If input is not a string or exceeds its length limit
        """
        if not isinstance(text, str):
            raise InputValidationError("Input must be a string")

        cleaned = cls.CONTROL_CHARS.sub('', text)
        if cleaned != text:
            logger.debug(f"Stripped {len(text) - len(cleaned)} control character(s) from {input_type}")

        if input_type == 'display_name':
            cleaned = ' '.join(cleaned.split())

        max_length = cls.MAX_LENGTHS.get(input_type, cls.MAX_LENGTHS['text'])
        if len(cleaned) > max_length:
            raise InputValidationError(f"Input too long: {len(cleaned)} > {max_length}")

        return cleaned

    @classmethod
    def sanitize_display_name(cls, name: Optional[str], default: str) -> str:
        """Return a cleaned display name, or the default when none was given"""
        if name is None:
            return default
        cleaned = cls.sanitize_text(name, 'display_name')
        return cleaned or default
