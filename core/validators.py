"""
Custom validators and sanitizers for marketplace models.
"""

import re

from django.core.exceptions import ValidationError


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts international formats with optional country codes, spaces, dashes, and parentheses.
    Requires at least 10 digits.

    Args:
        value: Phone number string to validate

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Empty string is allowed (optional field)
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )


def validate_product_image(image):
    """
    Validate product image file.

    Checks:
    - File size (max 5MB)
    - File format (jpg, jpeg, png, webp)

    Args:
        image: UploadedFile object

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    max_size = 5 * 1024 * 1024
    if image.size > max_size:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    valid_extensions = ['jpg', 'jpeg', 'png', 'webp']
    file_name = image.name.lower()

    if not any(file_name.endswith(f'.{ext}') for ext in valid_extensions):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(valid_extensions)}',
            code='invalid_image_format'
        )


# Denylist only; this is not an HTML sanitizer.
_SCRIPT_OPEN_RE = re.compile(r'<\s*script', re.IGNORECASE)
_SCRIPT_CLOSE_RE = re.compile(r'<\s*/\s*script\s*>', re.IGNORECASE)
_JS_URL_RE = re.compile(r'javascript\s*:', re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(
    r'\bon(?:'
    r'click|dblclick|contextmenu|error|load|unload|beforeunload|abort|'
    r'mouse(?:over|out|down|up|move|enter|leave)|key(?:down|up|press)|'
    r'pointer(?:over|out|down|up|move|enter|leave)|touch(?:start|end|move)|'
    r'focus|blur|focusin|focusout|change|input|submit|reset|select|'
    r'drag(?:start|end|over|enter|leave)?|drop|wheel|scroll|resize|'
    r'copy|cut|paste|toggle|animation(?:start|end|iteration)|transitionend|'
    r'play|pause|ended|hashchange|pageshow|popstate'
    r')\s*=',
    re.IGNORECASE
)

_ESCAPED_SCRIPT_OPEN = '&lt;script'
_ESCAPED_SCRIPT_CLOSE = '&lt;/script&gt;'


def sanitize_message_content(content):
    """
    Neutralize the obvious script-injection patterns in user text.

    - ``<script`` and ``</script>`` are escaped so they render as text
    - ``javascript:`` URL schemes are removed
    - inline event handler attributes (``onclick=``, ``onerror=``, ...) are removed

    Args:
        content: Raw message text

    Returns:
        str: Sanitized, stripped text
    """
    if not content:
        return ''

    sanitized = _SCRIPT_CLOSE_RE.sub(_ESCAPED_SCRIPT_CLOSE, content)
    sanitized = _SCRIPT_OPEN_RE.sub(_ESCAPED_SCRIPT_OPEN, sanitized)
    sanitized = _JS_URL_RE.sub('', sanitized)
    sanitized = _EVENT_HANDLER_RE.sub('', sanitized)

    return sanitized.strip()


def unescaped_length(content):
    """
    Length of sanitized text, counting each script escape as the tag it replaced.

    Sanitizing only escapes or removes characters, so this never exceeds the
    length of the text the user typed.
    """
    if not content:
        return 0
    return (
        len(content)
        - content.count(_ESCAPED_SCRIPT_CLOSE) * (len(_ESCAPED_SCRIPT_CLOSE) - len('</script>'))
        - content.count(_ESCAPED_SCRIPT_OPEN) * (len(_ESCAPED_SCRIPT_OPEN) - len('<script'))
    )


def validate_message_content(content, max_length=1000):
    """
    Validate user-entered message text.

    Args:
        content: Raw message text
        max_length: Maximum number of characters after trimming

    Returns:
        str: The trimmed content

    Raises:
        ValidationError: If content is empty or too long
    """
    if content is None or not str(content).strip():
        raise ValidationError(
            'Message content cannot be empty.',
            code='empty_message'
        )

    trimmed = str(content).strip()
    if len(trimmed) > max_length:
        raise ValidationError(
            'Message content is too long (maximum %(max_length)s characters).',
            code='message_too_long',
            params={'max_length': max_length}
        )

    return trimmed
