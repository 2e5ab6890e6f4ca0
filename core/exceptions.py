"""
Errors raised by the conversation engine.

Each error carries a human-readable message, a machine-readable code and the
HTTP status the API layer responds with. None of them should be retried with
the same input.
"""

from rest_framework import status


class ConversationError(Exception):
    """Base class for rejected conversation operations."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def as_response_data(self):
        return {'detail': self.message, 'code': self.code}


class NotFoundError(ConversationError):
    """Referenced conversation or product does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'


class AuthorizationError(ConversationError):
    """Caller is not a participant of the conversation."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'forbidden'


class PolicyViolation(ConversationError):
    """Well-formed request that breaks a business rule."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'policy_violation'


class ValidationError(ConversationError):
    """Malformed input such as an empty message or blank search term."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'invalid'
