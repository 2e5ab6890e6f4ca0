"""
Custom authentication backend for email- or username-based authentication.
"""

from django.contrib.auth.backends import ModelBackend
from django.contrib.auth import get_user_model

User = get_user_model()


class EmailOrUsernameBackend(ModelBackend):
    """
    Authentication backend that lets users log in with either their email
    address or their username.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Authenticate a user by email (case-insensitive) or username.

        Args:
            request: HTTP request object
            username: Email address or username
            password: User password
            **kwargs: May carry ``email`` when called from the token serializer

        Returns:
            User object if authentication successful, None otherwise
        """
        identifier = kwargs.get('email') or username

        if identifier is None or password is None:
            return None

        if '@' in identifier:
            lookup = {'email__iexact': identifier.strip()}
        else:
            lookup = {'username': identifier.strip()}

        try:
            user = User.objects.get(**lookup)
        except User.DoesNotExist:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
