"""Services for accounts business logic."""

from .exceptions import (
    AccountsServiceError,
    UserNotFoundError,
    ProfileValidationError,
)
from .profile_management import get_public_profile, update_profile

__all__ = [
    # Exceptions
    'AccountsServiceError',
    'UserNotFoundError',
    'ProfileValidationError',
    # Services
    'get_public_profile',
    'update_profile',
]
