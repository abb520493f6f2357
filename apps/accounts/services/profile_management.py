"""Profile management service."""

import logging
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import URLValidator
from django.db import transaction

from apps.accounts.models import User
from .exceptions import ProfileValidationError, UserNotFoundError

logger = logging.getLogger(__name__)


def get_public_profile(*, user_id: int) -> User:
    """
    Retrieve an active user for public display.

    Raises:
        UserNotFoundError: If user doesn't exist or is deactivated
    """
    try:
        return User.objects.get(pk=user_id, is_active=True)
    except User.DoesNotExist:
        raise UserNotFoundError("User not found")


@transaction.atomic
def update_profile(
    *,
    user: User,
    display_name: Optional[str] = None,
    avatar: Optional[str] = None,
) -> User:
    """
    Update the display fields shown next to a user's reviews.

    Only the given fields change; ``communication_score`` is never
    touched here.

    Raises:
        ProfileValidationError: If display name is too long or avatar is not a URL
    """
    update_fields = []

    if display_name is not None:
        display_name = display_name.strip()
        if len(display_name) > User._meta.get_field('display_name').max_length:
            raise ProfileValidationError("Display name is too long")
        user.display_name = display_name
        update_fields.append('display_name')

    if avatar is not None:
        if avatar:
            try:
                URLValidator()(avatar)
            except ValidationError:
                raise ProfileValidationError("Avatar must be a valid URL")
        user.avatar = avatar
        update_fields.append('avatar')

    if update_fields:
        user.save(update_fields=update_fields + ['updated_at'])
        logger.info("User %s updated profile fields %s", user.pk, update_fields)

    return user
