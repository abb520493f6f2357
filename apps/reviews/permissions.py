from rest_framework import permissions


def is_moderator(user):
    return bool(user and user.is_authenticated and user.is_staff)


class IsModerator(permissions.BasePermission):
    """
    Permission: Only staff users (moderators) may proceed.
    """

    def has_permission(self, request, view):
        return is_moderator(request.user)


class IsReviewAuthorOrModerator(permissions.BasePermission):
    """
    Permission: Only the review author or a moderator can edit/delete a review.
    Anyone can read reviews.
    """

    def has_object_permission(self, request, view, obj):
        # Read permissions are allowed for any request
        if request.method in permissions.SAFE_METHODS:
            return True

        return obj.author_id == request.user.pk or is_moderator(request.user)
