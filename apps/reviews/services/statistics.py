"""Statistics service - review aggregates for profiles and movie pages."""

from django.db.models import Avg, Count, Q

from apps.accounts.models import User
from apps.reviews.models import Review, ReviewKind
from .exceptions import ReviewNotFoundError
from .review_listing import publicly_visible


def get_user_review_stats(*, user_id: int) -> dict:
    """
    Summarize a user's publicly visible reviews.

    Only reviews the default listing would show are counted. A review
    counts as fair when its score is positive and unfair when negative.

    Returns:
        Dictionary with:
        - user_id: int
        - communication_score: int - The author's score ledger
        - total_reviews: int
        - fair_reviews: int
        - unfair_reviews: int
        - average_rating: float | None

    Raises:
        ReviewNotFoundError: If the user doesn't exist
    """
    try:
        user = User.objects.get(pk=user_id, is_active=True)
    except User.DoesNotExist:
        raise ReviewNotFoundError("User not found")

    stats = publicly_visible(Review.objects.filter(author=user)).aggregate(
        total=Count('id'),
        fair=Count('id', filter=Q(score__gt=0)),
        unfair=Count('id', filter=Q(score__lt=0)),
        avg_rating=Avg('rating'),
    )

    return {
        'user_id': user.pk,
        'communication_score': user.communication_score,
        'total_reviews': stats['total'],
        'fair_reviews': stats['fair'],
        'unfair_reviews': stats['unfair'],
        'average_rating': round(stats['avg_rating'], 2) if stats['avg_rating'] is not None else None,
    }


def get_movie_review_summary(*, movie_id: int) -> dict:
    """
    Aggregate the visible reviews of one movie.

    Returns:
        Dictionary with:
        - movie_id: int
        - total_reviews: int
        - average_rating: float | None
        - tag_reviews: int - Structured tag reviews
        - freeform_reviews: int
    """
    stats = publicly_visible(Review.objects.filter(movie_id=movie_id)).aggregate(
        total=Count('id'),
        avg_rating=Avg('rating'),
        tag_reviews=Count('id', filter=Q(kind=ReviewKind.STRUCTURED_TAGS)),
        freeform_reviews=Count('id', filter=Q(kind=ReviewKind.FREEFORM)),
    )

    return {
        'movie_id': movie_id,
        'total_reviews': stats['total'],
        'average_rating': round(stats['avg_rating'], 2) if stats['avg_rating'] is not None else None,
        'tag_reviews': stats['tag_reviews'],
        'freeform_reviews': stats['freeform_reviews'],
    }
