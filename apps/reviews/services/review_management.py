"""Review management service - lifecycle operations for reviews."""

import logging
import numbers
from typing import Optional

from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.reviews.models import (
    MAX_LIVE_REVIEWS_PER_MOVIE,
    MAX_RATING,
    MAX_TAG_RATING,
    MIN_RATING,
    MIN_TAG_RATING,
    Review,
    ReviewKind,
    ReviewStatus,
    VoteValue,
    can_transition,
)
from .exceptions import (
    InvalidReviewStateError,
    ReviewConflictError,
    ReviewLimitExceededError,
    ReviewNotFoundError,
    ReviewValidationError,
)

logger = logging.getLogger(__name__)


def hydrated_reviews() -> QuerySet[Review]:
    """Reviews joined with their author and annotated with vote counts."""
    return Review.objects.select_related('author').annotate(
        fair_votes=Count('votes', filter=Q(votes__value=VoteValue.FAIR)),
        unfair_votes=Count('votes', filter=Q(votes__value=VoteValue.UNFAIR)),
    )


def _coerce_choice(value, choices, label):
    try:
        return choices(value)
    except ValueError:
        valid = ', '.join(choices.values)
        raise ReviewValidationError(f"Invalid {label} '{value}'. Valid options: {valid}")


def validate_rating(rating) -> float:
    """Ratings are numbers within [1.0, 10.0]."""
    if isinstance(rating, bool) or not isinstance(rating, numbers.Real):
        raise ReviewValidationError("Rating must be a number")
    if not (MIN_RATING <= rating <= MAX_RATING):
        raise ReviewValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return float(rating)


def _normalize_tags(tags) -> list[dict]:
    if not isinstance(tags, (list, tuple)) or not tags:
        raise ReviewValidationError("Structured tag review must have at least one tag")

    normalized = []
    seen = set()
    for item in tags:
        if not isinstance(item, dict):
            raise ReviewValidationError("Each tag entry must have a tag_id and a rating")
        tag_id = item.get('tag_id')
        tag_rating = item.get('rating')
        if isinstance(tag_id, bool) or not isinstance(tag_id, int):
            raise ReviewValidationError("Tag id must be an integer")
        if isinstance(tag_rating, bool) or not isinstance(tag_rating, int):
            raise ReviewValidationError("Tag rating must be an integer")
        if not (MIN_TAG_RATING <= tag_rating <= MAX_TAG_RATING):
            raise ReviewValidationError(
                f"Tag rating must be between {MIN_TAG_RATING} and {MAX_TAG_RATING}"
            )
        if tag_id in seen:
            raise ReviewValidationError(f"Tag {tag_id} appears more than once")
        seen.add(tag_id)
        normalized.append({'tag_id': tag_id, 'rating': tag_rating})
    return normalized


def validate_review_content(
    *,
    kind,
    rating,
    body: Optional[str] = None,
    tags: Optional[list] = None,
) -> tuple[ReviewKind, float, Optional[str], Optional[list[dict]]]:
    """
    Validate a review's rating and kind/content pairing.

    Exactly one of ``body`` and ``tags`` may be populated, and it must be
    the one matching ``kind``.

    Returns:
        Tuple of (kind, rating, body, tags) with the unused field set to None

    Raises:
        ReviewValidationError: On any malformed input
    """
    kind = _coerce_choice(kind, ReviewKind, 'review kind')
    rating = validate_rating(rating)

    if kind == ReviewKind.FREEFORM:
        if tags:
            raise ReviewValidationError("Freeform review cannot carry structured tags")
        if not isinstance(body, str) or not body.strip():
            raise ReviewValidationError("Freeform review must have a body")
        return kind, rating, body.strip(), None

    if isinstance(body, str) and body.strip():
        raise ReviewValidationError("Structured tag review cannot carry a free-text body")
    return kind, rating, None, _normalize_tags(tags)


@transaction.atomic
def create_review(
    *,
    author: User,
    movie_id: int,
    kind: str,
    rating: float,
    body: Optional[str] = None,
    tags: Optional[list] = None,
) -> Review:
    """
    Create a new review for a movie.

    This operation:
    1. Validates rating range and kind/content pairing
    2. Locks the author row so concurrent submissions serialize
    3. Enforces the per-movie cap: two live reviews, one of each kind
    4. Persists the review as Pending

    Structured tag reviews are listed while Pending (see
    ``list_reviews``); freeform reviews wait for approval.

    Returns:
        Hydrated Review instance

    Raises:
        ReviewValidationError: If rating or content is invalid
        ReviewLimitExceededError: If the author hit the per-movie cap
    """
    kind, rating, body, tags = validate_review_content(kind=kind, rating=rating, body=body, tags=tags)

    if isinstance(movie_id, bool) or not isinstance(movie_id, int) or movie_id < 1:
        raise ReviewValidationError("Movie id must be a positive integer")

    # Serialize submissions by the same author
    User.objects.select_for_update().filter(pk=author.pk).first()

    live_kinds = list(
        Review.objects
        .filter(author=author, movie_id=movie_id)
        .exclude(status=ReviewStatus.DELETED)
        .values_list('kind', flat=True)
    )

    if len(live_kinds) >= MAX_LIVE_REVIEWS_PER_MOVIE:
        raise ReviewLimitExceededError(
            f"You already have {MAX_LIVE_REVIEWS_PER_MOVIE} reviews for this movie"
        )
    if kind in live_kinds:
        raise ReviewLimitExceededError(
            f"You already have a {kind.label.lower()} review for this movie"
        )

    review = Review.objects.create(
        author=author,
        movie_id=movie_id,
        kind=kind,
        rating=rating,
        body=body,
        tags=tags,
        status=ReviewStatus.PENDING,
    )
    logger.info("Review %s created by user %s for movie %s (%s)", review.pk, author.pk, movie_id, kind)

    return get_review_by_id(review_id=review.pk)


def get_review_by_id(*, review_id: int) -> Review:
    """
    Retrieve a review with its author profile and vote counts.

    Raises:
        ReviewNotFoundError: If review doesn't exist
    """
    try:
        return hydrated_reviews().get(pk=review_id)
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")


@transaction.atomic
def update_review(
    *,
    review_id: int,
    kind: str,
    rating: float,
    body: Optional[str] = None,
    tags: Optional[list] = None,
    status: Optional[str] = None,
    reject_reason: Optional[str] = None,
) -> Review:
    """
    Update a review's content and, optionally, its status.

    Serves both author edits and moderator decisions; the caller decides
    which fields a user may set. Changing ``kind`` re-checks the
    one-review-per-kind rule against the author's other live reviews for
    the same movie. A reject reason is stored only when the status is set
    to Deleted.

    Returns:
        Hydrated Review instance

    Raises:
        ReviewNotFoundError: If review doesn't exist
        ReviewValidationError: If rating, content or status is invalid
        ReviewConflictError: If the new kind is already taken
        InvalidReviewStateError: If the review is Deleted or the status change is not allowed
    """
    try:
        review = (
            Review.objects
            .select_for_update()
            .get(pk=review_id)
        )
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.is_deleted:
        raise InvalidReviewStateError("Cannot update a deleted review")

    kind, rating, body, tags = validate_review_content(kind=kind, rating=rating, body=body, tags=tags)

    if status is not None:
        status = _coerce_choice(status, ReviewStatus, 'status')
        if not can_transition(review.status, status):
            raise InvalidReviewStateError(
                f"Cannot change review status from {review.status} to {status}"
            )

    if kind != review.kind:
        taken = (
            Review.objects
            .filter(author_id=review.author_id, movie_id=review.movie_id, kind=kind)
            .exclude(status=ReviewStatus.DELETED)
            .exclude(pk=review.pk)
            .exists()
        )
        if taken:
            raise ReviewConflictError(
                f"Author already has a {kind.label.lower()} review for this movie"
            )

    review.kind = kind
    review.rating = rating
    review.body = body
    review.tags = tags

    if status is not None:
        review.status = status
        if status == ReviewStatus.DELETED and reject_reason:
            review.reject_reason = reject_reason

    review.updated_at = timezone.now()
    # score is owned by the score recompute service
    review.save(update_fields=['kind', 'rating', 'body', 'tags', 'status', 'reject_reason', 'updated_at'])
    logger.info("Review %s updated (status=%s)", review.pk, review.status)

    return get_review_by_id(review_id=review.pk)


@transaction.atomic
def delete_review(*, review_id: int, reject_reason: Optional[str] = None) -> bool:
    """
    Soft-delete a review by moving it to Deleted.

    Deleting an already-deleted review is a no-op and leaves
    ``updated_at`` untouched.

    Raises:
        ReviewNotFoundError: If review doesn't exist
    """
    try:
        review = (
            Review.objects
            .select_for_update()
            .get(pk=review_id)
        )
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.is_deleted:
        return True

    review.status = ReviewStatus.DELETED
    if reject_reason:
        review.reject_reason = reject_reason
    review.updated_at = timezone.now()
    review.save(update_fields=['status', 'reject_reason', 'updated_at'])
    logger.info("Review %s deleted", review.pk)

    return True


@transaction.atomic
def approve_review(*, review_id: int) -> bool:
    """
    Release a pending review.

    Raises:
        ReviewNotFoundError: If review doesn't exist
        InvalidReviewStateError: If review is already Released or Deleted
    """
    try:
        review = (
            Review.objects
            .select_for_update()
            .get(pk=review_id)
        )
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.status != ReviewStatus.PENDING:
        raise InvalidReviewStateError(f"Cannot approve a {review.status} review")

    review.status = ReviewStatus.RELEASED
    review.updated_at = timezone.now()
    review.save(update_fields=['status', 'updated_at'])
    logger.info("Review %s approved", review.pk)

    return True
