"""Voting service - fairness votes on reviews."""

import logging
from typing import Iterable

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.reviews.models import Review, ReviewStatus, Vote, VoteValue
from .exceptions import (
    ReviewNotFoundError,
    ReviewValidationError,
    SelfVoteForbiddenError,
)
from .score_jobs import enqueue_score_job

logger = logging.getLogger(__name__)


@transaction.atomic
def vote_on_review(*, review_id: int, voter: User, value: str) -> bool:
    """
    Record or change a user's fairness vote on a review.

    This operation:
    1. Rejects missing or deleted reviews and votes on one's own review
    2. Upserts the (voter, review) vote row, bumping its version
    3. Enqueues a score job carrying the previous and new value

    The score change is applied asynchronously by the score worker and
    may not be visible when this returns.

    Raises:
        ReviewValidationError: If value is not fair/unfair
        ReviewNotFoundError: If review doesn't exist or is deleted
        SelfVoteForbiddenError: If voter wrote the review
    """
    try:
        value = VoteValue(value)
    except ValueError:
        raise ReviewValidationError(f"Invalid vote '{value}'. Valid options: fair, unfair")

    try:
        review = Review.objects.exclude(status=ReviewStatus.DELETED).get(pk=review_id)
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.author_id == voter.pk:
        raise SelfVoteForbiddenError("You cannot vote on your own review")

    vote = (
        Vote.objects
        .select_for_update()
        .filter(voter=voter, review=review)
        .first()
    )

    created = False
    if vote is None:
        try:
            with transaction.atomic():
                vote = Vote.objects.create(voter=voter, review=review, value=value)
            created = True
        except IntegrityError:
            # A concurrent first vote by the same voter won the insert
            vote = Vote.objects.select_for_update().get(voter=voter, review=review)

    if created:
        previous_value = None
    else:
        previous_value = vote.value
        vote.value = value
        vote.version += 1
        vote.updated_at = timezone.now()
        vote.save(update_fields=['value', 'version', 'updated_at'])

    enqueue_score_job(
        vote=vote,
        author_id=review.author_id,
        previous_value=previous_value,
        new_value=value,
    )
    logger.info(
        "User %s voted %s on review %s (previous=%s)",
        voter.pk, value, review.pk, previous_value,
    )

    return True


def get_batch_vote_status(*, review_ids: Iterable[int], voter: User) -> dict[int, dict]:
    """
    Report the voter's vote on each of the given reviews.

    Returns:
        Mapping review id -> {'has_voted': bool, 'value': str | None};
        every requested id is present.
    """
    review_ids = list(dict.fromkeys(review_ids))
    votes = dict(
        Vote.objects
        .filter(voter=voter, review_id__in=review_ids)
        .values_list('review_id', 'value')
    )

    return {
        review_id: {
            'has_voted': review_id in votes,
            'value': votes.get(review_id),
        }
        for review_id in review_ids
    }
