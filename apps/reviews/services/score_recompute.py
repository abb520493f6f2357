"""Score recompute service - turns fairness votes into score ledger deltas.

The score ledger is the ``communication_score`` column on the author's
user row and the ``score`` column on the review. Both are changed only
through ``apply_score_delta``, a single ``UPDATE ... SET col = col + delta``
statement, so concurrent votes never lose an increment.
"""

import logging
from typing import Optional

from django.db import models, transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from apps.accounts.models import User
from apps.reviews.models import Review, ScoreJob, ScoreJobStatus, VoteValue
from .exceptions import ReviewNotFoundError

logger = logging.getLogger(__name__)


class ScoreEntity(models.TextChoices):
    USER = 'user', 'User'
    REVIEW = 'review', 'Review'


_LEDGER_COLUMNS = {
    ScoreEntity.USER: (User, 'communication_score'),
    ScoreEntity.REVIEW: (Review, 'score'),
}

VOTE_CONTRIBUTIONS = {
    VoteValue.FAIR: 1,
    VoteValue.UNFAIR: -1,
    None: 0,
}


def vote_contribution(value: Optional[str]) -> int:
    """Fair counts +1, Unfair -1, no vote 0."""
    return VOTE_CONTRIBUTIONS[VoteValue(value) if value is not None else None]


def compute_score_delta(previous_value: Optional[str], new_value: Optional[str]) -> int:
    """Signed change a vote submission makes to the score ledgers."""
    return vote_contribution(new_value) - vote_contribution(previous_value)


def apply_score_delta(entity_kind: str, entity_id: int, delta: int) -> None:
    """
    Atomically add ``delta`` to one ledger and stamp its update time.

    Raises:
        ReviewNotFoundError: If the target row doesn't exist
    """
    model, column = _LEDGER_COLUMNS[ScoreEntity(entity_kind)]
    updated = model.objects.filter(pk=entity_id).update(
        **{column: F(column) + delta},
        updated_at=timezone.now(),
    )
    if not updated:
        raise ReviewNotFoundError(f"Cannot apply score delta: {entity_kind} {entity_id} not found")


def apply_vote_score(
    *,
    author_id: int,
    review_id: int,
    previous_value: Optional[str],
    new_value: str,
) -> int:
    """
    Apply the delta of one vote submission to the author and the review.

    A repeated vote with the same value yields delta 0 and touches
    nothing. Both ledger updates commit together or not at all; errors
    propagate to the caller (the job runner) for retry.

    Returns:
        The applied delta
    """
    delta = compute_score_delta(previous_value, new_value)

    if delta == 0:
        logger.info(
            "No score change for review %s (previous=%s, new=%s)",
            review_id, previous_value, new_value,
        )
        return 0

    with transaction.atomic():
        apply_score_delta(ScoreEntity.USER, author_id, delta)
        apply_score_delta(ScoreEntity.REVIEW, review_id, delta)

    logger.info(
        "Applied score delta %+d to user %s and review %s",
        delta, author_id, review_id,
    )
    return delta


@transaction.atomic
def recalculate_review_score(*, review_id: int) -> int:
    """
    Rebuild a review's score from its vote rows and repair drift.

    The expected score is ``fair - unfair``; the difference from the
    stored score is applied to both the review and its author. Queued
    jobs for this review are marked done because the vote rows already
    reflect them.

    Rows are locked in the same order the job worker uses (score jobs,
    then the author, then the review).

    Returns:
        The correction applied (0 if the ledgers were consistent)

    Raises:
        ReviewNotFoundError: If review doesn't exist
    """
    author_id = Review.objects.filter(pk=review_id).values_list('author_id', flat=True).first()
    if author_id is None:
        raise ReviewNotFoundError("Review not found")

    superseded = ScoreJob.objects.filter(
        review_id=review_id,
        status__in=[ScoreJobStatus.PENDING, ScoreJobStatus.FAILED],
    ).update(
        status=ScoreJobStatus.DONE,
        processed_at=timezone.now(),
        last_error='Superseded by score recalculation',
    )

    User.objects.select_for_update().filter(pk=author_id).first()
    review = (
        Review.objects
        .select_for_update()
        .get(pk=review_id)
    )

    counts = review.votes.aggregate(
        fair=Count('id', filter=Q(value=VoteValue.FAIR)),
        unfair=Count('id', filter=Q(value=VoteValue.UNFAIR)),
    )
    drift = (counts['fair'] - counts['unfair']) - review.score

    if drift:
        apply_score_delta(ScoreEntity.USER, author_id, drift)
        apply_score_delta(ScoreEntity.REVIEW, review.pk, drift)

    logger.info(
        "Recalculated score for review %s: correction %+d, %s queued job(s) superseded",
        review.pk, drift, superseded,
    )
    return drift
