"""Score job queue - durable delivery of "vote recorded" messages.

Jobs are rows in ``score_jobs`` written in the same transaction as the
vote, so a committed vote always has its job. The worker
(``manage.py process_score_jobs``) drains due jobs; with
``SCORE_JOBS['EAGER']`` a job also runs right after its transaction
commits.
"""

import logging
from datetime import timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.reviews.models import ScoreJob, ScoreJobStatus, Vote
from .score_recompute import apply_vote_score

logger = logging.getLogger(__name__)

DEFAULT_SCORE_JOB_SETTINGS = {
    'EAGER': False,
    'MAX_ATTEMPTS': 5,
    'RETRY_DELAY_SECONDS': 30,
    'BATCH_SIZE': 100,
}


def get_score_job_settings() -> dict:
    return {**DEFAULT_SCORE_JOB_SETTINGS, **getattr(settings, 'SCORE_JOBS', {})}


def enqueue_score_job(
    *,
    vote: Vote,
    author_id: int,
    previous_value: Optional[str],
    new_value: str,
) -> ScoreJob:
    """
    Record a score job for the vote's current version.

    Must be called inside the transaction that saved the vote.
    """
    job = ScoreJob.objects.create(
        vote=vote,
        vote_version=vote.version,
        author_id=author_id,
        review_id=vote.review_id,
        previous_value=previous_value,
        new_value=new_value,
        available_at=timezone.now(),
    )
    logger.info(
        "Enqueued score job %s for review %s (previous=%s, new=%s)",
        job.pk, vote.review_id, previous_value, new_value,
    )

    if get_score_job_settings()['EAGER']:
        transaction.on_commit(lambda: _run_after_commit(job.pk))

    return job


def _run_after_commit(job_id: int) -> None:
    try:
        run_score_job(job_id=job_id)
    except Exception:
        # Failure is recorded on the job row; the worker retries it.
        logger.warning("Eager run of score job %s failed; left for the worker", job_id)


def process_score_job(*, job_id: int) -> bool:
    """
    Apply one job's score delta exactly once.

    The job row is locked, and the ledger updates and the ``done`` mark
    commit in one transaction, so a redelivered job is skipped.

    Returns:
        True if the delta was applied now, False if the job was already done
    """
    with transaction.atomic():
        job = ScoreJob.objects.select_for_update().get(pk=job_id)

        if job.status == ScoreJobStatus.DONE:
            logger.info("Score job %s already processed, skipping", job.pk)
            return False

        apply_vote_score(
            author_id=job.author_id,
            review_id=job.review_id,
            previous_value=job.previous_value,
            new_value=job.new_value,
        )

        job.status = ScoreJobStatus.DONE
        job.attempts += 1
        job.last_error = ''
        job.processed_at = timezone.now()
        job.save(update_fields=['status', 'attempts', 'last_error', 'processed_at'])

    return True


def run_score_job(*, job_id: int) -> bool:
    """
    Process a job, recording any failure for retry before re-raising.
    """
    try:
        return process_score_job(job_id=job_id)
    except ScoreJob.DoesNotExist:
        raise
    except Exception as exc:
        _record_failure(job_id, exc)
        raise


def _record_failure(job_id: int, exc: Exception) -> None:
    conf = get_score_job_settings()
    job = ScoreJob.objects.get(pk=job_id)

    job.attempts += 1
    job.last_error = f"{type(exc).__name__}: {exc}"

    if job.attempts >= conf['MAX_ATTEMPTS']:
        job.status = ScoreJobStatus.FAILED
        logger.error(
            "Score job %s failed permanently after %s attempts; review %s / user %s not updated: %s",
            job.pk, job.attempts, job.review_id, job.author_id, job.last_error,
        )
    else:
        job.available_at = timezone.now() + timedelta(
            seconds=conf['RETRY_DELAY_SECONDS'] * job.attempts
        )
        logger.warning(
            "Score job %s failed (attempt %s/%s), retrying at %s: %s",
            job.pk, job.attempts, conf['MAX_ATTEMPTS'], job.available_at, job.last_error,
        )

    job.save(update_fields=['attempts', 'last_error', 'status', 'available_at'])


def process_due_score_jobs(*, limit: Optional[int] = None) -> dict:
    """
    Run every pending job whose retry time has come, oldest first.

    Returns:
        Counts: {'applied': int, 'skipped': int, 'failed': int}
    """
    limit = limit or get_score_job_settings()['BATCH_SIZE']
    job_ids = list(
        ScoreJob.objects
        .filter(status=ScoreJobStatus.PENDING, available_at__lte=timezone.now())
        .order_by('available_at', 'id')
        .values_list('id', flat=True)[:limit]
    )

    counts = {'applied': 0, 'skipped': 0, 'failed': 0}
    for job_id in job_ids:
        try:
            applied = run_score_job(job_id=job_id)
        except Exception:
            # Already recorded by run_score_job; move on to the next job.
            counts['failed'] += 1
            continue
        counts['applied' if applied else 'skipped'] += 1

    return counts


def requeue_failed_score_jobs(*, job_ids: Optional[Iterable[int]] = None) -> int:
    """
    Put failed jobs back in the queue with a fresh attempt budget.

    Returns:
        Number of jobs requeued
    """
    queryset = ScoreJob.objects.filter(status=ScoreJobStatus.FAILED)
    if job_ids is not None:
        queryset = queryset.filter(pk__in=list(job_ids))

    count = queryset.update(
        status=ScoreJobStatus.PENDING,
        attempts=0,
        available_at=timezone.now(),
    )
    logger.info("Requeued %s failed score job(s)", count)
    return count
