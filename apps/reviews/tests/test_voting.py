"""
Voting and scoring tests.

Tests:
- Vote submission (upsert, versioning, self-vote, deleted reviews)
- Score deltas and the atomic ledger update
- Score job queue (idempotency, retries, failure parking, eager mode)
- process_score_jobs management command
- Score recalculation and batch vote status
- Concurrent ledger increments (real transactions)
"""

import pytest
import threading
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import close_old_connections, connection
from django.test import TransactionTestCase
from django.utils import timezone

from apps.accounts.models import User
from apps.reviews.models import (
    Review,
    ReviewKind,
    ReviewStatus,
    ScoreJob,
    ScoreJobStatus,
    Vote,
    VoteValue,
)
from apps.reviews.services import (
    ScoreEntity,
    apply_score_delta,
    apply_vote_score,
    approve_review,
    compute_score_delta,
    create_review,
    get_batch_vote_status,
    process_due_score_jobs,
    process_score_job,
    recalculate_review_score,
    requeue_failed_score_jobs,
    run_score_job,
    vote_on_review,
)
from apps.reviews.services.exceptions import (
    ReviewNotFoundError,
    ReviewValidationError,
    SelfVoteForbiddenError,
)


def scores(review):
    """Return (review score, author communication score) from the database."""
    review.refresh_from_db()
    author = User.objects.get(pk=review.author_id)
    return review.score, author.communication_score


# ============================================================================
# SCORE DELTA TESTS
# ============================================================================

class TestComputeScoreDelta:
    """Contribution: fair +1, unfair -1, none 0."""

    @pytest.mark.parametrize('previous,new,delta', [
        (None, VoteValue.FAIR, 1),
        (None, VoteValue.UNFAIR, -1),
        (VoteValue.FAIR, VoteValue.FAIR, 0),
        (VoteValue.UNFAIR, VoteValue.UNFAIR, 0),
        (VoteValue.FAIR, VoteValue.UNFAIR, -2),
        (VoteValue.UNFAIR, VoteValue.FAIR, 2),
        (None, None, 0),
    ])
    def test_delta(self, previous, new, delta):
        assert compute_score_delta(previous, new) == delta


@pytest.mark.django_db
class TestApplyScore:
    """Test ledger updates."""

    def test_apply_score_delta_review(self, released_review):
        apply_score_delta(ScoreEntity.REVIEW, released_review.id, 3)
        apply_score_delta(ScoreEntity.REVIEW, released_review.id, -1)

        released_review.refresh_from_db()
        assert released_review.score == 2
        assert released_review.updated_at is not None

    def test_apply_score_delta_user(self, review_user):
        apply_score_delta(ScoreEntity.USER, review_user.id, -4)

        review_user.refresh_from_db()
        assert review_user.communication_score == -4

    def test_apply_score_delta_missing_row(self):
        with pytest.raises(ReviewNotFoundError):
            apply_score_delta(ScoreEntity.REVIEW, 999999, 1)

    def test_apply_vote_score_updates_both(self, released_review):
        delta = apply_vote_score(
            author_id=released_review.author_id,
            review_id=released_review.id,
            previous_value=VoteValue.FAIR,
            new_value=VoteValue.UNFAIR,
        )

        assert delta == -2
        assert scores(released_review) == (-2, -2)

    def test_apply_vote_score_zero_delta_touches_nothing(self, released_review):
        delta = apply_vote_score(
            author_id=released_review.author_id,
            review_id=released_review.id,
            previous_value=VoteValue.FAIR,
            new_value=VoteValue.FAIR,
        )

        released_review.refresh_from_db()
        assert delta == 0
        assert released_review.updated_at is None
        assert scores(released_review) == (0, 0)

    def test_apply_vote_score_all_or_nothing(self, review_user):
        """A failed review update rolls back the author update."""
        with pytest.raises(ReviewNotFoundError):
            apply_vote_score(
                author_id=review_user.id,
                review_id=999999,
                previous_value=None,
                new_value=VoteValue.FAIR,
            )

        review_user.refresh_from_db()
        assert review_user.communication_score == 0


# ============================================================================
# VOTING TESTS
# ============================================================================

@pytest.mark.django_db
class TestVoteOnReview:
    """Test vote recording and job enqueueing."""

    def test_first_vote_enqueues_job(self, released_review, review_other_user):
        assert vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair') is True

        vote = Vote.objects.get(voter=review_other_user, review=released_review)
        job = ScoreJob.objects.get(vote=vote)
        assert vote.value == VoteValue.FAIR
        assert vote.version == 1
        assert job.vote_version == 1
        assert job.previous_value is None
        assert job.new_value == VoteValue.FAIR
        assert job.author_id == released_review.author_id
        assert job.review_id == released_review.id
        assert job.status == ScoreJobStatus.PENDING

    def test_score_not_applied_synchronously(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')

        assert scores(released_review) == (0, 0)

    def test_change_vote_bumps_version(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='unfair')

        vote = Vote.objects.get(voter=review_other_user, review=released_review)
        latest = ScoreJob.objects.get(vote=vote, vote_version=2)
        assert Vote.objects.count() == 1
        assert vote.value == VoteValue.UNFAIR
        assert vote.version == 2
        assert vote.updated_at is not None
        assert latest.previous_value == VoteValue.FAIR
        assert latest.new_value == VoteValue.UNFAIR

    def test_self_vote_forbidden(self, released_review, review_user):
        with pytest.raises(SelfVoteForbiddenError):
            vote_on_review(review_id=released_review.id, voter=review_user, value='fair')

        assert Vote.objects.count() == 0
        assert ScoreJob.objects.count() == 0

    def test_vote_on_missing_review(self, review_other_user):
        with pytest.raises(ReviewNotFoundError):
            vote_on_review(review_id=999999, voter=review_other_user, value='fair')

    def test_vote_on_deleted_review(self, make_review, review_other_user):
        review = make_review(status=ReviewStatus.DELETED)

        with pytest.raises(ReviewNotFoundError):
            vote_on_review(review_id=review.id, voter=review_other_user, value='fair')

    def test_vote_on_pending_review_allowed(self, tag_review, review_other_user):
        assert vote_on_review(review_id=tag_review.id, voter=review_other_user, value='unfair') is True

    def test_invalid_vote_value(self, released_review, review_other_user):
        with pytest.raises(ReviewValidationError):
            vote_on_review(review_id=released_review.id, voter=review_other_user, value='meh')

    def test_hydrated_review_counts_votes(self, released_review, review_other_user, third_user):
        from apps.reviews.services import get_review_by_id

        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=released_review.id, voter=third_user, value='unfair')

        review = get_review_by_id(review_id=released_review.id)
        assert review.fair_votes == 1
        assert review.unfair_votes == 1


# ============================================================================
# SCORE JOB TESTS
# ============================================================================

@pytest.mark.django_db
class TestScoreJobs:
    """Test exactly-once application and retry handling."""

    def test_process_applies_delta(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        job = ScoreJob.objects.get()

        assert process_score_job(job_id=job.id) is True

        job.refresh_from_db()
        assert job.status == ScoreJobStatus.DONE
        assert job.attempts == 1
        assert job.processed_at is not None
        assert scores(released_review) == (1, 1)

    def test_redelivered_job_is_skipped(self, released_review, review_other_user):
        """Processing the same job twice applies the delta once."""
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        job = ScoreJob.objects.get()

        process_score_job(job_id=job.id)
        assert process_score_job(job_id=job.id) is False

        assert scores(released_review) == (1, 1)

    def test_same_vote_twice_no_change(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')

        counts = process_due_score_jobs()

        assert counts == {'applied': 2, 'skipped': 0, 'failed': 0}
        assert scores(released_review) == (1, 1)

    def test_fair_to_unfair_applies_minus_two_once(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        process_due_score_jobs()
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='unfair')
        process_due_score_jobs()
        process_due_score_jobs()

        assert scores(released_review) == (-1, -1)

    def test_author_score_spans_reviews(self, make_review, review_other_user, third_user):
        first = make_review(status=ReviewStatus.RELEASED)
        second = make_review(kind=ReviewKind.STRUCTURED_TAGS)

        vote_on_review(review_id=first.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=first.id, voter=third_user, value='fair')
        vote_on_review(review_id=second.id, voter=review_other_user, value='unfair')
        process_due_score_jobs()

        first.refresh_from_db()
        second.refresh_from_db()
        author = User.objects.get(pk=first.author_id)
        assert first.score == 2
        assert second.score == -1
        assert author.communication_score == 1

    def test_failure_schedules_retry(self, released_review, review_other_user, settings):
        settings.SCORE_JOBS = {**settings.SCORE_JOBS, 'MAX_ATTEMPTS': 3, 'RETRY_DELAY_SECONDS': 60}
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        job = ScoreJob.objects.get()

        with mock.patch(
            'apps.reviews.services.score_jobs.apply_vote_score',
            side_effect=RuntimeError('store unreachable'),
        ):
            with pytest.raises(RuntimeError):
                run_score_job(job_id=job.id)

        job.refresh_from_db()
        assert job.status == ScoreJobStatus.PENDING
        assert job.attempts == 1
        assert 'store unreachable' in job.last_error
        assert job.available_at > timezone.now() + timedelta(seconds=30)
        assert scores(released_review) == (0, 0)

        # Not due yet
        assert process_due_score_jobs() == {'applied': 0, 'skipped': 0, 'failed': 0}

    def test_failure_parks_job_after_max_attempts(self, released_review, review_other_user, settings, caplog):
        settings.SCORE_JOBS = {**settings.SCORE_JOBS, 'MAX_ATTEMPTS': 2}
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        job = ScoreJob.objects.get()

        with mock.patch(
            'apps.reviews.services.score_jobs.apply_vote_score',
            side_effect=RuntimeError('store unreachable'),
        ):
            for _ in range(2):
                with pytest.raises(RuntimeError):
                    run_score_job(job_id=job.id)

        job.refresh_from_db()
        assert job.status == ScoreJobStatus.FAILED
        assert job.attempts == 2
        assert any(
            record.levelname == 'ERROR' and 'failed permanently' in record.getMessage()
            for record in caplog.records
        )

    def test_process_due_counts_failures(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')

        with mock.patch(
            'apps.reviews.services.score_jobs.apply_vote_score',
            side_effect=RuntimeError('boom'),
        ):
            counts = process_due_score_jobs()

        assert counts == {'applied': 0, 'skipped': 0, 'failed': 1}

    def test_requeue_failed_jobs(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        ScoreJob.objects.update(status=ScoreJobStatus.FAILED, attempts=5)

        assert requeue_failed_score_jobs() == 1

        job = ScoreJob.objects.get()
        assert job.status == ScoreJobStatus.PENDING
        assert job.attempts == 0
        assert process_due_score_jobs()['applied'] == 1
        assert scores(released_review) == (1, 1)

    def test_process_due_respects_limit(self, released_review, review_other_user, third_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=released_review.id, voter=third_user, value='fair')

        assert process_due_score_jobs(limit=1)['applied'] == 1
        assert ScoreJob.objects.filter(status=ScoreJobStatus.PENDING).count() == 1

    def test_eager_mode_runs_after_commit(self, released_review, review_other_user, settings,
                                          django_capture_on_commit_callbacks):
        settings.SCORE_JOBS = {**settings.SCORE_JOBS, 'EAGER': True}

        with django_capture_on_commit_callbacks(execute=True):
            vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')

        assert ScoreJob.objects.get().status == ScoreJobStatus.DONE
        assert scores(released_review) == (1, 1)


# ============================================================================
# WORKER COMMAND TESTS
# ============================================================================

@pytest.mark.django_db
class TestProcessScoreJobsCommand:
    """Test the process_score_jobs management command."""

    def test_single_pass(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='unfair')
        out = StringIO()

        call_command('process_score_jobs', stdout=out)

        assert 'Applied 1' in out.getvalue()
        assert scores(released_review) == (-1, -1)

    def test_nothing_due(self):
        out = StringIO()

        call_command('process_score_jobs', stdout=out)

        assert 'No score jobs due' in out.getvalue()

    def test_retry_failed(self, released_review, review_other_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        ScoreJob.objects.update(status=ScoreJobStatus.FAILED)
        out = StringIO()

        call_command('process_score_jobs', '--retry-failed', stdout=out)

        assert 'Requeued 1' in out.getvalue()
        assert scores(released_review) == (1, 1)


# ============================================================================
# RECALCULATION & BATCH STATUS TESTS
# ============================================================================

@pytest.mark.django_db
class TestRecalculateAndBatchStatus:
    """Test score repair and per-voter status lookup."""

    def test_recalculate_repairs_drift(self, released_review, review_other_user, third_user):
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')
        vote_on_review(review_id=released_review.id, voter=third_user, value='fair')
        process_due_score_jobs()
        Review.objects.filter(pk=released_review.pk).update(score=7)

        correction = recalculate_review_score(review_id=released_review.id)

        released_review.refresh_from_db()
        assert correction == -5
        assert released_review.score == 2

    def test_recalculate_supersedes_queued_jobs(self, released_review, review_other_user):
        """Pending jobs are covered by the recount and never re-applied."""
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='fair')

        assert recalculate_review_score(review_id=released_review.id) == 1
        assert process_due_score_jobs() == {'applied': 0, 'skipped': 0, 'failed': 0}
        assert ScoreJob.objects.get().status == ScoreJobStatus.DONE
        assert scores(released_review) == (1, 1)

    def test_recalculate_locks_like_the_worker(self, released_review, review_other_user):
        """Jobs are settled first, then the author ledger, then the review."""
        vote_on_review(review_id=released_review.id, voter=review_other_user, value='unfair')
        job = ScoreJob.objects.get()
        events = []

        def record(entity_kind, entity_id, delta):
            job.refresh_from_db()
            events.append((entity_kind, job.status))
            apply_score_delta(entity_kind, entity_id, delta)

        with mock.patch(
            'apps.reviews.services.score_recompute.apply_score_delta',
            side_effect=record,
        ):
            assert recalculate_review_score(review_id=released_review.id) == -1

        assert events == [
            (ScoreEntity.USER, ScoreJobStatus.DONE),
            (ScoreEntity.REVIEW, ScoreJobStatus.DONE),
        ]
        assert scores(released_review) == (-1, -1)

    def test_recalculate_consistent_is_noop(self, released_review):
        assert recalculate_review_score(review_id=released_review.id) == 0
        assert scores(released_review) == (0, 0)

    def test_recalculate_not_found(self):
        with pytest.raises(ReviewNotFoundError):
            recalculate_review_score(review_id=999999)

    def test_batch_vote_status(self, make_review, review_other_user):
        voted = make_review(status=ReviewStatus.RELEASED)
        not_voted = make_review(kind=ReviewKind.STRUCTURED_TAGS)
        vote_on_review(review_id=voted.id, voter=review_other_user, value='unfair')

        status = get_batch_vote_status(review_ids=[voted.id, not_voted.id, 999999], voter=review_other_user)

        assert status == {
            voted.id: {'has_voted': True, 'value': 'unfair'},
            not_voted.id: {'has_voted': False, 'value': None},
            999999: {'has_voted': False, 'value': None},
        }

    def test_batch_vote_status_empty(self, review_other_user):
        assert get_batch_vote_status(review_ids=[], voter=review_other_user) == {}


# ============================================================================
# END-TO-END SCENARIOS
# ============================================================================

@pytest.mark.django_db
class TestScenarios:
    """Full flows through lifecycle, voting and scoring."""

    def test_review_approve_vote_change_vote(self, review_user, review_other_user, moderator):
        review = create_review(
            author=review_user,
            movie_id=42,
            kind=ReviewKind.FREEFORM,
            rating=7,
            body="Great film",
        )
        assert review.status == ReviewStatus.PENDING
        assert review.score == 0

        approve_review(review_id=review.id)
        review.refresh_from_db()
        assert review.status == ReviewStatus.RELEASED

        vote_on_review(review_id=review.id, voter=review_other_user, value='fair')
        process_due_score_jobs()
        assert scores(review) == (1, 1)

        vote_on_review(review_id=review.id, voter=review_other_user, value='unfair')
        process_due_score_jobs()
        assert scores(review) == (-1, -1)

    def test_third_review_for_movie_rejected(self, review_user):
        from apps.reviews.services.exceptions import ReviewLimitExceededError

        create_review(author=review_user, movie_id=42, kind=ReviewKind.STRUCTURED_TAGS,
                      rating=8, tags=[{'tag_id': 1, 'rating': 8}])
        create_review(author=review_user, movie_id=42, kind=ReviewKind.FREEFORM, rating=6, body="Solid")

        for kind, content in ((ReviewKind.FREEFORM, {'body': 'Again'}),
                              (ReviewKind.STRUCTURED_TAGS, {'tags': [{'tag_id': 2, 'rating': 5}]})):
            with pytest.raises(ReviewLimitExceededError):
                create_review(author=review_user, movie_id=42, kind=kind, rating=5, **content)


# ============================================================================
# CONCURRENCY TESTS (real transactions)
# ============================================================================

class TestConcurrentScoreUpdates(TransactionTestCase):
    """Concurrent ledger increments must not lose updates."""

    def setUp(self):
        self.author = User.objects.create_user(
            email='concurrent@example.com',
            password='TestPass123!',
            user_name='concurrent',
        )
        self.review = Review.objects.create(
            author=self.author,
            movie_id=42,
            kind=ReviewKind.FREEFORM,
            status=ReviewStatus.RELEASED,
            rating=7,
            body="Great film",
        )

    def test_concurrent_deltas_all_applied(self):
        """N threads adding +1 each leave the ledgers at exactly N."""
        thread_count = 8
        errors = []

        def apply_in_thread():
            try:
                apply_score_delta(ScoreEntity.REVIEW, self.review.id, 1)
                apply_score_delta(ScoreEntity.USER, self.author.id, 1)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [
            threading.Thread(target=apply_in_thread)
            for _ in range(thread_count)
        ]

        for thread in threads:
            thread.start()

        for thread in threads:
            thread.join()

        close_old_connections()
        self.review.refresh_from_db()
        self.author.refresh_from_db()

        assert errors == []
        assert self.review.score == thread_count
        assert self.author.communication_score == thread_count
