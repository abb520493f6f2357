# ==========================================
# apps/reviews/models.py
# ==========================================

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator

MIN_RATING = 1.0
MAX_RATING = 10.0
MIN_TAG_RATING = 1
MAX_TAG_RATING = 10
MAX_LIVE_REVIEWS_PER_MOVIE = 2


class ReviewStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    RELEASED = 'released', 'Released'
    DELETED = 'deleted', 'Deleted'


class ReviewKind(models.TextChoices):
    STRUCTURED_TAGS = 'tags', 'Structured tags'
    FREEFORM = 'freeform', 'Freeform'


class VoteValue(models.TextChoices):
    FAIR = 'fair', 'Fair'
    UNFAIR = 'unfair', 'Unfair'


class TagCategory(models.TextChoices):
    CONTENT = 'content', 'Content'
    ACTING = 'acting', 'Acting'
    AUDIO_VISUAL = 'audio_visual', 'Audio & visual'
    THEATER_EXPERIENCE = 'theater_experience', 'Theater experience'


# Allowed status moves; DELETED is terminal.
STATUS_TRANSITIONS = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.RELEASED, ReviewStatus.DELETED}),
    ReviewStatus.RELEASED: frozenset({ReviewStatus.DELETED}),
    ReviewStatus.DELETED: frozenset(),
}


def can_transition(current, target):
    """Return True if a review may move from ``current`` to ``target`` status."""
    if current == target:
        return True
    return ReviewStatus(target) in STATUS_TRANSITIONS[ReviewStatus(current)]


class Tag(models.Model):
    """Reviewable facet from the tag catalog."""

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=30, choices=TagCategory.choices, default=TagCategory.CONTENT)
    is_active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tags'
        ordering = ['category', 'display_order', 'name']
        constraints = [
            models.UniqueConstraint(fields=['name', 'category'], name='unique_tag_name_per_category'),
        ]

    def __str__(self):
        return self.name


class Review(models.Model):
    """A user's review of an external catalog movie."""

    author = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='reviews')
    movie_id = models.PositiveIntegerField(db_index=True)
    status = models.CharField(max_length=20, choices=ReviewStatus.choices, default=ReviewStatus.PENDING)
    kind = models.CharField(max_length=20, choices=ReviewKind.choices)
    rating = models.FloatField(validators=[MinValueValidator(MIN_RATING), MaxValueValidator(MAX_RATING)])
    body = models.TextField(null=True, blank=True)
    # [{"tag_id": int, "rating": int}, ...] in submission order
    tags = models.JSONField(null=True, blank=True)
    reject_reason = models.TextField(null=True, blank=True)
    # Written only by the score recompute service
    score = models.BigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'reviews'
        indexes = [
            models.Index(fields=['author', 'movie_id'], name='reviews_author_movie_idx'),
            models.Index(fields=['movie_id', 'status'], name='reviews_movie_status_idx'),
            models.Index(fields=['status', 'kind'], name='reviews_status_kind_idx'),
            models.Index(fields=['created_at'], name='reviews_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.author.get_display_name()} - movie {self.movie_id} ({self.rating})"

    @property
    def is_deleted(self):
        return self.status == ReviewStatus.DELETED


class Vote(models.Model):
    """One user's fairness vote on one review."""

    voter = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='votes')
    review = models.ForeignKey(Review, on_delete=models.CASCADE, related_name='votes')
    value = models.CharField(max_length=10, choices=VoteValue.choices)
    # Bumped on every submission; keys the score job for this submission
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'review_votes'
        constraints = [
            models.UniqueConstraint(fields=['voter', 'review'], name='unique_vote_per_voter_review'),
        ]
        indexes = [
            models.Index(fields=['review', 'value'], name='review_votes_review_value_idx'),
        ]

    def __str__(self):
        return f"{self.voter_id} -> review {self.review_id}: {self.value}"


class ScoreJobStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    DONE = 'done', 'Done'
    FAILED = 'failed', 'Failed'


class ScoreJob(models.Model):
    """
    Durable "vote recorded" message consumed by the score worker.

    One row per (vote, vote_version): a redelivered job finds itself
    already ``done`` and is skipped, so deltas are applied exactly once.
    """

    vote = models.ForeignKey(Vote, on_delete=models.CASCADE, related_name='score_jobs')
    vote_version = models.PositiveIntegerField()
    author_id = models.BigIntegerField()
    review_id = models.BigIntegerField()
    previous_value = models.CharField(max_length=10, choices=VoteValue.choices, null=True, blank=True)
    new_value = models.CharField(max_length=10, choices=VoteValue.choices)
    status = models.CharField(max_length=10, choices=ScoreJobStatus.choices, default=ScoreJobStatus.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    available_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'score_jobs'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['vote', 'vote_version'], name='unique_score_job_per_vote_version'),
        ]
        indexes = [
            models.Index(fields=['status', 'available_at'], name='score_jobs_status_avail_idx'),
        ]

    def __str__(self):
        return f"ScoreJob {self.pk} ({self.previous_value} -> {self.new_value}) [{self.status}]"
