from django.contrib import admin
from .models import Review, ScoreJob, ScoreJobStatus, Tag, Vote
from .services import (
    ReviewsServiceError,
    approve_review,
    delete_review,
    recalculate_review_score,
    requeue_failed_score_jobs,
)


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    """Admin interface for the tag catalog."""

    list_display = ['name', 'category', 'is_active', 'display_order', 'created_at']
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'description']
    ordering = ['category', 'display_order', 'name']


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Moderation interface for Reviews."""

    list_display = [
        'id',
        'movie_id',
        'author',
        'kind',
        'status',
        'rating',
        'score',
        'created_at',
    ]
    list_filter = [
        'status',
        'kind',
        'created_at',
    ]
    search_fields = [
        'author__email',
        'author__user_name',
        'body',
        '=movie_id',
    ]
    # Status changes go through the actions; score through votes
    readonly_fields = ['author', 'movie_id', 'status', 'score', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('movie_id', 'author', 'kind', 'rating', 'status')
        }),
        ('Review Content', {
            'fields': ('body', 'tags')
        }),
        ('Moderation', {
            'fields': ('reject_reason', 'score')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('author')

    actions = ['approve_reviews', 'delete_reviews', 'recalculate_scores']

    def _run_for_each(self, request, queryset, service, verb):
        done, failed = 0, 0
        for review in queryset:
            try:
                service(review_id=review.pk)
                done += 1
            except ReviewsServiceError:
                failed += 1
        msg = f"{verb} {done} review(s)."
        if failed:
            msg += f" Skipped {failed}."
        self.message_user(request, msg)

    @admin.action(description='Approve selected pending reviews')
    def approve_reviews(self, request, queryset):
        self._run_for_each(request, queryset, approve_review, 'Approved')

    @admin.action(description='Delete selected reviews')
    def delete_reviews(self, request, queryset):
        self._run_for_each(request, queryset, delete_review, 'Deleted')

    @admin.action(description='Recalculate scores from votes')
    def recalculate_scores(self, request, queryset):
        self._run_for_each(request, queryset, recalculate_review_score, 'Recalculated')


@admin.register(Vote)
class VoteAdmin(admin.ModelAdmin):
    """Read-only view of fairness votes."""

    list_display = ['id', 'review', 'voter', 'value', 'version', 'created_at', 'updated_at']
    list_filter = ['value', 'created_at']
    search_fields = ['voter__email', '=review__id']
    readonly_fields = ['voter', 'review', 'value', 'version', 'created_at', 'updated_at']
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related('voter', 'review')


@admin.register(ScoreJob)
class ScoreJobAdmin(admin.ModelAdmin):
    """Score job queue: inspect and requeue failed jobs."""

    list_display = [
        'id',
        'review_id',
        'author_id',
        'previous_value',
        'new_value',
        'status',
        'attempts',
        'available_at',
        'processed_at',
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['=review_id', '=author_id']
    readonly_fields = [
        'vote',
        'vote_version',
        'review_id',
        'author_id',
        'previous_value',
        'new_value',
        'status',
        'attempts',
        'last_error',
        'available_at',
        'created_at',
        'processed_at',
    ]
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    actions = ['requeue_jobs']

    @admin.action(description='Requeue selected failed jobs')
    def requeue_jobs(self, request, queryset):
        job_ids = queryset.filter(status=ScoreJobStatus.FAILED).values_list('id', flat=True)
        count = requeue_failed_score_jobs(job_ids=job_ids)
        self.message_user(request, f"Requeued {count} job(s).")
