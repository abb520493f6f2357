"""
Reviews services - Business logic layer.

This package contains all business operations for the reviews app:
- Review lifecycle (create, update, delete, approve, get)
- Review listing and pagination
- Fairness voting
- Score recompute and the score job queue
- Tag catalog and statistics
"""

# Review lifecycle
from .review_management import (
    create_review,
    get_review_by_id,
    update_review,
    delete_review,
    approve_review,
    validate_review_content,
)

# Listing
from .review_listing import (
    ReviewFilters,
    ReviewListScope,
    ReviewPage,
    list_reviews,
)

# Voting
from .voting import (
    vote_on_review,
    get_batch_vote_status,
)

# Scoring
from .score_recompute import (
    ScoreEntity,
    compute_score_delta,
    apply_score_delta,
    apply_vote_score,
    recalculate_review_score,
)
from .score_jobs import (
    enqueue_score_job,
    process_score_job,
    run_score_job,
    process_due_score_jobs,
    requeue_failed_score_jobs,
)

# Tags & statistics
from .tag_management import (
    search_tags,
)
from .statistics import (
    get_user_review_stats,
    get_movie_review_summary,
)

# Result envelope
from .results import ServiceResult, run_service

# Domain Exceptions
from .exceptions import (
    ReviewsServiceError,
    ReviewValidationError,
    ReviewNotFoundError,
    ReviewConflictError,
    ReviewLimitExceededError,
    SelfVoteForbiddenError,
    InvalidReviewStateError,
    UnexpectedServiceError,
)

__all__ = [
    # Review lifecycle
    'create_review',
    'get_review_by_id',
    'update_review',
    'delete_review',
    'approve_review',
    'validate_review_content',
    # Listing
    'ReviewFilters',
    'ReviewListScope',
    'ReviewPage',
    'list_reviews',
    # Voting
    'vote_on_review',
    'get_batch_vote_status',
    # Scoring
    'ScoreEntity',
    'compute_score_delta',
    'apply_score_delta',
    'apply_vote_score',
    'recalculate_review_score',
    'enqueue_score_job',
    'process_score_job',
    'run_score_job',
    'process_due_score_jobs',
    'requeue_failed_score_jobs',
    # Tags & statistics
    'search_tags',
    'get_user_review_stats',
    'get_movie_review_summary',
    # Result envelope
    'ServiceResult',
    'run_service',
    # Exceptions
    'ReviewsServiceError',
    'ReviewValidationError',
    'ReviewNotFoundError',
    'ReviewConflictError',
    'ReviewLimitExceededError',
    'SelfVoteForbiddenError',
    'InvalidReviewStateError',
    'UnexpectedServiceError',
]
