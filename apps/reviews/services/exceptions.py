"""Domain exceptions for reviews app.

Every exception carries an ``error_key`` naming its failure kind, which
the service boundary (``results.run_service``) copies into the envelope.
"""


class ReviewsServiceError(Exception):
    """Base exception for all reviews service errors."""
    error_key = 'unexpected'


class ReviewValidationError(ReviewsServiceError):
    """Malformed input: rating out of range, content not matching kind."""
    error_key = 'validation_error'


class ReviewNotFoundError(ReviewsServiceError):
    """Review does not exist."""
    error_key = 'not_found'


class ReviewConflictError(ReviewsServiceError):
    """Author already has a live review of this kind for the movie."""
    error_key = 'conflict'


class ReviewLimitExceededError(ReviewsServiceError):
    """Author reached the per-movie submission cap."""
    error_key = 'limit_exceeded'


class SelfVoteForbiddenError(ReviewsServiceError):
    """Users cannot vote on their own review."""
    error_key = 'forbidden'


class InvalidReviewStateError(ReviewsServiceError):
    """Requested status transition is not allowed."""
    error_key = 'invalid_state'


class UnexpectedServiceError(ReviewsServiceError):
    """Storage or infrastructure failure."""
    error_key = 'unexpected'
