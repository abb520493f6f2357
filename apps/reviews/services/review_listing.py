"""Review listing service - filtered, paginated review queries."""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from django.conf import settings
from django.db import models
from django.db.models import Q, QuerySet

from apps.accounts.models import User
from apps.reviews.models import Review, ReviewKind, ReviewStatus
from .exceptions import ReviewValidationError
from .review_management import hydrated_reviews


class ReviewListScope(models.TextChoices):
    PUBLIC = 'public', 'Public'
    MINE = 'mine', 'Mine'
    MODERATION = 'moderation', 'Moderation'


@dataclass(frozen=True)
class ReviewFilters:
    movie_id: Optional[int] = None
    author_id: Optional[int] = None
    status: Optional[str] = None
    kind: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class ReviewPage:
    items: list = field(default_factory=list)
    page: int = 1
    page_size: int = 10
    total_count: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


def _page_size_limits() -> tuple[int, int]:
    conf = getattr(settings, 'REVIEWS', {})
    return conf.get('DEFAULT_PAGE_SIZE', 10), conf.get('MAX_PAGE_SIZE', 100)


def publicly_visible(queryset: QuerySet[Review]) -> QuerySet[Review]:
    """
    Default visibility rule.

    Structured tag reviews publish immediately and are visible while
    Pending; freeform reviews are visible only once Released. Deleted
    reviews are never visible.
    """
    return queryset.filter(
        Q(kind=ReviewKind.STRUCTURED_TAGS, status__in=[ReviewStatus.PENDING, ReviewStatus.RELEASED])
        | Q(kind=ReviewKind.FREEFORM, status=ReviewStatus.RELEASED)
    )


def _apply_filters(queryset: QuerySet[Review], filters: ReviewFilters) -> QuerySet[Review]:
    if filters.movie_id is not None:
        queryset = queryset.filter(movie_id=filters.movie_id)

    if filters.author_id is not None:
        queryset = queryset.filter(author_id=filters.author_id)

    if filters.status is not None:
        if filters.status not in ReviewStatus.values:
            raise ReviewValidationError(f"Invalid status '{filters.status}'")
        queryset = queryset.filter(status=filters.status)

    if filters.kind is not None:
        if filters.kind not in ReviewKind.values:
            raise ReviewValidationError(f"Invalid review kind '{filters.kind}'")
        queryset = queryset.filter(kind=filters.kind)

    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise ReviewValidationError("date_from must not be after date_to")

    if filters.date_from:
        queryset = queryset.filter(created_at__date__gte=filters.date_from)

    if filters.date_to:
        queryset = queryset.filter(created_at__date__lte=filters.date_to)

    if filters.email:
        queryset = queryset.filter(author__email__icontains=filters.email.strip())

    return queryset


def list_reviews(
    *,
    filters: Optional[ReviewFilters] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    scope: str = ReviewListScope.PUBLIC,
    user: Optional[User] = None,
) -> ReviewPage:
    """
    List reviews, newest first, one page at a time.

    Scopes:
    - public: the default visibility rule applies unless a status
      filter is given
    - mine: every review by ``user`` regardless of status
    - moderation: no visibility rule; all filters apply as given

    Returns:
        ReviewPage with hydrated reviews and the total match count

    Raises:
        ReviewValidationError: On bad paging, filter values or date range
    """
    filters = filters or ReviewFilters()
    default_size, max_size = _page_size_limits()
    page_size = default_size if page_size is None else page_size

    if page < 1:
        raise ReviewValidationError("Page must be 1 or greater")
    if page_size < 1 or page_size > max_size:
        raise ReviewValidationError(f"Page size must be between 1 and {max_size}")
    if scope not in ReviewListScope.values:
        raise ReviewValidationError(f"Invalid listing scope '{scope}'")

    queryset = _apply_filters(hydrated_reviews(), filters)

    if scope == ReviewListScope.MINE:
        if user is None:
            raise ReviewValidationError("Listing your own reviews requires a user")
        queryset = queryset.filter(author=user)
    elif scope == ReviewListScope.PUBLIC and filters.status is None:
        queryset = publicly_visible(queryset)

    queryset = queryset.order_by('-created_at', '-id')

    total_count = queryset.count()
    offset = (page - 1) * page_size
    items = list(queryset[offset:offset + page_size])

    return ReviewPage(items=items, page=page, page_size=page_size, total_count=total_count)
