"""Tag catalog service - read access to reviewable facets."""

from typing import Optional

from django.db.models import QuerySet

from apps.reviews.models import Tag, TagCategory
from .exceptions import ReviewValidationError


def search_tags(
    *,
    search: str = '',
    category: Optional[str] = None,
    include_inactive: bool = False,
) -> QuerySet[Tag]:
    """
    Search the tag catalog by name and category.

    Inactive tags are hidden unless ``include_inactive`` is set.

    Raises:
        ReviewValidationError: If category is unknown
    """
    queryset = Tag.objects.all()

    if not include_inactive:
        queryset = queryset.filter(is_active=True)

    if search:
        queryset = queryset.filter(name__icontains=search)

    if category:
        if category not in TagCategory.values:
            raise ReviewValidationError(f"Invalid tag category '{category}'")
        queryset = queryset.filter(category=category)

    return queryset.order_by('category', 'display_order', 'name')
