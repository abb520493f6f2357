"""Service result envelope - the boundary between services and callers.

Services raise ``ReviewsServiceError`` subclasses. ``run_service`` turns
those into a failed ``ServiceResult`` of the matching kind, and turns
storage failures into an ``unexpected`` result whose message hides the
original error (which is logged).
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from django.db import DatabaseError

from .exceptions import ReviewsServiceError, UnexpectedServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    is_success: bool
    data: Any = None
    error_key: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, data=None) -> 'ServiceResult':
        return cls(is_success=True, data=data)

    @classmethod
    def fail(cls, error_key: str, error_message: str) -> 'ServiceResult':
        return cls(is_success=False, error_key=error_key, error_message=error_message)

    def as_dict(self, data=None) -> dict:
        return {
            'is_success': self.is_success,
            'data': self.data if data is None else data,
            'error_key': self.error_key,
            'error_message': self.error_message,
        }


def run_service(func: Callable, **kwargs) -> ServiceResult:
    """Call a service function and wrap its outcome in a ServiceResult."""
    try:
        return ServiceResult.ok(func(**kwargs))
    except ReviewsServiceError as exc:
        return ServiceResult.fail(exc.error_key, str(exc))
    except DatabaseError:
        logger.exception("Storage failure in %s", func.__name__)
        return ServiceResult.fail(
            UnexpectedServiceError.error_key,
            "An unexpected error occurred. Please try again later.",
        )
