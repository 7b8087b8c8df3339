"""Bounded retry loop for optimistic-concurrency conflicts."""

import logging
from typing import Callable, TypeVar

from ..models.exceptions import TransientConflictError, VersionConflictError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(operation: Callable[[], T], max_attempts: int, label: str) -> T:
    """Run `operation` until it commits without a version conflict.

    `operation` must re-read everything it depends on, so each attempt
    recomputes from fresh state.

    Raises:
        TransientConflictError: If every attempt conflicts.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except VersionConflictError as exc:
            logger.warning("Conflict during %s attempt=%s/%s: %s", label, attempt, max_attempts, exc)
    raise TransientConflictError(
        "{0} kept conflicting with concurrent updates after {1} attempts".format(label, max_attempts)
    )
