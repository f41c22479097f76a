"""
Rules deciding when a cached dependency record is rewritten.
"""

from typing import Callable, Optional

from .dependency import Dependency
from .record import (
    LICENSE_KEY,
    REVIEW_CHANGED_KEY,
    VERSION_KEY,
    DependencyRecord,
    records_match,
)

ReviewedPredicate = Callable[[DependencyRecord], bool]


def should_refresh(
    dependency: Dependency,
    cached_record: Optional[DependencyRecord],
    force: bool = False,
) -> bool:
    """
    Determine if the dependency's record should be saved.

    The record is saved when:
    1. the caller forces it
    2. there is no cached record
    3. the cached record doesn't have a version set
    4. the cached record version doesn't match the current dependency version

    Args:
        dependency: The observed dependency
        cached_record: Record currently stored for the dependency, if any
        force: Refresh regardless of the cached state

    Returns:
        True if the dependency's record should be saved
    """
    if force or cached_record is None:
        return True

    cached_version = cached_record.get(VERSION_KEY)
    if not cached_version:
        return True

    return dependency.version != str(cached_version)


def apply_refresh_adjustments(
    candidate: DependencyRecord,
    cached_record: Optional[DependencyRecord],
    reviewed: ReviewedPredicate,
) -> None:
    """
    Adjust a candidate record in place before it replaces the cached one.

    When nothing but the license text differs, the cached license text is kept.
    Otherwise, a changed license text on a previously reviewed record marks the
    candidate for re-review.
    """
    if records_match(candidate, cached_record):
        candidate[LICENSE_KEY] = cached_record.get(LICENSE_KEY)
    elif (
        cached_record is not None
        and reviewed(cached_record)
        and candidate.get(LICENSE_KEY) != cached_record.get(LICENSE_KEY)
    ):
        candidate[REVIEW_CHANGED_KEY] = True
