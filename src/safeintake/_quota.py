"""Package size quota."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("check_size",)

import logging
from collections.abc import Iterable

from safeintake._exceptions import QuotaExceededError
from safeintake._pool import ResourcePool
from safeintake._types import ResourceDescriptor

log = logging.getLogger("safeintake.security")


def check_size(
    upload_size: int,
    resources: Iterable[ResourceDescriptor],
    pool: ResourcePool,
    budget: int,
) -> int:
    """Return the package's total size, or raise if it is over *budget*.

    The total is *upload_size* (the uncompressed size of the uploaded
    archive) plus the pool size of every resource in *resources*.  A total
    exactly equal to *budget* is accepted.

    Raises ``QuotaExceededError`` when the total exceeds the budget and
    lets ``NotFoundError`` from the pool propagate for unknown hashes.
    """
    if upload_size < 0:
        raise ValueError(f"upload_size must be non-negative, got {upload_size}")
    if budget < 0:
        raise ValueError(f"budget must be non-negative, got {budget}")

    total = upload_size
    for resource in resources:
        total += pool.size_of(resource.sha1)

    if total > budget:
        log.warning("Package rejected: %d bytes exceeds budget of %d", total, budget)
        raise QuotaExceededError(total, budget)

    return total
