"""Per-class mutual exclusion for the occupancy check-and-insert.

The database row lock (``SELECT ... FOR UPDATE`` on the class row) is the
primary guard; this in-process striped lock serializes requests handled by
the same worker process, and is the only guard on backends that ignore
``FOR UPDATE`` (SQLite).
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
import logging
import threading
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

_STRIPE_COUNT = 64
_STRIPES = tuple(threading.Lock() for _ in range(_STRIPE_COUNT))


def _stripe_index(class_id: int) -> int:
    return hash(("class", class_id)) % _STRIPE_COUNT


@contextmanager
def class_lock(class_id: int) -> Iterator[None]:
    with _STRIPES[_stripe_index(class_id)]:
        yield


@contextmanager
def class_locks(class_ids: Iterable[int]) -> Iterator[None]:
    """Hold the locks of several classes, always acquired in stripe order."""

    indexes = sorted({_stripe_index(class_id) for class_id in class_ids})
    with ExitStack() as stack:
        for index in indexes:
            stack.enter_context(_STRIPES[index])
        logger.debug("Acquired class locks", extra={"stripes": indexes})
        yield


__all__ = ["class_lock", "class_locks"]
