"""Fire-and-forget side effects recorded after the transactional core commits.

Each call writes an audit row and, when there is someone to tell, queues a
``send_notifications`` job for the worker. Failures here are logged and
dropped: the scheduling decision has already been committed.
"""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import AuthContext
from ..core.constants import JOB_MAX_ATTEMPTS, SEND_NOTIFICATIONS_JOB
from ..db import models

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


def _actor_type(actor: AuthContext | None) -> models.ActorType:
    if actor is None:
        return models.ActorType.system
    return models.ActorType(actor.role.value)


def publish(
    db: Session,
    *,
    tenant_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None,
    actor: AuthContext | None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    recipients: list[int] | None = None,
    priority: int = 0,
) -> None:
    """Record ``action`` in the audit log and queue notifications for ``recipients``."""

    try:
        db.add(
            models.AuditLog(
                tenant_id=tenant_id,
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                actor_type=_actor_type(actor),
                actor_id=actor.profile_id if actor else None,
                old_values=_jsonable(old_values) if old_values is not None else None,
                new_values=_jsonable(new_values) if new_values is not None else None,
            )
        )
        if recipients:
            db.add(
                models.Job(
                    tenant_id=tenant_id,
                    type=SEND_NOTIFICATIONS_JOB,
                    payload=_jsonable(
                        {
                            "event": action,
                            "entity_type": entity_type,
                            "entity_id": entity_id,
                            "student_ids": sorted(set(recipients)),
                            "data": new_values or {},
                        }
                    ),
                    status=models.JobStatus.pending,
                    priority=priority,
                    attempts=0,
                    max_attempts=JOB_MAX_ATTEMPTS,
                )
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to record side effects",
            extra={"action": action, "entity_type": entity_type, "entity_id": entity_id},
        )


__all__ = ["publish"]
