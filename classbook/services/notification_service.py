from __future__ import annotations

import logging

import httpx

from ..config import get_settings
from ..db import models

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    pass


def deliver(job: models.Job) -> None:
    """POST a queued notification to the configured webhook."""

    settings = get_settings()
    url = settings.notification_webhook_url
    if not url:
        logger.warning(
            "Notification webhook is not configured; dropping notification",
            extra={"job_id": job.id},
        )
        return

    headers = {}
    if settings.notification_webhook_token:
        headers["Authorization"] = f"Bearer {settings.notification_webhook_token}"
    body = {
        "job_id": job.id,
        "tenant_id": job.tenant_id,
        "type": job.type,
        "payload": job.payload,
    }
    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(url, json=body, headers=headers)
            response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise NotificationDeliveryError(str(exc) or exc.__class__.__name__) from exc
