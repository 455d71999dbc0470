"""Durable background job queue helpers (Redis/RQ)."""

from __future__ import annotations

from typing import Any, Dict, Optional

from redis import Redis
from rq import Queue
from rq.job import Job

from config import settings


NOTIFICATION_QUEUE_NAME = "notification_jobs"


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)


def get_notification_queue() -> Queue:
    """Return the configured notification queue."""
    return Queue(
        name=NOTIFICATION_QUEUE_NAME,
        connection=get_redis_connection(),
        default_timeout=120,
    )


def enqueue_email_job(
    to: str,
    email_type: str,
    variables: Dict[str, str],
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Job:
    """Enqueue one transactional email for the notification worker."""
    queue = get_notification_queue()
    return queue.enqueue(
        "services.notifications.send_email_job",
        to,
        email_type,
        variables,
        user_id,
        metadata,
        job_timeout=120,
        result_ttl=3600,
        failure_ttl=86400,
    )
