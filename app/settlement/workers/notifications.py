"""
Notification delivery worker.

Services queue notifications with notify_after_commit(); this task hands
them to the configured NotificationSender. Delivery failures never affect
the money movement that triggered them.
"""

from __future__ import annotations

import logging

from celery import shared_task

from settlement.collaborators import get_notification_sender

logger = logging.getLogger(__name__)

MAX_NOTIFICATION_RETRIES = 3


@shared_task(bind=True, max_retries=MAX_NOTIFICATION_RETRIES, default_retry_delay=60)
def send_settlement_notification(
    self,
    email_type: str,
    recipient: str,
    template_data: dict,
) -> dict:
    """
    Send one settlement email.

    Returns:
        Dict with status "sent", "not_sent" or "failed"
    """
    log_context = {"email_type": email_type, "recipient": recipient}

    try:
        sent = get_notification_sender().send(email_type, recipient, template_data)
    except Exception as e:
        if self.request.retries < MAX_NOTIFICATION_RETRIES:
            logger.warning(
                f"Notification delivery failed, retrying: {e}",
                extra={**log_context, "attempt": self.request.retries + 1},
            )
            raise self.retry(exc=e)
        logger.error(f"Notification delivery failed: {e}", extra=log_context)
        return {"status": "failed", "email_type": email_type, "error": str(e)}

    if not sent:
        logger.warning("Notification sender reported no delivery", extra=log_context)
        return {"status": "not_sent", "email_type": email_type}

    logger.info("Notification sent", extra=log_context)
    return {"status": "sent", "email_type": email_type}


__all__ = ["send_settlement_notification"]
