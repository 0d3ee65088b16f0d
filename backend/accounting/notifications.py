# accounting/notifications.py
"""
Post-commit notifications for journal entry transitions.

Handles:
- Scheduling delivery after the surrounding transaction commits
- Composing and sending the status email to the company

Nothing is sent for drafts or for transitions that roll back. Delivery
failures are logged and never touch the ledger.
"""

import logging
import smtplib
from functools import partial

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction

logger = logging.getLogger(__name__)

EVENTS = ("posted", "voided")


def notify_entry_status(entry, event: str) -> None:
    """Queue a notification for ``entry`` once the current transaction commits."""
    if event not in EVENTS:
        raise ValueError(f"Unknown notification event: {event}")
    if not getattr(settings, "LEDGER_NOTIFICATIONS_ENABLED", True):
        return
    transaction.on_commit(partial(_dispatch, entry.pk, event), robust=True)


def _dispatch(entry_id: int, event: str) -> None:
    from accounting.tasks import send_entry_status_notification

    send_entry_status_notification.delay(entry_id, event)


def send_entry_status_email(entry, event: str) -> bool:
    """
    Email the company's notification address about a transition.

    Returns:
        True if an email was sent, False if skipped or delivery failed
    """
    recipient = entry.company.notification_email
    if not recipient:
        logger.debug(
            "No notification address configured",
            extra={"entry_id": entry.pk, "company_id": entry.company_id},
        )
        return False

    total_debit, total_credit = entry.totals()
    lines = [
        f"Journal entry {entry.entry_number} dated {entry.date.isoformat()} was {event}.",
        f"Memo: {entry.memo or '-'}",
        f"Total: {total_debit} {entry.currency}",
    ]
    if event == "voided":
        lines.append(f"Reason: {entry.void_reason}")

    try:
        send_mail(
            subject=f"[{entry.company.name}] Journal entry {entry.entry_number} {event}",
            message="\n".join(lines),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as e:
        logger.error(
            f"Failed to send {event} notification for entry {entry.pk}: {e}",
            extra={"entry_id": entry.pk, "company_id": entry.company_id},
        )
        return False

    logger.info(
        f"Sent {event} notification for entry {entry.entry_number} to {recipient}",
        extra={"entry_id": entry.pk, "company_id": entry.company_id},
    )
    return True
