"""
Celery tasks for the accounting app.

Tasks:
- send_entry_status_notification: Email the company after an entry is
  posted or voided

Usage:
    # Scheduled by accounting.notifications after the transaction commits
    send_entry_status_notification.delay(entry_id, "posted")
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def send_entry_status_notification(entry_id: int, event: str) -> bool:
    from accounting.models import JournalEntry
    from accounting.notifications import send_entry_status_email

    entry = JournalEntry.objects.select_related("company").filter(pk=entry_id).first()
    if entry is None:
        logger.warning(f"Journal entry {entry_id} vanished before notification")
        return False

    return send_entry_status_email(entry, event)
