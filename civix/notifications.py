# Outbound notifications. Delivery is someone else's job: the portal records
# the notice and hands it off after the response has been sent.

import asyncio
import logging

from .config import NOTIFY_TIMEOUT_SECONDS, RESET_URL, RESET_TOKEN_MINUTES, new_id, now_utc
from .models import Notice
from .store import Store

logger = logging.getLogger(__name__)


class NotificationLogNotifier:
    """Writes each notice to ``notification_logs`` for the mail relay to pick up."""

    def __init__(self, store: Store):
        self.store = store

    async def notify(self, notice: Notice):
        doc = {"_id": new_id(), "user_id": notice.user_id, "kind": notice.kind,
               "message": notice.message, "extra": notice.extra, "created_at": now_utc()}
        await self.store.run(self.store.db.notification_logs.insert_one, doc)


async def dispatch(notifier, notice: Notice, timeout: float = NOTIFY_TIMEOUT_SECONDS):
    """Fire-and-forget: never raises, never blocks longer than ``timeout``."""
    if notifier is None:
        return
    try:
        await asyncio.wait_for(notifier.notify(notice), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Notification %s for %s timed out after %.1fs", notice.kind, notice.user_id, timeout)
    except Exception as e:
        logger.error("Notification %s for %s failed: %s", notice.kind, notice.user_id, e)


def assignment_notice(assignment: dict, subject: dict) -> Notice:
    kind = assignment["subject_kind"]
    return Notice(
        user_id=assignment["assignee_id"], kind=f"{kind}_assignment",
        message=f'You have been assigned to {kind}: {subject.get("title", "")}',
        extra={"subject_id": assignment["subject_id"], "assignment_id": assignment["_id"]})


def complaint_notice(complaint: dict) -> Notice:
    return Notice(
        user_id=complaint["created_by"], kind="complaint_confirmation",
        message=f'Your complaint has been submitted. Complaint ID: {complaint["_id"]}',
        extra={"complaint_id": complaint["_id"]})


def password_reset_notice(user: dict, token: str) -> Notice:
    return Notice(
        user_id=user["_id"], kind="password_reset",
        message=f"Use the link below to reset your password. It expires in {RESET_TOKEN_MINUTES} minutes.",
        extra={"email": user["email"], "link": f"{RESET_URL}?token={token}"})
