"""Notification hook invoked after auto-assign creates assignments."""

from __future__ import annotations

import logging
from typing import List

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Default notifier: records who would be told about new assignments."""

    def notify_assignments(self, booking_id: int, created: List) -> None:
        for a in created:
            logger.info(
                "Notify staff %s: assigned to item %s of booking %s as %s",
                a.staff_id, a.booking_item_id, booking_id, a.role or "sevadar",
            )


def send_assignment_notifications(notifier, booking_id: int, created: List) -> bool:
    """
    Hand newly created assignments to the notifier.

    Fire-and-forget: a failing notifier is logged and never undoes the
    assignments, which are already committed.

    Returns:
        True if the notifier accepted the batch
    """
    if notifier is None or not created:
        return False
    try:
        notifier.notify_assignments(booking_id, created)
        return True
    except Exception:
        logger.exception("Assignment notification failed for booking %s", booking_id)
        return False
