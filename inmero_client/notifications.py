import logging
from typing import List, Optional

from .api_access import InmeroApiAccess
from .constants import NOTIFICATIONS_PAGE_SIZE
from .models import Page, UserNotification

logger = logging.getLogger(__name__)


def unread_count(notifications: List[UserNotification]) -> int:
    return sum(1 for n in notifications if not n.is_read)


class NotificationsManager:
    """
    Paginated notification inbox for one user. `notifications` holds every
    page loaded so far; mutations return updated copies of the affected items.
    """

    def __init__(self, api_access: InmeroApiAccess, user_id: int, page_size: int = NOTIFICATIONS_PAGE_SIZE):
        self.api_access = api_access
        self.user_id = user_id
        self.page_size = page_size
        self.notifications: List[UserNotification] = []
        self.offset = 0
        self.has_next_page = False

    def refresh(self) -> List[UserNotification]:
        """Drop everything loaded and fetch the first page again."""
        page = self._fetch(0)
        self.notifications = list(page.data)
        self.offset = 0
        self.has_next_page = page.has_next_page
        return self.notifications

    def load_more(self) -> List[UserNotification]:
        """Append the next page. Returns only the new items; empty when there is no next page."""
        if not self.has_next_page:
            return []
        # Deleted items are gone server-side too, so the offset follows what is loaded
        next_offset = len(self.notifications)
        page = self._fetch(next_offset)
        self.notifications.extend(page.data)
        self.offset = next_offset
        self.has_next_page = page.has_next_page
        return list(page.data)

    def _fetch(self, offset: int) -> Page[UserNotification]:
        page = self.api_access.list_notifications(self.user_id, limit=self.page_size, offset=offset)
        logger.info(
            "Loaded %s notifications for user_id=%s offset=%s has_next_page=%s",
            len(page.data),
            self.user_id,
            offset,
            page.has_next_page,
        )
        return page

    @property
    def unread_count(self) -> int:
        return unread_count(self.notifications)

    def find(self, user_notification_id: int) -> Optional[UserNotification]:
        return next((n for n in self.notifications if n.id == user_notification_id), None)

    def mark_read(self, notification: UserNotification) -> UserNotification:
        if notification.is_read:
            return notification
        # The read endpoint is keyed by the shared notification id
        notification_id = notification.notification_id or notification.id
        self.api_access.mark_notification_read(self.user_id, notification_id)
        updated = notification.model_copy(update={"is_read": True})
        self._replace(updated)
        return updated

    def mark_all_read(self) -> None:
        self.api_access.mark_all_notifications_read(self.user_id)
        self.notifications = [n.model_copy(update={"is_read": True}) for n in self.notifications]

    def delete(self, notification: UserNotification) -> None:
        self.api_access.delete_notification(self.user_id, notification.id)
        self.notifications = [n for n in self.notifications if n.id != notification.id]

    def _replace(self, updated: UserNotification) -> None:
        self.notifications = [updated if n.id == updated.id else n for n in self.notifications]
