"""In-app notifications."""

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Protocol

from coop_loans.exceptions import CoopLoansError, DeliveryError
from coop_loans.models.enums import NotificationType
from coop_loans.models.member import Notification
from coop_loans.store.base import NOTIFICATIONS, DocumentStore
from coop_loans.store.codec import to_document

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers an in-app notification to users or raises ``DeliveryError``."""

    def notify(
        self,
        user_ids: Iterable[str],
        kind: NotificationType,
        title: str,
        message: str,
        metadata: dict | None = None,
    ) -> None: ...


class StoreNotifier:
    """Write one ``notifications`` document per recipient."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    def notify(
        self,
        user_ids: Iterable[str],
        kind: NotificationType,
        title: str,
        message: str,
        metadata: dict | None = None,
    ) -> None:
        now = self.clock()
        for user_id in user_ids:
            notification = Notification(
                notification_id=uuid.uuid4().hex,
                user_id=user_id,
                kind=kind,
                title=title,
                message=message,
                created_at=now,
                metadata=dict(metadata or {}),
            )
            try:
                self.store.set(NOTIFICATIONS, notification.notification_id, to_document(notification))
            except CoopLoansError as e:
                raise DeliveryError(f"Notification for {user_id} not saved: {e}") from e
            logger.debug("Notification %s sent to %s", kind.value, user_id)
