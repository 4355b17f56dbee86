from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.models.workflow import Notification
from app.services.common import apply_pagination, coerce_uuid
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


class Notifications(ListResponseMixin):
    @staticmethod
    def get(db: Session, notification_id: str, recipient_id) -> Notification:
        notification = db.get(Notification, coerce_uuid(notification_id))
        if not notification or notification.recipient_id != coerce_uuid(recipient_id):
            raise NotFoundError("Notification not found")
        return notification

    @staticmethod
    def list(
        db: Session,
        recipient_id,
        event_type: str | None,
        is_read: bool | None,
        limit: int,
        offset: int,
    ) -> List[Notification]:
        query = db.query(Notification).filter(
            Notification.recipient_id == coerce_uuid(recipient_id),
            Notification.is_active.is_(True),
        )
        if event_type is not None:
            query = query.filter(Notification.event_type == event_type)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        query = query.order_by(Notification.created_at.desc())
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def mark_read(db: Session, recipient_id, notification_ids: List[str]) -> int:
        now = datetime.now(timezone.utc)
        owner = coerce_uuid(recipient_id)
        count = 0
        for nid in notification_ids:
            notification = db.get(Notification, coerce_uuid(nid))
            if (
                notification
                and notification.recipient_id == owner
                and not notification.is_read
            ):
                notification.is_read = True
                notification.read_at = now
                count += 1
        db.commit()
        logger.info("Marked %d notifications as read", count)
        return count

    @staticmethod
    def mark_all_read(db: Session, recipient_id) -> int:
        now = datetime.now(timezone.utc)
        count = (
            db.query(Notification)
            .filter(
                Notification.recipient_id == coerce_uuid(recipient_id),
                Notification.is_read.is_(False),
            )
            .update(
                {Notification.is_read: True, Notification.read_at: now},
                synchronize_session="fetch",
            )
        )
        db.commit()
        logger.info("Marked all %d notifications as read for %s", count, recipient_id)
        return count

    @staticmethod
    def unread_count(db: Session, recipient_id) -> int:
        return (
            db.query(Notification)
            .filter(
                Notification.recipient_id == coerce_uuid(recipient_id),
                Notification.is_read.is_(False),
                Notification.is_active.is_(True),
            )
            .count()
        )

    @staticmethod
    def dismiss(db: Session, notification_id: str, recipient_id) -> None:
        notification = Notifications.get(db, notification_id, recipient_id)
        notification.is_active = False
        db.commit()
        logger.info("Dismissed notification %s", notification_id)


notifications = Notifications()
