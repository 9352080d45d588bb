import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models import Notification
from services.database_service import get_database_service
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications."""

    def __init__(self):
        self.db_service = get_database_service()

    def _serialize(self, notification: Notification) -> Dict[str, Any]:
        return {
            "id": notification.id,
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "action_url": notification.action_url,
            "is_read": notification.is_read,
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        }

    def notify(
        self,
        session: Session,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            action_url=action_url,
        )
        session.add(notification)
        logger.debug(f"Queued {notification_type} notification for user {user_id}")
        return notification

    def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 50) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            query = session.query(Notification).filter(Notification.user_id == user_id)
            if unread_only:
                query = query.filter(Notification.is_read.is_(False))
            notifications = query.order_by(Notification.created_at.desc()).limit(limit).all()
            unread_count = (
                session.query(Notification)
                .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                .count()
            )
            return {
                "notifications": [self._serialize(n) for n in notifications],
                "unread_count": unread_count,
            }

    def mark_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            notification = session.get(Notification, notification_id)
            if not notification or notification.user_id != user_id:
                raise NotFoundError("Notification not found")
            notification.is_read = True
            return self._serialize(notification)

    def mark_all_read(self, user_id: str) -> int:
        with self.db_service.session_scope() as session:
            updated = (
                session.query(Notification)
                .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                .update({Notification.is_read: True}, synchronize_session=False)
            )
            return updated


notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global notification_service
    if notification_service is None:
        notification_service = NotificationService()
    return notification_service
