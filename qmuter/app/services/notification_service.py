"""
Notification Service.

Creates tracking notifications and manages their read state.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, Dict, Any, List

from qmuter.app.core.clock import utcnow
from qmuter.app.models.notification import Notification, NotificationType

logger = logging.getLogger("qmuter.notifications")


class NotificationService:
    
    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data,
            is_read=False,
            created_at=utcnow()
        )
        db.add(notif)
        await db.flush() # Caller commits
        return notif

    @staticmethod
    async def send_notification(
        db: AsyncSession,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Best-effort variant of create_notification.
        
        The insert runs in a savepoint so a failed write is rolled back
        alone; the error is logged and None returned. The caller's
        transaction stays usable.
        """
        try:
            async with db.begin_nested():
                return await NotificationService.create_notification(
                    db, user_id, type, title, message, data
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to write %s notification for user %s (trip %s)",
                NotificationType(type).value, user_id, (data or {}).get("trip_id")
            )
            return None

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        """Most recent notifications of a user."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(desc(Notification.created_at)).limit(limit)
        
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: str, user_id: str) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: str) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
