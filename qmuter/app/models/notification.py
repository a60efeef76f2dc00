"""
Notification Database Model.

In-app messages produced by the live tracking engine.
"""

import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON, Enum
from qmuter.app.db.session import Base
from qmuter.app.core.clock import utcnow
import enum


class NotificationType(str, enum.Enum):
    DRIVER_ETA = "driver-eta"
    RIDER_ETA = "rider-eta"
    ARRIVAL = "arrival-notification"


def _new_notification_id() -> str:
    return str(uuid.uuid4())


class Notification(Base):
    """
    In-App Notification.
    Created once per message sent; only the read state changes afterwards.
    """
    __tablename__ = "notifications"
    
    id = Column(String(36), primary_key=True, default=_new_notification_id)
    
    # Recipient
    user_id = Column(String(128), nullable=False, index=True)
    
    # Content
    type = Column(Enum(NotificationType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)  # trip_id, eta, sub-type
    
    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    
    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type='{self.type.value}')>"
