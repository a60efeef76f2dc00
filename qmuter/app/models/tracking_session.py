"""
Tracking Session database model.

One row per tracked trip: both parties' latest positions, the arrival/ETA
snapshot of the last evaluation cycle, and the one-shot notification flags.
"""

from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, Enum, Index
from qmuter.app.db.session import Base
from qmuter.app.core.clock import utcnow
from qmuter.app.models.tracking_enums import TrackingStatus, PartyRole, NotificationFlag


FLAG_COLUMNS = {
    NotificationFlag.DRIVER_10: "notified_driver_10",
    NotificationFlag.DRIVER_5: "notified_driver_5",
    NotificationFlag.RIDER_10: "notified_rider_10",
    NotificationFlag.RIDER_5: "notified_rider_5",
    NotificationFlag.DRIVER_ARRIVED: "notified_driver_arrived",
    NotificationFlag.RIDER_ARRIVED: "notified_rider_arrived",
    NotificationFlag.BOTH_ARRIVED: "notified_both_arrived",
}


class TrackingSession(Base):
    """
    Live tracking state of a single trip.
    
    Identifiers and pickup/dropoff points are fixed at creation.
    Party locations start zeroed and are overwritten by location updates.
    """
    __tablename__ = "tracking_sessions"
    
    trip_id = Column(String(128), primary_key=True)
    
    # Parties
    driver_id = Column(String(128), nullable=False, index=True)
    rider_id = Column(String(128), nullable=False, index=True)
    route_id = Column(String(128), nullable=False)
    
    # Pickup / dropoff
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(200), nullable=False)
    pickup_place_id = Column(String(255), nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(200), nullable=False)
    dropoff_place_id = Column(String(255), nullable=True)
    
    # Driver position
    driver_lat = Column(Float, default=0.0, nullable=False)
    driver_lng = Column(Float, default=0.0, nullable=False)
    driver_recorded_at = Column(DateTime(timezone=True), nullable=False)
    driver_accuracy = Column(Float, nullable=True)  # meters
    driver_speed = Column(Float, nullable=True)
    driver_heading = Column(Float, nullable=True)  # degrees
    
    # Rider position
    rider_lat = Column(Float, default=0.0, nullable=False)
    rider_lng = Column(Float, default=0.0, nullable=False)
    rider_recorded_at = Column(DateTime(timezone=True), nullable=False)
    rider_accuracy = Column(Float, nullable=True)
    rider_speed = Column(Float, nullable=True)
    rider_heading = Column(Float, nullable=True)
    
    # Trip status (snapshot of the last evaluation cycle)
    status = Column(Enum(TrackingStatus), default=TrackingStatus.EN_ROUTE_TO_PICKUP, nullable=False, index=True)
    driver_arrived = Column(Boolean, default=False, nullable=False)
    rider_arrived = Column(Boolean, default=False, nullable=False)
    driver_eta = Column(Integer, default=0, nullable=False)  # minutes
    rider_eta = Column(Integer, default=0, nullable=False)  # minutes
    
    # One-shot notification flags
    notified_driver_10 = Column(Boolean, default=False, nullable=False)
    notified_driver_5 = Column(Boolean, default=False, nullable=False)
    notified_rider_10 = Column(Boolean, default=False, nullable=False)
    notified_rider_5 = Column(Boolean, default=False, nullable=False)
    notified_driver_arrived = Column(Boolean, default=False, nullable=False)
    notified_rider_arrived = Column(Boolean, default=False, nullable=False)
    notified_both_arrived = Column(Boolean, default=False, nullable=False)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    
    __table_args__ = (
        Index("ix_tracking_sessions_status_updated", "status", "updated_at"),
    )
    
    def is_party(self, user_id: str) -> bool:
        return user_id in (self.driver_id, self.rider_id)
    
    def party_id(self, role: PartyRole) -> str:
        return self.driver_id if role == PartyRole.DRIVER else self.rider_id
    
    def set_location(self, role: PartyRole, lat, lng, recorded_at, accuracy=None, speed=None, heading=None):
        """Overwrite the position of one party."""
        if role == PartyRole.DRIVER:
            self.driver_lat = lat
            self.driver_lng = lng
            self.driver_recorded_at = recorded_at
            self.driver_accuracy = accuracy
            self.driver_speed = speed
            self.driver_heading = heading
        elif role == PartyRole.RIDER:
            self.rider_lat = lat
            self.rider_lng = lng
            self.rider_recorded_at = recorded_at
            self.rider_accuracy = accuracy
            self.rider_speed = speed
            self.rider_heading = heading
        else:
            raise ValueError(f"Unknown party role: {role!r}")
    
    def location_of(self, role: PartyRole) -> tuple:
        """(lat, lng) of one party's latest position."""
        if role == PartyRole.DRIVER:
            return self.driver_lat, self.driver_lng
        return self.rider_lat, self.rider_lng
    
    @property
    def pickup_point(self) -> tuple:
        return self.pickup_lat, self.pickup_lng
    
    def is_notified(self, flag: NotificationFlag) -> bool:
        return bool(getattr(self, FLAG_COLUMNS[flag]))
    
    def mark_notified(self, flag: NotificationFlag) -> None:
        setattr(self, FLAG_COLUMNS[flag], True)
    
    def notified_flags(self) -> dict:
        return {flag.value: self.is_notified(flag) for flag in NotificationFlag}
    
    def __repr__(self):
        return f"<TrackingSession(trip_id='{self.trip_id}', status='{self.status.value}')>"
