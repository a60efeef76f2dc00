"""
Live tracking enumerations.
"""

import enum


class TrackingStatus(str, enum.Enum):
    """Lifecycle of a tracked trip."""
    EN_ROUTE_TO_PICKUP = "en_route_to_pickup"  # Both parties converging on pickup
    EN_ROUTE_TO_DROPOFF = "en_route_to_dropoff"  # Both arrived, ride under way
    COMPLETED = "completed"  # Tracking ended, kept until purged
    CANCELLED = "cancelled"  # Trip cancelled by an external flow

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = (TrackingStatus.EN_ROUTE_TO_PICKUP, TrackingStatus.EN_ROUTE_TO_DROPOFF)


class PartyRole(str, enum.Enum):
    """Which party of the trip a location update belongs to."""
    DRIVER = "driver"
    RIDER = "rider"


class TravelMode(str, enum.Enum):
    """Travel mode used for ETA estimation."""
    DRIVING = "driving"
    WALKING = "walking"
    TRANSIT = "transit"


class NotificationFlag(str, enum.Enum):
    """One-shot alerts of a tracked trip, in evaluation order."""
    DRIVER_10 = "driver10"  # Driver 10 minutes away
    DRIVER_5 = "driver5"  # Driver 5 minutes away
    RIDER_10 = "rider10"  # Rider 10 minutes away
    RIDER_5 = "rider5"  # Rider 5 minutes away
    DRIVER_ARRIVED = "driverArrived"
    RIDER_ARRIVED = "riderArrived"
    BOTH_ARRIVED = "bothArrived"
