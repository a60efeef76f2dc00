"""
Live tracking request and response schemas.
"""

from pydantic import AfterValidator, BaseModel, Field
from datetime import datetime
from typing import Annotated, Optional, List, Dict

from qmuter.app.core.clock import as_utc
from qmuter.app.models.tracking_enums import TrackingStatus, PartyRole
from qmuter.app.models.tracking_session import TrackingSession


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


TrackingId = Annotated[str, Field(min_length=1, max_length=128), AfterValidator(_non_blank)]


class GeoLocation(BaseModel):
    """Fixed point of a trip (pickup or dropoff)."""
    address: str = Field(..., min_length=1, max_length=200)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    place_id: Optional[str] = None


class LiveLocation(BaseModel):
    """Latest reported position of a party."""
    lat: float
    lng: float
    timestamp: datetime
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


class StartTrackingRequest(BaseModel):
    """Schema for starting live tracking of a trip."""
    trip_id: TrackingId
    driver_id: TrackingId
    rider_id: TrackingId
    route_id: TrackingId
    pickup_location: GeoLocation
    dropoff_location: GeoLocation


class UpdateLocationRequest(BaseModel):
    """Schema for a driver or rider location ping."""
    trip_id: TrackingId
    role: PartyRole
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, gt=0)  # meters
    speed: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, le=360)  # degrees


class TripStatusResponse(BaseModel):
    status: TrackingStatus
    driver_arrived: bool
    rider_arrived: bool
    driver_eta: int  # minutes
    rider_eta: int  # minutes
    last_updated: datetime


class TripStatusSummary(BaseModel):
    """Status view of a trip, without notification bookkeeping."""
    trip_id: str
    status: TripStatusResponse
    pickup_location: GeoLocation
    dropoff_location: GeoLocation
    driver_location: LiveLocation
    rider_location: LiveLocation

    @classmethod
    def from_model(cls, tracking: TrackingSession) -> "TripStatusSummary":
        return cls(
            trip_id=tracking.trip_id,
            status=TripStatusResponse(
                status=tracking.status,
                driver_arrived=tracking.driver_arrived,
                rider_arrived=tracking.rider_arrived,
                driver_eta=tracking.driver_eta,
                rider_eta=tracking.rider_eta,
                last_updated=as_utc(tracking.updated_at),
            ),
            pickup_location=GeoLocation(
                address=tracking.pickup_address,
                lat=tracking.pickup_lat,
                lng=tracking.pickup_lng,
                place_id=tracking.pickup_place_id,
            ),
            dropoff_location=GeoLocation(
                address=tracking.dropoff_address,
                lat=tracking.dropoff_lat,
                lng=tracking.dropoff_lng,
                place_id=tracking.dropoff_place_id,
            ),
            driver_location=LiveLocation(
                lat=tracking.driver_lat,
                lng=tracking.driver_lng,
                timestamp=as_utc(tracking.driver_recorded_at),
                accuracy=tracking.driver_accuracy,
                speed=tracking.driver_speed,
                heading=tracking.driver_heading,
            ),
            rider_location=LiveLocation(
                lat=tracking.rider_lat,
                lng=tracking.rider_lng,
                timestamp=as_utc(tracking.rider_recorded_at),
                accuracy=tracking.rider_accuracy,
                speed=tracking.rider_speed,
                heading=tracking.rider_heading,
            ),
        )


class TrackingSessionResponse(TripStatusSummary):
    """Full tracking session of a trip."""
    driver_id: str
    rider_id: str
    route_id: str
    notified: Dict[str, bool]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, tracking: TrackingSession) -> "TrackingSessionResponse":
        summary = TripStatusSummary.from_model(tracking)
        return cls(
            **summary.model_dump(),
            driver_id=tracking.driver_id,
            rider_id=tracking.rider_id,
            route_id=tracking.route_id,
            notified=tracking.notified_flags(),
            created_at=as_utc(tracking.created_at),
            updated_at=as_utc(tracking.updated_at),
        )


class LocationUpdateResponse(BaseModel):
    """Response after recording a location ping."""
    trip_id: str
    role: PartyRole
    recorded_at: datetime
    status: TripStatusResponse


class ActiveTripsResponse(BaseModel):
    trips: List[TrackingSessionResponse]
    total: int


class EtaCheckResponse(BaseModel):
    """Response of a manual evaluation cycle."""
    trip_id: str
    notifications_sent: List[str]
    status: TripStatusResponse
