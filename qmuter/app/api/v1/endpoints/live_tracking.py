"""
Live Trip Tracking API Endpoints.

Drivers and riders report their positions while converging on the pickup
point; either party can read the trip state, end tracking, or force an
ETA re-check.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from qmuter.app.db.session import get_db
from qmuter.app.core.dependencies import get_current_user
from qmuter.app.core.guards import TripPartyGuard
from qmuter.app.core.rate_limit import rate_limit
from qmuter.app.core.clock import utcnow
from qmuter.app.models.tracking_enums import PartyRole
from qmuter.app.schemas.tracking import (
    StartTrackingRequest,
    UpdateLocationRequest,
    TrackingSessionResponse,
    TripStatusSummary,
    LocationUpdateResponse,
    ActiveTripsResponse,
    EtaCheckResponse,
)
from qmuter.app.services.live_tracking_service import live_tracking_service

router = APIRouter(prefix="/live-tracking", tags=["Live Tracking"])
party_guard = TripPartyGuard()
tracking_rate_limit = rate_limit("live-tracking")


@router.post(
    "/start",
    status_code=status.HTTP_201_CREATED,
    response_model=TrackingSessionResponse,
    dependencies=[Depends(tracking_rate_limit)],
)
async def start_tracking(
    request: StartTrackingRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start live tracking for a trip.

    Any authenticated caller (normally the booking flow) may start tracking.
    Returns 409 if the trip is already tracked.
    """
    tracking = await live_tracking_service.start_tracking(
        db,
        trip_id=request.trip_id,
        driver_id=request.driver_id,
        rider_id=request.rider_id,
        route_id=request.route_id,
        pickup_location=request.pickup_location,
        dropoff_location=request.dropoff_location,
    )
    return TrackingSessionResponse.from_model(tracking)


@router.post(
    "/update-location",
    response_model=LocationUpdateResponse,
    dependencies=[Depends(tracking_rate_limit)],
)
async def update_location(
    request: UpdateLocationRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Report the caller's position for a trip.

    The caller must be the party named by `role`. Triggers one ETA and
    notification cycle before returning.
    """
    tracking = await live_tracking_service.get_tracking_state(db, request.trip_id)
    party_guard.enforce_role(tracking, current_user, request.role)

    tracking = await live_tracking_service.update_location(
        db,
        trip_id=request.trip_id,
        role=request.role,
        lat=request.lat,
        lng=request.lng,
        accuracy=request.accuracy,
        speed=request.speed,
        heading=request.heading,
    )

    summary = TripStatusSummary.from_model(tracking)
    location = summary.driver_location if request.role == PartyRole.DRIVER else summary.rider_location
    return LocationUpdateResponse(
        trip_id=tracking.trip_id,
        role=request.role,
        recorded_at=location.timestamp,
        status=summary.status,
    )


@router.get(
    "/trip/{trip_id}",
    response_model=TrackingSessionResponse,
    dependencies=[Depends(tracking_rate_limit)],
)
async def get_trip_tracking(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Full tracking session of a trip the caller takes part in."""
    tracking = await live_tracking_service.get_tracking_state(db, trip_id)
    party_guard.enforce(tracking, current_user, "view this trip")
    return TrackingSessionResponse.from_model(tracking)


@router.get(
    "/status/{trip_id}",
    response_model=TripStatusSummary,
    dependencies=[Depends(tracking_rate_limit)],
)
async def get_trip_status(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Status, pickup/dropoff and both locations, without notification flags."""
    tracking = await live_tracking_service.get_tracking_state(db, trip_id)
    party_guard.enforce(tracking, current_user, "view this trip")
    return TripStatusSummary.from_model(tracking)


@router.get(
    "/active",
    response_model=ActiveTripsResponse,
    dependencies=[Depends(tracking_rate_limit)],
)
async def get_active_trips(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Trips in progress in which the caller is driver or rider."""
    sessions = await live_tracking_service.get_active_sessions_for_user(db, current_user["user_id"])
    return ActiveTripsResponse(
        trips=[TrackingSessionResponse.from_model(s) for s in sessions],
        total=len(sessions),
    )


@router.post(
    "/end/{trip_id}",
    response_model=TripStatusSummary,
    dependencies=[Depends(tracking_rate_limit)],
)
async def end_tracking(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """End live tracking. Repeating the call is harmless."""
    tracking = await live_tracking_service.get_tracking_state(db, trip_id)
    party_guard.enforce(tracking, current_user, "end this trip")

    tracking = await live_tracking_service.end_tracking(db, trip_id)
    return TripStatusSummary.from_model(tracking)


@router.post(
    "/check-etas/{trip_id}",
    response_model=EtaCheckResponse,
    dependencies=[Depends(tracking_rate_limit)],
)
async def check_etas(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Force one ETA and notification cycle for the trip."""
    tracking = await live_tracking_service.get_tracking_state(db, trip_id)
    party_guard.enforce(tracking, current_user, "access this trip")

    fired = await live_tracking_service.check_and_notify(db, trip_id)
    tracking = await live_tracking_service.get_tracking_state(db, trip_id)

    return EtaCheckResponse(
        trip_id=trip_id,
        notifications_sent=[flag.value for flag in fired],
        status=TripStatusSummary.from_model(tracking).status,
    )


@router.get("/health")
async def tracking_health():
    """Liveness of the live tracking router."""
    return {
        "status": "healthy",
        "service": "live-tracking",
        "timestamp": utcnow().isoformat(),
    }
