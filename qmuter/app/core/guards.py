"""
Security guards for trip-party access control.

The tracking engine trusts its caller; these guards are the boundary that
keeps a user to the trips they take part in.
"""

from fastapi import HTTPException, status
from qmuter.app.models.tracking_session import TrackingSession
from qmuter.app.models.tracking_enums import PartyRole


class TripPartyGuard:
    """
    Ownership guard for live tracking sessions.
    
    Usage:
        party_guard = TripPartyGuard()
        
        @router.get("/trip/{trip_id}")
        async def get_trip(trip_id: str, current_user: dict = Depends(get_current_user), ...):
            tracking = await service.get_tracking_state(db, trip_id)
            party_guard.enforce(tracking, current_user)
            return tracking
    """
    
    def enforce(self, tracking: TrackingSession, current_user: dict, action: str = "view this trip"):
        """
        Raise 403 unless the caller is the driver or the rider of the trip.
        """
        if not tracking.is_party(current_user["user_id"]):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Unauthorized to {action}"
            )
    
    def enforce_role(self, tracking: TrackingSession, current_user: dict, role: PartyRole):
        """
        Raise 403 unless the caller is the party whose location is being reported.
        """
        if tracking.party_id(role) != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Unauthorized to update {role.value} location"
            )
