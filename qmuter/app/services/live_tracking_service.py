"""
Live Tracking Service.

Tracks a driver and a rider converging on a pickup point, keeps their
arrival ETAs current and sends each proximity/arrival notification of a
trip exactly once.

Every read-evaluate-write of a trip runs under that trip's lock and loads
the row with SELECT ... FOR UPDATE, so concurrent pings for the same trip
cannot both see a flag unset.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional, Tuple

from sqlalchemy import select, delete, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qmuter.app.core.clock import utcnow
from qmuter.app.core.config import settings
from qmuter.app.core.exceptions import (
    InvalidArgumentError,
    PersistenceFailureError,
    ResourceNotFoundError,
    TrackingConflictError,
)
from qmuter.app.models.notification import NotificationType
from qmuter.app.models.tracking_enums import (
    ACTIVE_STATUSES,
    NotificationFlag,
    PartyRole,
    TrackingStatus,
    TravelMode,
)
from qmuter.app.models.tracking_session import FLAG_COLUMNS, TrackingSession
from qmuter.app.services.geo import estimate_eta, has_arrived
from qmuter.app.services.notification_service import NotificationService
from qmuter.app.services.trip_locks import TripLockRegistry

logger = logging.getLogger("qmuter.tracking")


class Alert(NamedTuple):
    """A notification due for one flag of a trip."""
    flag: NotificationFlag
    recipients: Tuple[str, ...]
    type: NotificationType
    title: str
    message: str
    data: dict


def plan_alerts(
    tracking: TrackingSession,
    driver_eta: int,
    rider_eta: int,
    driver_arrived: bool,
    rider_arrived: bool,
) -> List[Alert]:
    """
    Alerts whose threshold is crossed and whose flag is still unset.

    Each flag is checked on its own, so one cycle can fire several of
    them (e.g. an ETA jumping from 12 to 3 fires both the 10 and 5 minute
    alerts). Thresholds are inclusive.
    """
    far = settings.eta_alert_minutes_far
    near = settings.eta_alert_minutes_near
    trip_id = tracking.trip_id
    to_rider = (tracking.rider_id,)
    to_driver = (tracking.driver_id,)
    both = (tracking.driver_id, tracking.rider_id)

    candidates = [
        (
            driver_eta <= far,
            Alert(
                NotificationFlag.DRIVER_10, to_rider, NotificationType.DRIVER_ETA,
                f"Driver is {far} minutes away!",
                f"Your driver is approximately {driver_eta} minutes away from the pickup location.",
                {"trip_id": trip_id, "eta": driver_eta, "type": "driver-eta"},
            ),
        ),
        (
            driver_eta <= near,
            Alert(
                NotificationFlag.DRIVER_5, to_rider, NotificationType.DRIVER_ETA,
                f"Driver is {near} minutes away!",
                f"Your driver is approximately {driver_eta} minutes away. Please be ready at the pickup location.",
                {"trip_id": trip_id, "eta": driver_eta, "type": "driver-eta"},
            ),
        ),
        (
            rider_eta <= far,
            Alert(
                NotificationFlag.RIDER_10, to_driver, NotificationType.RIDER_ETA,
                f"Rider is {far} minutes away!",
                f"Your rider is approximately {rider_eta} minutes away from the pickup location.",
                {"trip_id": trip_id, "eta": rider_eta, "type": "rider-eta"},
            ),
        ),
        (
            rider_eta <= near,
            Alert(
                NotificationFlag.RIDER_5, to_driver, NotificationType.RIDER_ETA,
                f"Rider is {near} minutes away!",
                f"Your rider is approximately {rider_eta} minutes away. They should arrive soon.",
                {"trip_id": trip_id, "eta": rider_eta, "type": "rider-eta"},
            ),
        ),
        (
            driver_arrived,
            Alert(
                NotificationFlag.DRIVER_ARRIVED, to_rider, NotificationType.ARRIVAL,
                "Driver has arrived!",
                "Your driver has arrived at the pickup location.",
                {"trip_id": trip_id, "type": "driver-arrived"},
            ),
        ),
        (
            rider_arrived,
            Alert(
                NotificationFlag.RIDER_ARRIVED, to_driver, NotificationType.ARRIVAL,
                "Rider has arrived!",
                "Your rider has arrived at the pickup location.",
                {"trip_id": trip_id, "type": "rider-arrived"},
            ),
        ),
        (
            driver_arrived and rider_arrived,
            Alert(
                NotificationFlag.BOTH_ARRIVED, both, NotificationType.ARRIVAL,
                "Both parties arrived!",
                "Both driver and rider have arrived. You can now proceed to the destination.",
                {"trip_id": trip_id, "type": "both-arrived"},
            ),
        ),
    ]

    return [alert for crossed, alert in candidates if crossed and not tracking.is_notified(alert.flag)]


def _require_id(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"{field} is required", field=field)
    return str(value)


def _validate_coordinates(lat, lng) -> None:
    if lat is None or not -90 <= lat <= 90:
        raise InvalidArgumentError(f"Latitude out of range: {lat}", field="lat")
    if lng is None or not -180 <= lng <= 180:
        raise InvalidArgumentError(f"Longitude out of range: {lng}", field="lng")


def _parse_role(role) -> PartyRole:
    try:
        return PartyRole(role)
    except ValueError:
        raise InvalidArgumentError(f"Unknown role: {role}", field="role")


class LiveTrackingService:
    """
    Trip tracking engine.

    Operations take the request's AsyncSession and commit their own work.
    Identity checks are left to the API layer.
    """

    def __init__(
        self,
        locks: Optional[TripLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.locks = locks or TripLockRegistry()
        self.clock = clock

    @asynccontextmanager
    async def _storage(self, db: AsyncSession, operation: str, trip_id: str = None):
        """Roll back on failure and surface store errors as PersistenceFailureError."""
        try:
            yield
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Storage failure during %s (trip %s): %s", operation, trip_id, e)
            raise PersistenceFailureError(operation, {"trip_id": trip_id}) from e
        except Exception:
            await db.rollback()
            raise

    async def _load(self, db: AsyncSession, trip_id: str, for_update: bool = False) -> Optional[TrackingSession]:
        query = select(TrackingSession).where(TrackingSession.trip_id == trip_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def start_tracking(
        self,
        db: AsyncSession,
        trip_id: str,
        driver_id: str,
        rider_id: str,
        route_id: str,
        pickup_location,
        dropoff_location,
    ) -> TrackingSession:
        """
        Create the tracking session of a trip.

        Both party locations start zeroed; no notification is sent.

        Raises:
            TrackingConflictError: a session already exists for trip_id
        """
        trip_id = _require_id(trip_id, "trip_id")
        driver_id = _require_id(driver_id, "driver_id")
        rider_id = _require_id(rider_id, "rider_id")
        route_id = _require_id(route_id, "route_id")
        for point in (pickup_location, dropoff_location):
            _validate_coordinates(point.lat, point.lng)

        async with self.locks.hold(trip_id):
            async with self._storage(db, "start_tracking", trip_id):
                if await self._load(db, trip_id) is not None:
                    raise TrackingConflictError(trip_id)

                now = self.clock()
                tracking = TrackingSession(
                    trip_id=trip_id,
                    driver_id=driver_id,
                    rider_id=rider_id,
                    route_id=route_id,
                    pickup_lat=pickup_location.lat,
                    pickup_lng=pickup_location.lng,
                    pickup_address=pickup_location.address,
                    pickup_place_id=pickup_location.place_id,
                    dropoff_lat=dropoff_location.lat,
                    dropoff_lng=dropoff_location.lng,
                    dropoff_address=dropoff_location.address,
                    dropoff_place_id=dropoff_location.place_id,
                    status=TrackingStatus.EN_ROUTE_TO_PICKUP,
                    driver_arrived=False,
                    rider_arrived=False,
                    driver_eta=0,
                    rider_eta=0,
                    created_at=now,
                    updated_at=now,
                )
                tracking.set_location(PartyRole.DRIVER, 0.0, 0.0, now)
                tracking.set_location(PartyRole.RIDER, 0.0, 0.0, now)
                for flag in NotificationFlag:
                    setattr(tracking, FLAG_COLUMNS[flag], False)

                db.add(tracking)
                try:
                    await db.commit()
                except IntegrityError:
                    # Another process inserted the same trip id first
                    await db.rollback()
                    raise TrackingConflictError(trip_id)

        logger.info("Live tracking started for trip %s (driver %s, rider %s)", trip_id, driver_id, rider_id)
        return tracking

    async def update_location(
        self,
        db: AsyncSession,
        trip_id: str,
        role,
        lat: float,
        lng: float,
        accuracy: Optional[float] = None,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> TrackingSession:
        """
        Store a party's position, then run one evaluation cycle.

        The position write must succeed; the evaluation cycle is best
        effort and never raises.

        Raises:
            InvalidArgumentError: bad role or coordinates
            ResourceNotFoundError: no session for trip_id
        """
        trip_id = _require_id(trip_id, "trip_id")
        role = _parse_role(role)
        _validate_coordinates(lat, lng)

        async with self.locks.hold(trip_id):
            async with self._storage(db, "update_location", trip_id):
                tracking = await self._load(db, trip_id, for_update=True)
                if tracking is None:
                    raise ResourceNotFoundError("Live tracking session", trip_id)

                now = self.clock()
                tracking.set_location(role, lat, lng, now, accuracy, speed, heading)
                tracking.updated_at = now
                await db.commit()

            if await self._evaluate_safely(db, trip_id) is None:
                # The failed cycle was rolled back, which expired the row
                async with self._storage(db, "update_location", trip_id):
                    tracking = await self._load(db, trip_id)

        return tracking

    async def check_and_notify(self, db: AsyncSession, trip_id: str) -> List[NotificationFlag]:
        """
        Run one evaluation cycle on demand.

        Returns the flags that fired; failures are logged, not raised.
        """
        async with self.locks.hold(trip_id):
            return await self._evaluate_safely(db, trip_id) or []

    async def _evaluate_safely(self, db: AsyncSession, trip_id: str) -> Optional[List[NotificationFlag]]:
        """Evaluation cycle that logs and swallows failures; None when it failed."""
        try:
            return await self._evaluate(db, trip_id)
        except Exception:
            logger.exception("ETA check failed for trip %s", trip_id)
            try:
                await db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after failed ETA check failed for trip %s", trip_id)
            return None

    async def _evaluate(self, db: AsyncSession, trip_id: str) -> List[NotificationFlag]:
        """
        Evaluation cycle. Caller holds the trip lock.

        ETAs and arrival are always recomputed from the stored locations
        before thresholds are compared. Notifications and flag updates
        are committed together.
        """
        tracking = await self._load(db, trip_id, for_update=True)
        if tracking is None:
            return []
        if not tracking.status.is_active:
            await db.commit()
            logger.debug("Skipping ETA check for %s trip %s", tracking.status.value, trip_id)
            return []

        pickup = tracking.pickup_point
        driver_location = tracking.location_of(PartyRole.DRIVER)
        rider_location = tracking.location_of(PartyRole.RIDER)

        driver_eta = estimate_eta(driver_location, pickup, TravelMode.DRIVING)
        rider_eta = estimate_eta(rider_location, pickup, TravelMode.WALKING)
        driver_arrived = has_arrived(driver_location, pickup)
        rider_arrived = has_arrived(rider_location, pickup)

        tracking.driver_eta = driver_eta
        tracking.rider_eta = rider_eta
        tracking.driver_arrived = driver_arrived
        tracking.rider_arrived = rider_arrived

        if driver_arrived and rider_arrived and tracking.status == TrackingStatus.EN_ROUTE_TO_PICKUP:
            tracking.status = TrackingStatus.EN_ROUTE_TO_DROPOFF
            logger.info("Both parties at pickup, trip %s en route to dropoff", trip_id)

        fired = []
        for alert in plan_alerts(tracking, driver_eta, rider_eta, driver_arrived, rider_arrived):
            for recipient in alert.recipients:
                await NotificationService.send_notification(
                    db, recipient, alert.type, alert.title, alert.message, alert.data
                )
            tracking.mark_notified(alert.flag)
            fired.append(alert.flag)
            logger.info("Trip %s: %s notification sent", trip_id, alert.flag.value)

        tracking.updated_at = self.clock()
        await db.commit()
        return fired

    async def get_tracking_state(self, db: AsyncSession, trip_id: str) -> TrackingSession:
        """
        Raises:
            ResourceNotFoundError: no session for trip_id
        """
        trip_id = _require_id(trip_id, "trip_id")
        async with self._storage(db, "get_tracking_state", trip_id):
            tracking = await self._load(db, trip_id)
        if tracking is None:
            raise ResourceNotFoundError("Live tracking session", trip_id)
        return tracking

    async def get_active_sessions_for_user(self, db: AsyncSession, user_id: str) -> List[TrackingSession]:
        """Sessions in which the user is driver or rider and that are still in progress, newest first."""
        user_id = _require_id(user_id, "user_id")
        query = (
            select(TrackingSession)
            .where(
                or_(TrackingSession.driver_id == user_id, TrackingSession.rider_id == user_id),
                TrackingSession.status.in_(ACTIVE_STATUSES),
            )
            .order_by(TrackingSession.updated_at.desc(), TrackingSession.trip_id)
        )
        async with self._storage(db, "get_active_sessions_for_user"):
            result = await db.execute(query)
            return list(result.scalars().all())

    async def end_tracking(self, db: AsyncSession, trip_id: str) -> TrackingSession:
        """
        Mark the trip completed. Calling it again is harmless.

        The session is kept until purge_stale removes it. A cancelled
        session stays cancelled.

        Raises:
            ResourceNotFoundError: no session for trip_id
        """
        trip_id = _require_id(trip_id, "trip_id")
        async with self.locks.hold(trip_id):
            async with self._storage(db, "end_tracking", trip_id):
                tracking = await self._load(db, trip_id, for_update=True)
                if tracking is None:
                    raise ResourceNotFoundError("Live tracking session", trip_id)

                if tracking.status == TrackingStatus.CANCELLED:
                    await db.commit()
                    logger.warning("End requested for cancelled trip %s, leaving it cancelled", trip_id)
                    return tracking

                tracking.status = TrackingStatus.COMPLETED
                tracking.updated_at = self.clock()
                await db.commit()

        logger.info("Live tracking ended for trip %s", trip_id)
        return tracking

    async def purge_stale(self, db: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Delete completed sessions not updated within the retention window.

        Returns:
            Number of sessions deleted
        """
        cutoff = (now or self.clock()) - timedelta(hours=settings.stale_session_retention_hours)
        stmt = delete(TrackingSession).where(
            TrackingSession.status == TrackingStatus.COMPLETED,
            TrackingSession.updated_at < cutoff,
        )
        async with self._storage(db, "purge_stale"):
            result = await db.execute(stmt)
            await db.commit()

        purged = result.rowcount or 0
        logger.info("Cleaned up %d old tracking records", purged)
        return purged


live_tracking_service = LiveTrackingService()
