"""
Per-accessory background polling.

Nest offers no push channel, so every accessory is kept current by interval
jobs on one APScheduler AsyncIOScheduler:

    refresh:<accessory_uuid>   accessories with a Streaming switch
        fetch_camera -> replace snapshot -> push enabled to the switch
    alerts:<accessory_uuid>    accessories with Motion or Doorbell
        recent events -> motion latch -> Motion / Doorbell services
    session_renewal            process-wide, armed by NestSession

Ticks of the same job may overlap when a request is slow; each tick
re-reads authoritative state and only touches a service on a latch
transition. Every tick catches its own failures so the next tick always
runs. Jobs for removed accessories skip.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nestcam.config.nest import EVENT_LOOKBACK_SECONDS, EVENT_TYPE_DOORBELL, UPDATE_INTERVAL_SECONDS
from nestcam.core.errors import AuthError, NetworkError
from nestcam.core.logging_config import clear_job_id, set_job_id
from nestcam.core.metrics import record_poll_tick
from nestcam.schemas.camera import CuepointEvent
from nestcam.services.accessory_record import AccessoryRecord
from nestcam.services.camera_state import CameraState

logger = logging.getLogger(__name__)

JOB_REFRESH = "refresh"
JOB_ALERTS = "alerts"

# Overlapping ticks of one job are allowed up to this many
MAX_OVERLAPPING_TICKS = 3


def job_id_for(kind: str, record: AccessoryRecord) -> str:
    return f"{kind}:{record.accessory_uuid}"


def most_recent_trigger(events: Sequence[CuepointEvent]) -> Optional[CuepointEvent]:
    """Events arrive most recent first."""
    return events[0] if events else None


@dataclass
class PollerStatus:
    running: bool
    job_count: int
    jobs: List[dict] = field(default_factory=list)


class EventPoller:
    """
    Runs the refresh and alert-check jobs for every attached accessory.

    Args:
        session: NestSession providing the current token
        source: NestCameraSource for remote calls
        alert_types: Cuepoint types that count as an alert
        interval_seconds: Tick interval for both job kinds
        scheduler: Scheduler to use (a new AsyncIOScheduler by default)
    """

    def __init__(
        self,
        session,
        source,
        alert_types: Sequence[str] = ("motion",),
        interval_seconds: int = UPDATE_INTERVAL_SECONDS,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._session = session
        self._source = source
        self._alert_types = set(alert_types) | {EVENT_TYPE_DOORBELL}
        self._interval = interval_seconds
        self._scheduler = scheduler or AsyncIOScheduler()
        self._running = False

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if not self._running:
            self._scheduler.start()
            self._running = True
            logger.info(
                f"EventPoller started with {len(self._scheduler.get_jobs())} jobs",
                extra={"event_type": "poller_started", "interval_seconds": self._interval}
            )

    def stop(self) -> None:
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("EventPoller stopped", extra={"event_type": "poller_stopped"})

    def attach(self, record: AccessoryRecord) -> None:
        """
        Align an accessory's jobs with its FeatureSet.

        Existing jobs keep their schedule; only missing jobs are added and
        jobs whose feature went away are removed.
        """
        self._ensure_job(JOB_REFRESH, record, self.run_refresh, record.features.needs_refresh)
        self._ensure_job(JOB_ALERTS, record, self.run_alert_check, record.features.needs_alert_check)

    def detach(self, record: AccessoryRecord) -> None:
        for kind in (JOB_REFRESH, JOB_ALERTS):
            self._remove_job(job_id_for(kind, record))

    def _ensure_job(self, kind: str, record: AccessoryRecord, func, wanted: bool) -> None:
        job_id = job_id_for(kind, record)
        existing = self._scheduler.get_job(job_id)

        if not wanted:
            if existing:
                self._remove_job(job_id)
            return
        if existing:
            return

        self._scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=self._interval),
            args=[record],
            id=job_id,
            name=f"{kind} {record.display_name}",
            replace_existing=True,
            max_instances=MAX_OVERLAPPING_TICKS,
            coalesce=True,
        )
        logger.debug(f"Scheduled {job_id}", extra={"accessory_uuid": record.accessory_uuid})

    def _remove_job(self, job_id: str) -> None:
        if self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)
            logger.debug(f"Removed {job_id}")

    def _current_token(self):
        token = self._session.token
        if token is None:
            raise AuthError("No access token yet")
        return token

    async def run_refresh(self, record: AccessoryRecord) -> None:
        """Attribute refresh tick."""
        job_token = set_job_id(job_id_for(JOB_REFRESH, record))
        try:
            if record.removed:
                record_poll_tick(JOB_REFRESH, "skipped")
                return

            snapshot = await self._source.fetch_camera(self._current_token(), record.camera_uuid)

            # The accessory may have been removed while the request was in flight
            if record.removed:
                record_poll_tick(JOB_REFRESH, "skipped")
                return

            record.context.snapshot = snapshot
            if record.state is None:
                record.state = CameraState(snapshot)
            else:
                record.state.replace_snapshot(snapshot)
            record.accessory.set_streaming(snapshot.is_streaming_enabled)
            record_poll_tick(JOB_REFRESH, "success")

        except Exception as e:
            self._log_tick_error(JOB_REFRESH, record, e)
        finally:
            clear_job_id(job_token)

    async def run_alert_check(self, record: AccessoryRecord) -> None:
        """Motion and doorbell check tick."""
        job_token = set_job_id(job_id_for(JOB_ALERTS, record))
        try:
            state = record.state
            if record.removed or state is None:
                record_poll_tick(JOB_ALERTS, "skipped")
                return
            if not state.api_host:
                logger.debug(
                    f"No event API host known for {record.display_name}",
                    extra={"camera_uuid": record.camera_uuid}
                )
                record_poll_tick(JOB_ALERTS, "skipped")
                return

            since = int(time.time()) - EVENT_LOOKBACK_SECONDS
            events = await self._source.fetch_recent_events(
                self._current_token(), state.api_host, record.camera_uuid, since
            )

            if record.removed:
                record_poll_tick(JOB_ALERTS, "skipped")
                return

            self.apply_events(record, events)
            record_poll_tick(JOB_ALERTS, "success")

        except Exception as e:
            self._log_tick_error(JOB_ALERTS, record, e)
        finally:
            clear_job_id(job_token)

    def apply_events(self, record: AccessoryRecord, events: Sequence[CuepointEvent]) -> Optional[bool]:
        """
        Feed one look-back window into the latch and propagate transitions.

        The most recent event sets the latch when it is important and one of
        the alert types. The latch clears only once the window holds no
        important event at all; alert type filtering never clears it.

        Returns:
            The new latch value on a transition, None otherwise
        """
        trigger = most_recent_trigger(events)
        if trigger is not None and trigger.is_important and trigger.matches(self._alert_types):
            transition = record.state.observe_trigger(True)
        elif any(event.is_important for event in events):
            transition = None
        else:
            transition = record.state.observe_trigger(False)

        if transition is True:
            record.accessory.set_motion(True)
            rang = False
            if trigger.has_type(EVENT_TYPE_DOORBELL) and record.features.doorbell:
                rang = record.accessory.ring_doorbell()
            logger.info(
                f"Motion detected on {record.display_name}",
                extra={
                    "event_type": "motion_detected",
                    "camera_uuid": record.camera_uuid,
                    "event_types": trigger.types,
                    "doorbell": rang,
                }
            )
        elif transition is False:
            record.accessory.set_motion(False)
            logger.info(
                f"Motion cleared on {record.display_name}",
                extra={"event_type": "motion_cleared", "camera_uuid": record.camera_uuid}
            )
        return transition

    @staticmethod
    def _log_tick_error(kind: str, record: AccessoryRecord, error: Exception) -> None:
        extra = {"event_type": f"{kind}_tick_failed", "camera_uuid": record.camera_uuid}
        if isinstance(error, AuthError):
            record_poll_tick(kind, "auth_error")
            logger.warning(f"{kind} for {record.display_name} not authorized: {error}", extra=extra)
        elif isinstance(error, NetworkError):
            record_poll_tick(kind, "network_error")
            log = logger.debug if error.has_response else logger.error
            log(f"{kind} for {record.display_name} failed: {error}", extra={**extra, "status_code": error.status_code})
        else:
            record_poll_tick(kind, "error")
            logger.error(f"Unexpected {kind} error for {record.display_name}: {error}", exc_info=True, extra=extra)

    def get_status(self) -> PollerStatus:
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run: Optional[datetime] = getattr(job, "next_run_time", None)
            jobs.append({"id": job.id, "next_run_time": next_run})
        return PollerStatus(running=self._running, job_count=len(jobs), jobs=jobs)
