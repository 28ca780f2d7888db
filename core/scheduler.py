import logging
from datetime import datetime
from typing import Any, Callable, List

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import BaseModel

# Setup logging
logger = logging.getLogger("scheduler")

FireListener = Callable[[str], Any]


class AlarmDefinition(BaseModel):
    name: str
    when_ms: int
    when: str


class SchedulerService:
    """One-shot named alarms on top of APScheduler.

    Scheduling a name that is already pending replaces it. Alarms live in
    memory only and do not survive a restart.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self._listeners: List[FireListener] = []
        self.initialized = False

    def initialize(self):
        if self.initialized:
            return
        self.scheduler.start()
        logger.info("✅ Scheduler Service Started")
        self.initialized = True

    def shutdown(self):
        if not self.initialized:
            return
        self.scheduler.shutdown(wait=False)
        self.initialized = False

    def add_listener(self, listener: FireListener):
        self._listeners.append(listener)

    def _fire(self, name: str):
        logger.info(f"⏰ Alarm fired: {name}")
        for listener in list(self._listeners):
            try:
                listener(name)
            except Exception as e:
                logger.error(f"Alarm listener failed for {name}: {e}")

    def schedule_once(self, name: str, when_ms: int):
        """Fire listeners with `name` at or after `when_ms` (epoch ms)."""
        run_date = datetime.fromtimestamp(when_ms / 1000)

        async def alarm_wrapper():
            self._fire(name)

        self.scheduler.add_job(
            alarm_wrapper,
            DateTrigger(run_date=run_date),
            id=name,
            name=name,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info(f"Scheduled alarm {name} for {run_date.isoformat()}")

    def cancel(self, name: str):
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            pass

    def list_alarms(self) -> List[AlarmDefinition]:
        alarms = []
        for job in self.scheduler.get_jobs():
            run_date = job.trigger.run_date
            alarms.append(AlarmDefinition(
                name=job.id,
                when_ms=round(run_date.timestamp() * 1000),
                when=run_date.isoformat(),
            ))
        return alarms


# Global Instance
scheduler_service = SchedulerService()
