"""Side-Effect Scheduler - Drains the outbox on an interval

Every server runs one of these. Outbox entries are locked in MongoDB
before they are worked on, so servers never process the same entry at
once, and a lock left by a crashed server expires and is cleared.
"""
import asyncio
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..repositories.outbox_repo import OutboxRepository
from ..services.side_effect_processor import SideEffectProcessor
from ..utils.idgen import generate_correlation_id
from ..utils.logger import get_logger, set_correlation_id

logger = get_logger(__name__)

DRAIN_JOB_ID = "drain_side_effect_outbox"
UNLOCK_JOB_ID = "clear_stale_outbox_locks"


class SideEffectScheduler:
    """AsyncIOScheduler running the processor and the stale-lock sweep"""

    def __init__(
        self,
        processor: Optional[SideEffectProcessor] = None,
        outbox: Optional[OutboxRepository] = None
    ):
        self.processor = processor or SideEffectProcessor()
        self.outbox = outbox or self.processor.outbox
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            logger.warning("Side-effect scheduler is already running")
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.drain,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id=DRAIN_JOB_ID,
            name="Drain side-effect outbox",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self.clear_stale_locks,
            trigger=IntervalTrigger(minutes=1),
            id=UNLOCK_JOB_ID,
            name="Clear stale outbox locks",
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            f"Side-effect scheduler running on {self.processor.server_id}, "
            f"draining every {settings.scheduler_interval_seconds}s"
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Side-effect scheduler stopped")

    async def drain(self) -> Optional[Dict[str, int]]:
        """One processor pass, off the event loop (the processor blocks on I/O)"""
        set_correlation_id(generate_correlation_id())
        try:
            return await asyncio.to_thread(self.processor.process_pending)
        except Exception as e:
            logger.error(f"Side-effect drain failed: {e}", exc_info=True)
            return None

    async def clear_stale_locks(self) -> int:
        """Entries whose lock outlived its holder become pending again"""
        try:
            return self.outbox.cleanup_stale_locks(max_lock_age_minutes=settings.stale_lock_cleanup_minutes)
        except Exception as e:
            logger.error(f"Stale lock sweep failed: {e}")
            return 0


_scheduler: Optional[SideEffectScheduler] = None


def get_scheduler() -> SideEffectScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = SideEffectScheduler()
    return _scheduler


def scheduler_running() -> bool:
    """True when this process has a started scheduler"""
    return _scheduler is not None and _scheduler.is_running


def start_scheduler() -> None:
    get_scheduler().start()


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None
