import asyncio
import logging
from typing import Awaitable, Callable

from launchpad.services.automation.scheduler import AutomationScheduler
from launchpad.services.graduation.monitor import GraduationMonitor
from launchpad.utils.task_manager import TaskManager

logger = logging.getLogger(__name__)

AUTOMATION_LOOP = 'automation-loop'
GRADUATION_LOOP = 'graduation-loop'
CLEANUP_LOOP = 'cleanup-loop'


class AutomationRunner:
    """Periodic loops: fee automation, graduation checks and job cleanup"""

    def __init__(
        self,
        scheduler: AutomationScheduler,
        monitor: GraduationMonitor,
        task_manager: TaskManager,
        settings
    ):
        self.scheduler = scheduler
        self.monitor = monitor
        self.task_manager = task_manager
        self.automation_interval = settings.automation_interval
        self.graduation_interval = settings.graduation_interval
        self.cleanup_interval = settings.cleanup_interval
        self.is_running = False

    async def _loop(self, name: str, interval: float, work: Callable[[], Awaitable]) -> None:
        logger.info(f"{name} started (every {interval}s)")
        while self.is_running:
            await asyncio.sleep(interval)
            try:
                await work()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep looping; the next tick retries
                logger.error(f"{name} iteration failed: {e}", exc_info=True)

    def start(self) -> None:
        if self.is_running:
            logger.info("Automation runner already running")
            return
        self.is_running = True
        self.task_manager.start_task(
            AUTOMATION_LOOP, self._loop, AUTOMATION_LOOP, self.automation_interval, self.scheduler.run_cycle
        )
        self.task_manager.start_task(
            GRADUATION_LOOP, self._loop, GRADUATION_LOOP, self.graduation_interval, self.monitor.check_all
        )
        self.task_manager.start_task(
            CLEANUP_LOOP, self._loop, CLEANUP_LOOP, self.cleanup_interval, self.scheduler.cleanup_old_jobs
        )
        logger.info("Automation runner started")

    async def stop(self) -> None:
        self.is_running = False
        for name in (AUTOMATION_LOOP, GRADUATION_LOOP, CLEANUP_LOOP):
            await self.task_manager.cancel_task(name)
        logger.info("Automation runner stopped")

    def status(self):
        return {
            'running': self.is_running,
            'tasks': self.task_manager.get_running_tasks(),
        }
