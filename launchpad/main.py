import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn

from launchpad.api.app import create_app
from launchpad.config.database import DatabaseConnectionManager
from launchpad.config.settings import Settings
from launchpad.services.automation.runner import AutomationRunner
from launchpad.services.automation.scheduler import AutomationScheduler
from launchpad.services.graduation.monitor import GraduationMonitor
from launchpad.services.launch.launchpad_service import LaunchpadService
from launchpad.services.monitoring.performance import measure_performance
from launchpad.services.providers.base import LaunchProvider, MarketDataSource
from launchpad.services.providers.http_provider import HttpLaunchProvider
from launchpad.services.staking.service import StakingService
from launchpad.services.stats.aggregator import StatsAggregator
from launchpad.utils.task_manager import TaskManager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    log_file = settings.log_file or f'launchpad_{datetime.now(timezone.utc).strftime("%Y%m%d")}.log'
    if log_file.lower() != 'none':
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
        handlers=handlers
    )
    logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class LaunchpadApp:
    """Wires settings, database, provider and services together"""

    def __init__(
        self,
        settings: Settings,
        provider: Optional[LaunchProvider] = None,
        market_data: Optional[MarketDataSource] = None,
        db: Optional[DatabaseConnectionManager] = None
    ):
        self.settings = settings
        self.db = db or DatabaseConnectionManager(settings.database_url)

        if provider is None:
            provider = HttpLaunchProvider(
                settings.launch_provider_url,
                settings.launch_provider_api_key,
                settings.provider_config
            )
        self.provider = provider
        if market_data is None and isinstance(provider, MarketDataSource):
            market_data = provider
        if market_data is None:
            raise ValueError("A market data source is required for graduation checks")
        self.market_data = market_data

        self.task_manager = TaskManager()
        self.scheduler = AutomationScheduler(self.db, self.provider, settings)
        self.graduation_monitor = GraduationMonitor(self.db, self.market_data, self.scheduler, settings)
        self.staking = StakingService(self.db, settings)
        self.launch_service = LaunchpadService(
            self.db, self.provider, self.staking, self.scheduler, settings, self.market_data
        )
        self.stats = StatsAggregator(self.db)
        self.runner = AutomationRunner(self.scheduler, self.graduation_monitor, self.task_manager, settings)
        self.is_running = False

    @measure_performance('initialization')
    async def start(self) -> None:
        logger.info("Starting launchpad services...")
        await self.db.init()
        await self.db.create_all()
        if self.settings.enable_scheduler:
            self.runner.start()
        else:
            logger.info("Scheduler disabled (ENABLE_SCHEDULER=false)")
        self.is_running = True
        logger.info("Launchpad services started")

    async def stop(self) -> None:
        if not self.is_running:
            return
        self.is_running = False
        logger.info("Stopping launchpad services...")
        await self.runner.stop()
        await self.task_manager.cancel_all_tasks()
        await self.provider.close()
        await self.db.cleanup()
        logger.info("Launchpad services stopped")

    def create_api(self):
        @asynccontextmanager
        async def lifespan(app):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        return create_app(self, lifespan=lifespan)


def build_app():
    """uvicorn factory: ``uvicorn launchpad.main:build_app --factory``"""
    settings = Settings()
    configure_logging(settings)
    return LaunchpadApp(settings).create_api()


async def main():
    settings = Settings()
    configure_logging(settings)
    api = LaunchpadApp(settings).create_api()

    config = uvicorn.Config(api, host=settings.api_host, port=settings.api_port, log_config=None)
    server = uvicorn.Server(config)
    logger.info(f"Launchpad API listening on {settings.api_host}:{settings.api_port}")
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
