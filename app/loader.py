from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import Update
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from typing import Any, Awaitable, Callable, Optional
from app.config import Settings
from app.backend.gas_client import GasApiClient
from app.backend.job_sink import FileJobSink, GasJobSink, JobSink, StaffNotifier
from app.backend.session_store import GasSessionStore, InMemorySessionStore, SessionStore
from app.services.intake import IntakeService
from app.services.notifier import TelegramStaffNotifier
from app.utils.background import BackgroundTasks
from app.utils.logging import setup_logging
from app.utils.scheduler import SessionTimeouts
from app.middlewares.activity import UserActivityMiddleware
from app.handlers import (
    start,
    status,
    quote,
    intake,
)
from loguru import logger


class DependencyMiddleware:
    """Middleware to inject dependencies into handlers."""

    def __init__(self, intake_service: IntakeService):
        self.intake_service = intake_service

    async def __call__(
        self,
        handler: Callable[[Update, dict[str, Any]], Awaitable[Any]],
        event: Update,
        data: dict[str, Any]
    ) -> Any:
        data["intake"] = self.intake_service
        return await handler(event, data)


def build_backends(settings: Settings, notifier: Optional[StaffNotifier] = None) -> tuple[SessionStore, JobSink]:
    """
    Pick the session store and job sink for this process.
    Without GAS_API_URL the bot still runs: sessions in memory, jobs in a local file.
    """
    if settings.GAS_API_URL:
        client = GasApiClient.from_settings(settings)
        logger.info("Using spreadsheet backend for sessions and jobs")
        return GasSessionStore(client), GasJobSink(client, notifier)

    logger.warning(f"GAS_API_URL not set: sessions kept in memory, jobs written to {settings.JOBS_FILE}")
    return InMemorySessionStore(), FileJobSink(settings.JOBS_FILE, notifier)


def load_bot(settings: Optional[Settings] = None) -> tuple[Bot, Dispatcher]:
    """
    Load bot, dispatcher, and register all handlers.
    Returns (bot, dispatcher) tuple.
    """
    settings = settings or Settings()

    # Setup logging
    setup_logging(settings)
    logger.info("Settings loaded")

    # Create bot and dispatcher
    bot = Bot(token=settings.BOT_TOKEN, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()

    notifier = None
    if settings.STAFF_GROUP_ID:
        notifier = TelegramStaffNotifier(bot, settings.STAFF_GROUP_ID)
    else:
        logger.warning("STAFF_GROUP_ID not set: staff notifications disabled")

    sessions, jobs = build_backends(settings, notifier)
    tasks = BackgroundTasks()
    intake_service = IntakeService(sessions, jobs, tasks)

    # Inactivity timers
    scheduler = AsyncIOScheduler()
    timeouts = SessionTimeouts(
        scheduler,
        sessions,
        bot,
        warning_minutes=settings.SESSION_WARNING_MINUTES,
        reset_minutes=settings.SESSION_RESET_MINUTES,
    )

    async def on_startup():
        logger.info("⏰ Starting AsyncIOScheduler...")
        scheduler.start()

    async def on_shutdown():
        logger.info(f"Waiting for {tasks.pending} background tasks...")
        await tasks.drain()
        scheduler.shutdown(wait=False)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    # Register user activity middleware (for timeouts)
    dp.message.middleware(UserActivityMiddleware(timeouts))

    # Register dependency injection middleware
    dp.message.middleware(DependencyMiddleware(intake_service))

    # Commands first, free text last
    dp.include_router(start.router)
    dp.include_router(status.router)
    dp.include_router(quote.router)
    dp.include_router(intake.router)

    logger.info("All handlers registered")

    return bot, dp
