from contextlib import asynccontextmanager
from typing import Dict, Optional
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from medibot.core.config import settings
from medibot.reminders.api import router as reminders_router
from medibot.reminders.channels import ChannelSender, build_default_senders
from medibot.reminders.config import settings as reminder_settings
from medibot.reminders.fanout import NotificationFanout
from medibot.reminders.models import Channel
from medibot.reminders.repository import MedicationRepository, build_repository
from medibot.reminders.scheduler import Clock, ReminderScheduler
from medibot.reminders.service import ReminderService
from medibot.reminders.sync import ReminderSync

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def create_app(
    repository: Optional[MedicationRepository] = None,
    senders: Optional[Dict[Channel, ChannelSender]] = None,
    clock: Optional[Clock] = None,
    metrics_enabled: Optional[bool] = None,
) -> FastAPI:
    """Build the reminder service app. Collaborators default to the configured ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT.value})...")

        repo = repository or build_repository(settings.STORE_BACKEND)
        fanout = NotificationFanout(senders if senders is not None else build_default_senders(repo.get_device_token))
        scheduler = ReminderScheduler(fanout, clock=clock)
        service = ReminderService(repo, scheduler, fanout)
        sync = ReminderSync(service)

        app.state.reminder_service = service
        app.state.reminder_sync = sync

        service.bootstrap()

        yield

        logger.info("Shutting down reminder scheduler...")
        sync.close()
        await scheduler.shutdown(reminder_settings.SHUTDOWN_GRACE_SECONDS)
        logger.info("Reminder scheduler stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(reminders_router, prefix=f"{settings.API_V1_STR}/reminders", tags=["reminders"])

    if reminder_settings.METRICS_ENABLED if metrics_enabled is None else metrics_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "medibot.main:app",
        host=reminder_settings.SERVICE_HOST,
        port=reminder_settings.SERVICE_PORT,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
