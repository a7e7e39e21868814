"""
ffconductor backend service: wiring, logging and the FastAPI app factory.

Run with:
    uvicorn ffconductor.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import RuntimeConfig
from .encoders.detector import EncoderDetector
from .execution.driver import ProcessDriver
from .execution.probe import ToolProbe
from .execution.tools import ToolLocator
from .jobs.events import EventChannel
from .jobs.service import TaskService
from .persistence.database import AppDatabase
from .settings.service import SettingsService
from .templates.service import TemplateService
from .routes import encoders, health, system, tasks, templates

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Apply the process-wide logging format once."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


@dataclass
class Services:
    """Everything the HTTP app and the CLI share."""

    db: AppDatabase
    settings_service: SettingsService
    template_service: TemplateService
    locator: ToolLocator
    probe: ToolProbe
    driver: ProcessDriver
    encoder_detector: EncoderDetector
    events: EventChannel
    task_service: TaskService

    def close(self) -> None:
        self.task_service.shutdown(wait=True)
        self.db.close()


def build_services(config: RuntimeConfig, recover: bool = True) -> Services:
    """
    Open the database and construct the services.

    Args:
        config: Runtime configuration
        recover: Fail tasks a previous process left RUNNING and apply history
            retention. Only the long-lived server should do this.
    """
    db = AppDatabase(config.resolved_db_path)
    settings_service = SettingsService(db)
    settings = settings_service.get_settings()

    template_service = TemplateService(db)
    seeded = template_service.initialize_system_templates()
    if seeded:
        logger.info(f"[Startup] Seeded {seeded} system templates")

    locator = ToolLocator.from_settings(settings)
    probe = ToolProbe(locator)
    driver = ProcessDriver(locator)
    detector = EncoderDetector(db, locator, settings_service=settings_service)
    events = EventChannel()
    task_service = TaskService(
        db,
        template_service=template_service,
        settings_service=settings_service,
        driver=driver,
        probe=probe,
        events=events,
    )

    if recover:
        recovered = task_service.recover_interrupted_tasks()
        if recovered:
            logger.warning(f"[Startup] Marked {recovered} interrupted task(s) as failed")
        task_service.apply_retention()

    return Services(
        db=db,
        settings_service=settings_service,
        template_service=template_service,
        locator=locator,
        probe=probe,
        driver=driver,
        encoder_detector=detector,
        events=events,
        task_service=task_service,
    )


def create_app(config: Optional[RuntimeConfig] = None) -> FastAPI:
    """Build the FastAPI application with its services on `app.state`."""
    config = config or RuntimeConfig.from_env()
    configure_logging(config.log_level)

    services = build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("[Startup] Shutting down")
        services.close()

    app = FastAPI(title="ffconductor", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.services = services
    app.state.db = services.db
    app.state.settings_service = services.settings_service
    app.state.template_service = services.template_service
    app.state.locator = services.locator
    app.state.probe = services.probe
    app.state.driver = services.driver
    app.state.encoder_detector = services.encoder_detector
    app.state.events = services.events
    app.state.task_service = services.task_service

    app.include_router(health.router)
    app.include_router(templates.router)
    app.include_router(tasks.router)
    app.include_router(tasks.batch_router)
    app.include_router(encoders.router)
    app.include_router(system.router)

    @app.get("/")
    async def root():
        return {"service": "ffconductor", "status": "running"}

    logger.info(f"[Startup] ffconductor {__version__} ready (db: {config.resolved_db_path})")
    return app
