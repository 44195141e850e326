import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coaching.api.v1.attendance.consumers import register_consumers
from coaching.api.v1.attendance.router import router as attendance_router
from coaching.api.v1.notifications.router import router as notifications_router
from coaching.api.v1.statistics.router import router as statistics_router
from coaching.core.config import settings
from coaching.core.events import EventBus
from coaching.db.init_db import create_tables
from coaching.db.session import AsyncSessionLocal
from coaching.tasks.scheduler import PeriodicScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    await create_tables()

    bus = EventBus()
    register_consumers(bus, AsyncSessionLocal)
    await bus.start()
    app.state.event_bus = bus

    scheduler = None
    if settings.enable_background_tasks:
        scheduler = PeriodicScheduler(AsyncSessionLocal, settings.scheduler_interval_seconds)
        scheduler.start()

    yield

    if scheduler is not None:
        scheduler.stop()
    await bus.stop()


def create_app() -> FastAPI:
    app = FastAPI(title="Coaching Attendance Backend", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(attendance_router)
    app.include_router(statistics_router)
    app.include_router(notifications_router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
