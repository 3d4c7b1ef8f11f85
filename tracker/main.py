import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tracker.cache.layer import CacheLayer
from tracker.core.config import Settings, get_settings
from tracker.core.exceptions import register_exception_handlers
from tracker.database import build_engine, build_session_factory, create_db_and_tables
from tracker.jobs.scheduler import JobScheduler, daily, every, hourly, weekly
from tracker.logging_setup import setup_logging
from tracker.notifications.broker import MessageBroker
from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.notifications.worker import NotificationWorker
from tracker.routers import auth, cache, jobs, projects, tasks, ws
from tracker.services.scheduled_jobs import ScheduledJobsService

logger = logging.getLogger(__name__)


def build_scheduler(jobs_service: ScheduledJobsService, settings: Settings) -> JobScheduler:
    scheduler = JobScheduler()
    scheduler.add_job(
        "deadline-reminders", jobs_service.check_upcoming_deadlines, hourly(), "Remind assignees of tasks due soon"
    )
    scheduler.add_job("overdue-check", jobs_service.check_overdue_tasks, hourly(6), "Alert assignees of overdue tasks")
    scheduler.add_job(
        "daily-report", jobs_service.generate_daily_report, daily(settings.daily_report_hour), "Broadcast task totals"
    )
    scheduler.add_job(
        "cleanup", jobs_service.cleanup_old_completed_tasks, weekly(6, 0), "Report old completed tasks"
    )
    scheduler.add_job(
        "heartbeat", jobs_service.health_check_ping, every(settings.heartbeat_interval_seconds), "Liveness ping"
    )
    return scheduler


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_file)

        engine = build_engine(settings)
        await create_db_and_tables(engine)

        cache_layer = CacheLayer(settings)
        await cache_layer.init_cache()

        broker = MessageBroker(settings.subscriber_queue_size)
        dispatcher = NotificationDispatcher(broker)
        worker = NotificationWorker(dispatcher, settings.notification_queue_size)
        worker.start()

        session_factory = build_session_factory(engine)
        jobs_service = ScheduledJobsService(session_factory, dispatcher, worker, settings)
        scheduler = build_scheduler(jobs_service, settings)
        if settings.scheduler_enabled:
            scheduler.start()

        app.state.settings = settings
        app.state.session_factory = session_factory
        app.state.cache = cache_layer
        app.state.broker = broker
        app.state.dispatcher = dispatcher
        app.state.worker = worker
        app.state.scheduler = scheduler
        logger.info("Tracker started (scheduler=%s, l2=%s)", settings.scheduler_enabled, bool(settings.redis_dsn))

        yield

        await scheduler.stop()
        await worker.stop()
        await cache_layer.close()
        await engine.dispose()
        logger.info("Tracker stopped")

    app = FastAPI(
        title="Project Tracker API",
        description="Multi-tenant project and task tracking with live notifications",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    # Include routers
    app.include_router(auth.router)
    app.include_router(projects.router)
    app.include_router(tasks.router)
    app.include_router(jobs.router)
    app.include_router(cache.router)
    app.include_router(ws.router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to Project Tracker API",
            "docs": "/docs",
            "version": "1.0.0",
        }

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
