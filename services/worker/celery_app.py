"""
Celery application configuration for background tasks

Each worker process owns one asyncio event loop. The database pool is bound
to that loop at process init and every task runs its coroutine on it via
run_async().
"""
import asyncio

import structlog
from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.logging_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level)
logger = structlog.get_logger()

# Create Celery app
app = Celery(
    "basket_filter_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Paris",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,  # 2 minutes hard limit
    task_soft_time_limit=100,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Worker settings
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    # Task routing
    task_routes={
        "services.worker.tasks.record_transaction.*": {"queue": "audit"},
    },
)

_loop = None


def run_async(coro):
    """Run a coroutine on this worker process's event loop"""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop.run_until_complete(coro)


@worker_process_init.connect
def init_worker(**kwargs):
    """Initialize worker process"""
    logger.info("celery_worker_starting",
                concurrency=kwargs.get("concurrency", "unknown"))

    # Initialize database session manager for async tasks
    run_async(sessionmanager.init(settings.database_url))
    logger.info("celery_database_initialized")


@worker_process_shutdown.connect
def shutdown_worker(**kwargs):
    """Clean up worker process"""
    logger.info("celery_worker_shutting_down")

    try:
        run_async(sessionmanager.close())
        logger.info("celery_database_closed")
    except Exception as e:
        logger.error("celery_database_close_failed", error=str(e))
    finally:
        if _loop is not None:
            _loop.close()


# Import tasks explicitly to register them
from services.worker.tasks import record_transaction  # noqa: E402,F401


if __name__ == "__main__":
    app.start()
