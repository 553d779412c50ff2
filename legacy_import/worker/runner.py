"""
Worker entry point.
Run with: python -m legacy_import.worker.runner
"""

import structlog

from legacy_import.config import settings
from legacy_import.observability.logging import setup_logging
from legacy_import.worker.jobs import celery_app

logger = structlog.get_logger(__name__)


def main():
    """Start the Celery worker for template extraction."""
    setup_logging("worker")

    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.celery import CeleryIntegration
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[CeleryIntegration()],
            environment=settings.ENVIRONMENT,
        )

    logger.info("worker_starting", queue=settings.QUEUE_NAME, version=settings.APP_VERSION)
    celery_app.worker_main([
        "worker",
        f"--queues={settings.QUEUE_NAME}",
        f"--hostname=template-worker-{settings.APP_VERSION}@%h",
        f"--loglevel={settings.LOG_LEVEL.upper()}",
    ])


if __name__ == "__main__":
    main()
