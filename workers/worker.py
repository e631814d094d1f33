"""Worker script to run Celery workers."""

from core.middleware.logging import setup_logging
from workers.celery_app import celery_app
import workers.tasks.notifications  # noqa: F401

setup_logging(log_level="INFO", json_logs=True)

if __name__ == "__main__":
    celery_app.worker_main(
        argv=[
            "worker",
            "--loglevel=info",
            "--concurrency=4",
            "-Q",
            "default,notifications",
        ]
    )
