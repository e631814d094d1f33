"""Celery configuration for async task processing."""

from kombu import Exchange, Queue
from os import environ

# Broker configuration (Redis)
broker_url = environ.get("CELERY_BROKER_URL", "redis://localhost:6379/1")
result_backend = environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

# Task routing and serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task execution settings
task_track_started = True
task_acks_late = True
task_time_limit = 5 * 60
task_soft_time_limit = 4 * 60

# Worker settings
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Queue configuration with routing
default_exchange = Exchange("screening", type="direct")
task_default_queue = "default"
task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default"),
    Queue("notifications", exchange=default_exchange, routing_key="notifications"),
)

task_routes = {
    "workers.tasks.notifications.*": {"queue": "notifications"},
}

# Results expire after 1 hour
result_expires = 3600
