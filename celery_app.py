"""
Celery application for the import queue.

Broker and result backend are Redis.  Without REDIS_URL tasks run
synchronously in the calling process, which is how the dev server and
the test-suite run imports.
"""

import logging

from celery import Celery
from celery.signals import worker_process_init

import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Celery("marginalia", include=["import_engine.tasks"])

if config.REDIS_URL:
    app.conf.broker_url = config.REDIS_URL
    app.conf.result_backend = config.REDIS_URL

app.conf.update(
    accept_content=["json"],
    task_serializer="json",
    result_serializer="json",
    timezone="UTC",
    # One job at a time per worker process, redelivered if the worker dies
    worker_concurrency=1,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Unacked jobs are only redelivered after this long; claims guard the rest
    broker_transport_options={"visibility_timeout": config.IMPORT_VISIBILITY_TIMEOUT_SECONDS},
)

# Task will run synchronously if Redis is not available
app.conf.task_always_eager = not config.REDIS_URL


@worker_process_init.connect
def _init_worker_db(**_kwargs):
    from db.engine import init_db
    init_db(config.DB_URL)
