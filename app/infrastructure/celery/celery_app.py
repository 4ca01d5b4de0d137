# app/infrastructure/celery/celery_app.py
import logging
from datetime import timedelta

from celery import Celery
from kombu import Exchange, Queue

import config

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(funcName)s] - %(message)s')

celery_app = Celery(
    'tasks',
    broker=config.CELERY_BROKER_URL,
    backend=None,  # el estado de los jobs vive en la tabla trabajos_cola
    include=['app.infrastructure.celery.worker'],
)

default_exchange = Exchange('sifen', type='direct', durable=True)

celery_app.conf.update(
    task_ignore_result=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=config.WORKER_CONCURRENCY,
    task_default_queue=config.INVOICE_QUEUE,
    task_queues=(
        Queue(config.INVOICE_QUEUE, exchange=default_exchange, routing_key=config.INVOICE_QUEUE,
              durable=True, queue_arguments={'x-max-priority': 10}),
        Queue(config.RENDER_QUEUE, exchange=default_exchange, routing_key=config.RENDER_QUEUE,
              durable=True, queue_arguments={'x-max-priority': 10}),
    ),
    task_routes={
        'tasks.process_invoice': {'queue': config.INVOICE_QUEUE},
        'tasks.render_invoice': {'queue': config.RENDER_QUEUE},
        'tasks.requeue_stalled_jobs': {'queue': config.INVOICE_QUEUE},
        'tasks.monitor_failed_jobs': {'queue': config.INVOICE_QUEUE},
    },
    broker_transport_options={
        # Debe superar el timeout del job más largo para no duplicar entregas
        'visibility_timeout': config.STALLED_JOB_TIMEOUT + 60,
    },
    beat_schedule={
        'requeue-stalled-jobs': {
            'task': 'tasks.requeue_stalled_jobs',
            'schedule': timedelta(seconds=config.STALLED_CHECK_INTERVAL),
        },
        'monitor-failed-jobs': {
            'task': 'tasks.monitor_failed_jobs',
            'schedule': timedelta(seconds=config.FAILED_MONITOR_INTERVAL),
        },
    },
)
