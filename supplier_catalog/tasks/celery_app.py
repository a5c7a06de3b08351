"""
Celery configuration for background catalog sync.

- Redis as message broker and result backend
- A catalog pass is started periodically and walks the catalog page by page
- Supplier performance is logged every 5 minutes
"""

import os
from celery import Celery

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
CATALOG_PASS_INTERVAL_SECONDS = float(os.getenv('SYNC_PASS_INTERVAL_SECONDS', '21600'))

celery_app = Celery(
    'supplier_catalog',
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=['supplier_catalog.tasks.scheduled']
)

celery_app.conf.update(
    timezone='UTC',
    enable_utc=True,

    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    task_track_started=True,
    # One page must fit well inside the hard limit.
    task_time_limit=300,
    task_soft_time_limit=240,

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    'start-catalog-pass': {
        'task': 'supplier_catalog.tasks.start_catalog_pass',
        'schedule': CATALOG_PASS_INTERVAL_SECONDS,
        'options': {
            'expires': CATALOG_PASS_INTERVAL_SECONDS - 10,
        }
    },
    'log-supplier-performance-every-5-minutes': {
        'task': 'supplier_catalog.tasks.log_supplier_performance',
        'schedule': 300.0,
        'options': {
            'expires': 290,
        }
    },
}
