from celery import Celery

from .core.config import settings

app = Celery(
    'querycache',
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=['querycache.tasks']
)

app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'sweep_expired_cache': {'queue': 'maintenance'}
    },
)

# Only the shared SQL store can be swept from a worker
if settings.cache_backend == 'sql':
    app.conf.beat_schedule = {
        'sweep-expired-cache': {
            'task': 'sweep_expired_cache',
            'schedule': float(settings.cache_sweep_interval_seconds),
        }
    }

if __name__ == '__main__':
    app.start()
