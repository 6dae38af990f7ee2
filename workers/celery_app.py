"""
Configuração do Celery para processamento assíncrono
"""

from celery import Celery

from core.config import settings

celery_app = Celery(
    "review_workers",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,  # confirma após processar
    worker_prefetch_multiplier=4,
    task_track_started=True,
    task_time_limit=300,  # timeout de 5 minutos
    task_soft_time_limit=240,  # aviso aos 4 minutos
)

# Configurar rotas de tarefas para queues específicas
celery_app.conf.task_routes = {
    "workers.review_tasks.dispatch_due_reviews": {"queue": "reviews"},
    "workers.review_tasks.deliver_user_reviews": {"queue": "reviews"},
    "workers.review_tasks.process_review_timeouts": {"queue": "reviews"},
    "workers.review_tasks.handle_rating_callback": {"queue": "callbacks"},
}

# Configurar tarefas periódicas (Celery Beat)
celery_app.conf.beat_schedule = {
    "dispatch-due-reviews": {
        "task": "workers.review_tasks.dispatch_due_reviews",
        "schedule": settings.DISPATCH_INTERVAL_SECONDS,
    },
    "process-review-timeouts": {
        "task": "workers.review_tasks.process_review_timeouts",
        "schedule": settings.TIMEOUT_SWEEP_SECONDS,
    },
}

# Importar tasks explicitamente
from workers import review_tasks  # noqa: F401, E402
