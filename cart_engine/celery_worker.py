# cart_engine/celery_worker.py
from celery import Celery

from cart_engine.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, RESERVATION_SWEEP_SECONDS

celery_app = Celery(
    "cart_engine",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAZNE: explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "cart_engine.tasks.migrate",
    "cart_engine.tasks.reservations",
)

celery_app.conf.timezone = "UTC"

celery_app.conf.beat_schedule = {
    "release-expired-reservations": {
        "task": "cart_engine.tasks.reservations.release_expired_reservations_task",
        "schedule": RESERVATION_SWEEP_SECONDS,
    },
}
