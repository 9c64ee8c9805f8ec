# cart_engine/tasks/reservations.py
from datetime import datetime, timedelta, timezone

import redis
from sqlalchemy.orm import Session

from cart_engine.celery_worker import celery_app
from cart_engine.data.database import SessionLocal
from cart_engine.data.redis_client import get_redis
from cart_engine.repos.reservation_repo import ReservationRepo
from cart_engine.services.cart_store import GuestCartStore
from cart_engine.services.stock_service import StockReservationService
from cart_engine.utils.logging import get_logger
from cart_engine.utils.settings import RESERVATION_GRACE_SECONDS

logger = get_logger(__name__)


def release_expired_reservations(db: Session, client: redis.Redis, grace_seconds: int = RESERVATION_GRACE_SECONDS) -> list:
    """
    Koszyk goscia znika z redisa po TTL, a jego rezerwacje zostaja w bazie.
    Dla kazdego goscia bez zmian od `grace_seconds`: brak klucza = caly stan wraca na magazyn.
    """
    before = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
    stock = StockReservationService(db)
    released = []

    for owner_ref in ReservationRepo(db).guest_owners_before(before):
        session_token = owner_ref.split(":", 1)[1]
        if client.exists(GuestCartStore.key_for(session_token)):
            continue

        try:
            stock.release_owner(owner_ref)
            released.append(owner_ref)
        except Exception as e:
            logger.warning(f"Zwolnienie rezerwacji {owner_ref} nieudane: {e}")

    if released:
        logger.info(f"Zwolniono rezerwacje {len(released)} wygaslych koszykow gosci")
    return released


@celery_app.task(name="cart_engine.tasks.reservations.release_expired_reservations_task")
def release_expired_reservations_task():
    logger.info("Release expired reservations task started")

    db = SessionLocal()
    try:
        return release_expired_reservations(db, get_redis())
    finally:
        db.close()
