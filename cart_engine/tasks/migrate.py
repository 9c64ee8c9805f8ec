# cart_engine/tasks/migrate.py
from cart_engine.celery_worker import celery_app
from cart_engine.data.database import SessionLocal
from cart_engine.data.redis_client import get_redis
from cart_engine.services.cart_service import CartService
from cart_engine.services.cart_store import GuestCartStore, RemoteCartStore
from cart_engine.services.change_feed import ChangeFeed
from cart_engine.services.lock_service import LockService
from cart_engine.services.migration_service import MigrationReconciler
from cart_engine.services.product_client import ProductClient
from cart_engine.services.stock_service import StockReservationService
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_engine.tasks.migrate.migrate_guest_cart_task")
def migrate_guest_cart_task(session_token: str, user_id: int):
    logger.info(f"Migrate guest cart task started for user {user_id}")

    client = get_redis()
    db = SessionLocal()
    try:
        remote = RemoteCartStore(db, user_id, feed=ChangeFeed(client))
        stock = StockReservationService(db)
        service = CartService(remote, db, ProductClient(), stock=stock)

        report = MigrationReconciler(LockService(client), stock=stock).run(
            GuestCartStore(session_token, client=client),
            remote,
            reprice=service.reprice_product,
        )
        return report.model_dump()

    finally:
        db.close()
