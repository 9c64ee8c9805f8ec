from unittest.mock import MagicMock

from cart_engine.domain.schemas import Identity
from cart_engine.services.cart_service import CartService
from cart_engine.services.cart_store import RemoteCartStore
from cart_engine.services.change_feed import ChangeFeed
from cart_engine.services.optimistic_controller import OptimisticCartController


def _drain(pubsub):
    for _ in range(5):
        pubsub.get_message(timeout=0.05)


def test_channel_name():
    assert ChangeFeed.channel("user:7") == "cart-changes:user:7"


def test_subscriber_is_notified(redis_client):
    feed = ChangeFeed(redis_client)
    on_change = MagicMock()
    pubsub = feed.subscribe("user:7", on_change)
    _drain(pubsub)

    assert feed.publish("user:7") == 1
    _drain(pubsub)

    on_change.assert_called_once_with()
    pubsub.close()


def test_other_owners_are_not_notified(redis_client):
    feed = ChangeFeed(redis_client)
    on_change = MagicMock()
    pubsub = feed.subscribe("user:7", on_change)
    _drain(pubsub)

    feed.publish("user:8")
    _drain(pubsub)

    on_change.assert_not_called()
    pubsub.close()


def test_controller_refreshes_on_remote_change(db, redis_client, product_client):
    feed = ChangeFeed(redis_client)
    identity = Identity(user_id=7)
    controller = OptimisticCartController(
        identity,
        lambda i: CartService(RemoteCartStore(db, i.user_id), db, product_client),
    )
    pubsub = controller.watch(feed)
    _drain(pubsub)

    #zmiana z innego urzadzenia
    RemoteCartStore(db, user_id=7, feed=feed).add_line("productA", 4)
    _drain(pubsub)

    assert controller.count == 4
    pubsub.close()
