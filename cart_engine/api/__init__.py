# cart_engine/api/__init__.py
import redis
import requests
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from cart_engine.api.errors import backend_failure_handler
from cart_engine.api.routers import carts, health, session, wishlist


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cart Service",
        version="1.0.0",
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(wishlist.router)
    app.include_router(session.router)

    #bledy infrastruktury jako 503 backend_failure zamiast golego 500
    for exc_class in (requests.RequestException, SQLAlchemyError, redis.RedisError):
        app.add_exception_handler(exc_class, backend_failure_handler)

    return app
