# cart_engine/main.py
import uvicorn

from cart_engine.api import create_app
from cart_engine.data.database import Base, engine
from cart_engine.utils.logging import get_logger

# import wszystkich modeli przed create_all
import cart_engine.data.models  # noqa: F401

logger = get_logger(__name__)

logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")

try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
except Exception as e:
    logger.error(f"Failed to create tables: {e}")
    raise


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
