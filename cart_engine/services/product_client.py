# cart_engine/services/product_client.py
from decimal import Decimal

import requests

from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import http_retry
from cart_engine.utils.settings import PRODUCT_SERVICE_URL

logger = get_logger(__name__)


class ProductClient:
    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, product_id: str) -> dict:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_base_price(self, product_id: str) -> Decimal:
        pdata = self.fetch_product(product_id)
        return Decimal(str(pdata["price"]))
