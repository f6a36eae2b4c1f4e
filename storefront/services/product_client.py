# storefront/services/product_client.py
from decimal import Decimal
from typing import Tuple

import requests
from requests import RequestException

from storefront.domain.errors import GatewayError
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL, PRODUCT_SERVICE_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """Read-only client of the product catalog service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or PRODUCT_SERVICE_TIMEOUT_SECONDS

    def price_and_name(self, product_id: int) -> Tuple[Decimal, str] | None:
        """Live price and name of a product, None if the catalog does not know it."""
        try:
            data = self.fetch_product(product_id)
        except RequestException as e:
            logger.error(f"Product catalog unavailable for product {product_id}: {e}")
            raise GatewayError("Product catalog is unavailable") from e

        if data is None:
            return None
        return Decimal(str(data["price"])), data["name"]

    @http_retry()
    def fetch_product(self, product_id: int) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()
