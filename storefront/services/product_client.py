# storefront/services/product_client.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional

import requests

from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductInfo:
    id: int
    name: str
    price: Decimal
    sale_rate: Decimal
    available_stock: int

    @classmethod
    def from_dict(cls, data: dict) -> "ProductInfo":
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            price=Decimal(str(data["price"])),
            sale_rate=Decimal(str(data.get("sale_rate") or 0)),
            available_stock=int(data.get("available_stock") or 0),
        )


class ProductClient:
    """Katalog produktów po HTTP (product-service)."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, product_id: int) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        # 404 to nie błąd transportu, nie ma co ponawiać
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_product(self, product_id: int) -> Optional[ProductInfo]:
        data = self.fetch_product(product_id)
        if data is None:
            logger.warning(f"Product {product_id} not found in catalog")
            return None
        return ProductInfo.from_dict(data)

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, ProductInfo]:
        products = {}
        for product_id in product_ids:
            info = self.get_product(product_id)
            if info is not None:
                products[product_id] = info
        return products
