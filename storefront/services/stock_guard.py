# storefront/services/stock_guard.py
from typing import Any, Dict, List, Mapping

from storefront.domain.errors import StockUnavailableError
from storefront.services.product_client import ProductClient, ProductInfo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class StockGuard:
    """
    Sprawdza ilości z koszyka względem stanów w katalogu.
    Zbiera WSZYSTKIE braki zamiast kończyć na pierwszym.
    """

    def __init__(self, product_client: ProductClient):
        self.product_client = product_client

    def find_violations(
        self,
        items: Mapping[int, int],
        products: Mapping[int, ProductInfo] | None = None,
    ) -> List[Dict[str, Any]]:
        if products is None:
            products = self.product_client.get_products(items.keys())
        violations = []

        for product_id, requested in items.items():
            product = products.get(product_id)
            available = product.available_stock if product else 0

            if requested > available:
                violations.append(
                    {
                        "product_id": product_id,
                        "product_name": product.name if product else None,
                        "requested_quantity": requested,
                        "available_quantity": available,
                    }
                )

        return violations

    def assert_stock_available(
        self,
        items: Mapping[int, int],
        products: Mapping[int, ProductInfo] | None = None,
    ) -> None:
        violations = self.find_violations(items, products)
        if violations:
            logger.info(
                f"Stock check failed for products {[v['product_id'] for v in violations]}"
            )
            raise StockUnavailableError(violations)
