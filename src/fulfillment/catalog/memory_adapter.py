"""In-memory product directory for development and testing."""

from fulfillment.catalog.port import ProductDirectoryPort


class InMemoryProductDirectory(ProductDirectoryPort):
    def __init__(self):
        self._sellers: dict[str, str] = {}

    def register(self, product_id: str, seller_id: str) -> None:
        self._sellers[product_id] = seller_id

    def seller_of(self, product_id: str) -> str | None:
        return self._sellers.get(product_id)
