"""Product directory port: read-only view of the catalogue's seller ownership.

The catalogue itself lives outside this service. Checkout only needs to know
who sells a product so every order line is attributed to the right seller.
"""

from abc import ABC, abstractmethod


class ProductDirectoryPort(ABC):
    """Abstract interface for product directory adapters."""

    @abstractmethod
    def seller_of(self, product_id: str) -> str | None:
        """Return the seller id owning the product, or None when unknown."""
        ...
