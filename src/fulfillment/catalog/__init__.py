"""Product directory abstraction: which seller owns which product."""

import os

_directory_instance = None


def get_product_directory():
    """Return the configured product directory (singleton).

    Uses the in-memory directory by default; select another adapter with
    the PRODUCT_DIRECTORY environment variable.
    """
    global _directory_instance
    if _directory_instance is None:
        adapter = os.environ.get("PRODUCT_DIRECTORY", "memory")
        if adapter == "memory":
            from fulfillment.catalog.memory_adapter import InMemoryProductDirectory

            _directory_instance = InMemoryProductDirectory()
        else:
            raise ValueError(f"Unknown product directory adapter: {adapter}")
    return _directory_instance


def reset_product_directory():
    """Reset the product directory singleton (useful for testing)."""
    global _directory_instance
    _directory_instance = None
