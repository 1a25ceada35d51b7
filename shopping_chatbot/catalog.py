"""
Product Catalog Module.

Loads the product catalog once from a CSV (or JSON) file into an immutable,
ordered, in-memory store that is shared by every search.
"""

import csv
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from shopping_chatbot.models import Product

# Load environment variables
load_dotenv()

# Configuration
PRODUCTS_PATH = os.getenv("PRODUCTS_PATH", "./data/products_list.csv")

logger = logging.getLogger("shopping_chatbot.catalog")


class CatalogStore:
    """
    Read-only, ordered collection of catalog products.

    The products are held in a tuple of frozen models, so concurrent chat
    turns can search the same store without locking. A store that failed to
    load is empty and keeps the failure in ``load_error``.
    """

    def __init__(
        self,
        products: Iterable[Product] = (),
        source: Optional[str] = None,
        load_error: Optional[str] = None
    ):
        """
        Initialize the store.

        Args:
            products: Products in catalog order
            source: Where the products were loaded from
            load_error: Reason the source could not be loaded, if any
        """
        self._products: Tuple[Product, ...] = tuple(products)
        self.source = source
        self.load_error = load_error

    @classmethod
    def load(cls, source: Optional[Union[str, Path]] = None) -> "CatalogStore":
        """
        Load products from a catalog file.

        A file that cannot be read or parsed yields an empty store instead
        of an exception; the error is logged and kept in ``load_error``.

        Args:
            source: Path to a .csv or .json catalog file

        Returns:
            A populated (or empty) CatalogStore
        """
        path = Path(source or PRODUCTS_PATH)

        try:
            if path.suffix.lower() == ".json":
                rows = _read_json_rows(path)
            else:
                rows = _read_csv_rows(path)
        except (OSError, csv.Error, ValueError) as e:
            logger.error("Error loading products from %s: %s", path, e)
            return cls(source=str(path), load_error=str(e))

        products = parse_products(rows)
        logger.info("Loaded %d products from %s", len(products), path)
        return cls(products, source=str(path))

    def all(self) -> Tuple[Product, ...]:
        """Return every product in catalog order."""
        return self._products

    @property
    def is_empty(self) -> bool:
        return not self._products

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products)

    def __repr__(self) -> str:
        return f"CatalogStore(source={self.source!r}, products={len(self)}, load_error={self.load_error!r})"


def _read_csv_rows(path: Path) -> List[Dict[str, Any]]:
    with open(path, 'r', newline='', encoding='utf-8') as f:
        return [row for row in csv.DictReader(f) if any((value or "").strip() for value in row.values())]


def _read_json_rows(path: Path) -> List[Dict[str, Any]]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get('products', []), list):
        return data.get('products', [])
    raise ValueError(f"Unexpected catalog layout in {path}")


def parse_products(rows: Iterable[Dict[str, Any]]) -> List[Product]:
    """
    Validate raw catalog rows into Product records.

    Args:
        rows: Header-keyed rows from the catalog source

    Returns:
        List of valid products, in source order
    """
    products = []
    for line_number, row in enumerate(rows, start=1):
        try:
            products.append(Product(**row))
        except (ValidationError, TypeError) as e:
            logger.warning(
                "Skipping invalid product %s (row %d): %s",
                row.get('displayTitle', 'unknown') if isinstance(row, dict) else 'unknown',
                line_number,
                e
            )
    return products


def get_catalog() -> CatalogStore:
    """Load the catalog from the configured PRODUCTS_PATH."""
    return CatalogStore.load(PRODUCTS_PATH)


if __name__ == "__main__":
    import argparse

    from shopping_chatbot.logging_config import setup_logging
    from shopping_chatbot.scoring import rank_products

    parser = argparse.ArgumentParser(description="Inspect the product catalog")
    parser.add_argument(
        "--products",
        type=str,
        default=PRODUCTS_PATH,
        help="Path to products CSV or JSON file"
    )
    parser.add_argument(
        "--test-search",
        type=str,
        help="Test search query after loading"
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=3,
        help="Number of results for the test search"
    )

    args = parser.parse_args()
    setup_logging()

    print("=" * 50)
    print("Loading Product Catalog")
    print("=" * 50)

    catalog = CatalogStore.load(args.products)

    if catalog.load_error:
        print(f"\nCatalog could not be loaded: {catalog.load_error}")
    print(f"\nCatalog contains {len(catalog)} products")

    if args.test_search:
        print(f"\nTesting search with query: '{args.test_search}'")
        results = rank_products(args.test_search, catalog.all(), top_n=args.top_n)

        for i, result in enumerate(results, 1):
            print(f"\n--- Result {i} ---")
            print(f"Product: {result.product.display_title}")
            print(f"Price: ${result.product.price:.2f}")
            print(f"Score: {result.score}")
