"""CLI entry point for the replacement bundle engine.

Usage:
    python -m src.bundle_engine.main --catalog fixtures/sample_catalog.json --removed p-101:4
    python -m src.bundle_engine.main --catalog fixtures/sample_catalog.json \\
        --removed p-101:4 p-102:2 --available p-103 p-104:6 --policy top_up

    # Catalog from the configured backend (config/settings.yaml):
    python -m src.bundle_engine.main --removed p-101:4 --output data/suggestions.json
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from src.common.config import settings
from src.common.models import LineItem, Product

from .models import RemovalSet, format_price
from .pipeline import ReplacementPipeline
from .policy import load_policy

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def parse_item_spec(spec: str, default_quantity: int | None = None) -> tuple[str, int]:
    """Parse "PID:QTY" (or "PID" when a default quantity is given)."""
    pid, sep, qty = spec.rpartition(":")
    if not sep:
        if default_quantity is None:
            raise ValueError(f"Expected PID:QTY, got '{spec}'")
        return spec, default_quantity
    if not pid:
        raise ValueError(f"Missing product id in '{spec}'")
    try:
        quantity = int(qty)
    except ValueError:
        raise ValueError(f"Quantity must be an integer in '{spec}'") from None
    if quantity < 0:
        raise ValueError(f"Quantity must be >= 0 in '{spec}'")
    return pid, quantity


def load_catalog_file(path: str | Path) -> list[Product]:
    """Read products from JSON ({"products": [...]} or a bare list)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    rows = data.get("products", []) if isinstance(data, dict) else data
    return [Product(**row) for row in rows]


def build_line_items(
    specs: list[str], catalog: dict[str, Product], default_quantity: int | None = None
) -> list[LineItem]:
    items = []
    for spec in specs:
        pid, quantity = parse_item_spec(spec, default_quantity)
        if pid not in catalog:
            raise KeyError(f"Product '{pid}' not in catalog")
        items.append(LineItem(product=catalog[pid], quantity=quantity))
    return items


def main() -> None:
    parser = argparse.ArgumentParser(description="Replacement Bundle Engine: suggest replacement bundles")
    parser.add_argument(
        "--catalog",
        type=str,
        help="Catalog JSON file (default: configured backend)",
    )
    parser.add_argument(
        "--removed",
        nargs="+",
        required=True,
        metavar="PID:QTY",
        help="Products taken off the shelf",
    )
    parser.add_argument(
        "--available",
        nargs="*",
        default=[],
        metavar="PID[:QTY]",
        help="Products on hand; restricts candidates to these",
    )
    parser.add_argument(
        "--policy",
        type=str,
        default=None,
        help=f"Policy preset (default: {settings.default_policy})",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output JSON file path",
    )

    args = parser.parse_args()

    if args.catalog:
        products = load_catalog_file(args.catalog)
    else:
        from src.exchange import get_backend

        products = get_backend(settings).list_products()
    catalog = {p.id: p for p in products}

    try:
        removed = build_line_items(args.removed, catalog)
        available = build_line_items(args.available, catalog, default_quantity=1)
        policy = load_policy(args.policy, settings)
    except (KeyError, ValueError) as e:
        parser.error(str(e))

    pipeline = ReplacementPipeline(policy, products)
    result = pipeline.suggest(RemovalSet(tuple(removed)), available)

    logger.info("=== Replacement suggestions (%s) ===", policy.name)
    logger.info(
        "Removed: %s -> target %s",
        format_price(result.removed_value),
        format_price(result.target),
    )
    if result.is_empty:
        logger.info("No suggestions found")
    for rank, candidate in enumerate(result.suggestions, 1):
        contents = ", ".join(f"{i.quantity}x {i.product.name}" for i in candidate.items)
        logger.info(
            "  #%d [%s] %s = %s (%s), score=%.1f",
            rank,
            candidate.strategy,
            contents,
            format_price(candidate.total_value),
            candidate.difference_label,
            candidate.match_score,
        )

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(result.to_json())
        logger.info("Output written to %s", args.output)


if __name__ == "__main__":
    main()
