"""Price aggregation over the current selection.

Totals are accumulated with Decimal so that many small option prices never
drift, and are only quantized when formatted for output.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Mapping, Optional, Sequence

from configurator.config import DEFAULT_QUANTITY, PRICE_QUANTUM
from configurator.models import Category

__all__ = [
    "LineItem",
    "parse_price",
    "effective_quantity",
    "calculate_total",
    "build_price_breakdown",
    "format_total",
]

logger = logging.getLogger(__name__)


@dataclass
class LineItem:
    """One priced row of the selection summary."""

    category_id: str
    category_name: str
    option_id: str
    option_label: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "optionId": self.option_id,
            "optionLabel": self.option_label,
            "unitPrice": format_total(self.unit_price),
            "quantity": self.quantity,
            "lineTotal": format_total(self.line_total),
        }


def parse_price(raw: Any, allow_negative: bool = False) -> Optional[Decimal]:
    """Parse a price permissively.

    Handles formats like: 10, 10.5, "10", " 10.50 ", "1e2"

    Args:
        raw: Raw price value (number, string or None).
        allow_negative: Whether negative values are kept.

    Returns:
        Decimal price, or None when no usable price is set (empty,
        non-numeric, non-finite, or negative when not allowed).
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    if value < 0 and not allow_negative:
        logger.debug(f"Ignoring negative price: {raw!r}")
        return None
    return value


def effective_quantity(category_id: str, selected_quantities: Optional[Mapping[str, Any]]) -> int:
    """Quantity for a category slot, defaulting to 1 when absent or below 1."""
    if not selected_quantities:
        return DEFAULT_QUANTITY
    raw = selected_quantities.get(category_id)
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_QUANTITY
    return quantity if quantity >= 1 else DEFAULT_QUANTITY


def build_price_breakdown(
    selected_config: Mapping[str, str],
    selected_quantities: Optional[Mapping[str, Any]],
    categories: Sequence[Category],
) -> List[LineItem]:
    """Build one line item per category with a resolvable selection.

    Categories are walked in the given order. Quantities for categories
    without a selection are ignored.
    """
    items = []
    for category in categories:
        selected_id = selected_config.get(category.id) or ""
        if not selected_id:
            continue
        option = category.find_option(selected_id)
        if option is None:
            logger.debug(f"Selected option {selected_id} not found in category {category.id}")
            continue
        items.append(
            LineItem(
                category_id=category.id,
                category_name=category.name,
                option_id=option.id,
                option_label=option.label,
                unit_price=option.price,
                quantity=effective_quantity(category.id, selected_quantities),
            )
        )
    return items


def calculate_total(
    selected_config: Mapping[str, str],
    selected_quantities: Optional[Mapping[str, Any]],
    categories: Sequence[Category],
) -> Decimal:
    """Sum price x quantity over every selected category.

    Returns:
        Exact Decimal total; ``Decimal("0")`` when nothing is selected.
    """
    total = Decimal("0")
    for item in build_price_breakdown(selected_config, selected_quantities, categories):
        total += item.line_total
    return total


def format_total(amount: Decimal) -> str:
    """Quantize an amount to cents for display or JSON output.

    Precision is widened to the amount's integer digits so huge totals
    (large quantities or imported prices like "1e30") still quantize.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return str(amount.quantize(PRICE_QUANTUM))
