"""Quote requests for a finished configuration.

The submitted selection is re-priced against the stored catalog; a total
sent by the client is never trusted.
"""

import logging
import re
import secrets
import string
import time
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from configurator.config import DB_PATH, QUOTE_CODE_PREFIX, QUOTE_STATUS_PENDING
from configurator.db import generate_id, get_quote_by_code, insert_quote, load_catalog
from configurator.errors import NotFoundError, QuoteValidationError
from configurator.logging_config import log_engine_event
from configurator.pricing import build_price_breakdown, format_total

__all__ = ["generate_quote_code", "validate_email", "create_quote", "get_quote"]

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_quote_code() -> str:
    """Generate a human-friendly quote code like ``Q-LZ4K2M1A-7QX2PD``."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"{QUOTE_CODE_PREFIX}-{timestamp}-{suffix}"


def validate_email(email: Any) -> bool:
    return isinstance(email, str) and bool(EMAIL_PATTERN.match(email.strip()))


def create_quote(
    configurator_id: str,
    customer_email: str,
    selected_config: Mapping[str, str],
    selected_quantities: Optional[Mapping[str, Any]] = None,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Create a PENDING quote for a selection.

    Raises:
        QuoteValidationError: Invalid email or nothing selected.
        NotFoundError: The configurator does not exist.
    """
    if not validate_email(customer_email):
        raise QuoteValidationError("customerEmail must be a valid email address")

    catalog = load_catalog(db_path, configurator_id)
    line_items = build_price_breakdown(selected_config, selected_quantities, catalog.categories)
    if not line_items:
        raise QuoteValidationError("At least one option must be selected")

    total = sum((item.line_total for item in line_items), Decimal("0"))
    quote = {
        "id": generate_id(),
        "quote_code": generate_quote_code(),
        "configurator_id": configurator_id,
        "customer_email": customer_email.strip(),
        "customer_name": customer_name,
        "customer_phone": customer_phone,
        "selected_options": [item.to_dict() for item in line_items],
        "quantities": {item.category_id: item.quantity for item in line_items},
        "total_price": format_total(total),
        "status": QUOTE_STATUS_PENDING,
    }
    insert_quote(db_path, quote)

    logger.info(f"Created quote {quote['quote_code']} ({quote['total_price']})")
    log_engine_event(
        "quote_created",
        {"quote_code": quote["quote_code"], "configurator_id": configurator_id, "total": quote["total_price"]},
    )
    return quote


def get_quote(quote_code: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Fetch a quote by its code.

    Raises:
        NotFoundError: If no quote has this code.
    """
    quote = get_quote_by_code(db_path, quote_code)
    if quote is None:
        raise NotFoundError("Quote", quote_code)
    return quote
