"""Configuration and constants for the configurator engine."""

import os
from decimal import Decimal
from typing import Dict, FrozenSet

__all__ = [
    "DB_PATH",
    "CATEGORY_TYPES",
    "DEFAULT_CATEGORY_TYPE",
    "SEVERITY_ERROR",
    "SEVERITY_WARNING",
    "SEVERITIES",
    "DEFAULT_QUANTITY",
    "PRICE_QUANTUM",
    "QUOTE_CODE_PREFIX",
    "QUOTE_STATUS_PENDING",
    "CSV_COLUMNS",
    "is_valid_category_type",
]

# Database path (allow env override so the web app and CLI share one store)
DB_PATH = os.getenv("CONFIGURATOR_DB_PATH", "data/configurator.db")


# =============================================================================
# Category Types
# =============================================================================
# Purely descriptive tags. They drive display only and never affect
# compatibility or selection logic.

CATEGORY_TYPES: Dict[str, str] = {
    "generic": "Generic",
    "color": "Color",
    "dimension": "Dimension",
    "material": "Material",
    "feature": "Feature",
    "accessory": "Accessory",
    "power": "Power",
    "text": "Text",
    "finish": "Finish",
    "custom": "Custom",
}

DEFAULT_CATEGORY_TYPE = "generic"


# =============================================================================
# Incompatibility Severities
# =============================================================================

SEVERITY_ERROR = "error"  # hard block
SEVERITY_WARNING = "warning"  # advisory only

SEVERITIES: FrozenSet[str] = frozenset({SEVERITY_ERROR, SEVERITY_WARNING})


# =============================================================================
# Pricing & Quotes
# =============================================================================

DEFAULT_QUANTITY = 1

# Totals are accumulated exactly and only quantized for output
PRICE_QUANTUM = Decimal("0.01")

QUOTE_CODE_PREFIX = "Q"
QUOTE_STATUS_PENDING = "PENDING"


# =============================================================================
# CSV Import/Export Layout
# =============================================================================
# One row per option. Keys are canonical column names, values are the
# accepted header aliases (first match wins).

CSV_COLUMNS: Dict[str, list] = {
    "category": ["category", "Category"],
    "label": ["option", "label", "Option", "Label"],
    "description": ["description", "Description"],
    "price": ["price", "Price"],
    "sku": ["sku", "SKU"],
    "tempId": ["tempId", "temp_id", "id"],
    "imageUrl": ["imageUrl", "image_url"],
    "incompatibleWith": ["incompatibleWith", "incompatible_with"],
}


def is_valid_category_type(value: str) -> bool:
    """Check whether a category type tag is one of the known types."""
    return value in CATEGORY_TYPES
