"""CSV import and export of configurator catalogs.

The CSV layout is one row per option::

    category,option,price,sku,tempId,description,imageUrl,incompatibleWith
    Frame,Steel frame,450,FR-ST,frame-steel,,,"fork-carbon"

Header aliases are listed in ``configurator.config.CSV_COLUMNS``. Rows are
grouped by category (first appearance order) into the same item shape the
JSON bulk import accepts.
"""

import logging
import os
from typing import IO, Any, Dict, List, Union

import pandas as pd

from configurator.config import CSV_COLUMNS
from configurator.errors import ImportValidationError
from configurator.models import Catalog

__all__ = [
    "resolve_columns",
    "rows_to_items",
    "load_import_csv",
    "catalog_to_rows",
    "export_catalog_to_csv",
]

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "category",
    "option",
    "price",
    "sku",
    "tempId",
    "description",
    "imageUrl",
    "incompatibleWith",
]


def resolve_columns(headers: List[str]) -> Dict[str, str]:
    """Map canonical column names to the actual header present in a file."""
    resolved: Dict[str, str] = {}
    for canonical, aliases in CSV_COLUMNS.items():
        for alias in aliases:
            if alias in headers:
                resolved[canonical] = alias
                break
    return resolved


def rows_to_items(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Group a DataFrame of option rows into import items.

    Raises:
        ImportValidationError: If the category or option column is missing.
    """
    columns = resolve_columns(list(df.columns))
    missing = [name for name in ("category", "label") if name not in columns]
    if missing:
        raise ImportValidationError(f"CSV is missing required column(s): {', '.join(missing)}")

    groups: Dict[str, List[Dict[str, Any]]] = {}
    for _, row in df.iterrows():
        category = str(row[columns["category"]]).strip()
        if not category:
            continue
        option: Dict[str, Any] = {}
        for canonical, header in columns.items():
            if canonical == "category":
                continue
            value = str(row[header]).strip()
            if value:
                option[canonical] = value
        # dict preserves first-seen category order
        groups.setdefault(category, []).append(option)

    return [{"category": name, "options": options} for name, options in groups.items()]


def load_import_csv(source: Union[str, IO]) -> List[Dict[str, Any]]:
    """Load a CSV file (path or file object) into bulk import items.

    All cells are read as strings; empty cells become absent fields so the
    import normalizer applies its usual defaults.
    """
    try:
        df = pd.read_csv(source, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as e:
        raise ImportValidationError("CSV file is empty") from e
    except pd.errors.ParserError as e:
        raise ImportValidationError(f"Could not parse CSV: {e}") from e

    items = rows_to_items(df)
    logger.info(f"Loaded {len(df)} CSV rows into {len(items)} categories")
    return items


def catalog_to_rows(catalog: Catalog) -> List[Dict[str, Any]]:
    """Flatten a catalog to one row per option.

    Incompatibilities are written as SKUs where available, otherwise as
    option ids, so an exported file can be re-imported.
    """
    ref_for: Dict[str, str] = {}
    for category in catalog.categories:
        for option in category.options:
            ref_for[option.id] = option.sku or option.id

    rows = []
    for category in catalog.categories:
        for option in category.options:
            refs = [ref_for.get(oid, oid) for oid in sorted(option.error_incompatible_ids())]
            rows.append({
                "category": category.name,
                "option": option.label,
                "price": str(option.price),
                "sku": option.sku or "",
                "tempId": option.sku or option.id,
                "description": option.description or "",
                "imageUrl": option.image_url or "",
                "incompatibleWith": ",".join(refs),
            })
    return rows


def export_catalog_to_csv(catalog: Catalog, csv_path: str) -> int:
    """Export a catalog to CSV.

    Returns:
        Number of option rows written.
    """
    rows = catalog_to_rows(catalog)
    os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
    pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(csv_path, index=False)
    logger.info(f"Exported {len(rows)} options to {csv_path}")
    return len(rows)
