"""Bulk import of categories, options and incompatibility rules.

Pipeline:
1. Normalize - parse the loosely shaped payload into one canonical shape
2. Ensure categories - find-or-create each category by exact name
3. Create options - insert options and register lookup keys
4. Link - resolve symbolic incompatibility references into bidirectional,
   deduplicated rows

Steps 2-4 run in a single SQLite transaction: either the whole import
lands or nothing does. Unresolvable references are reported as warnings.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from configurator.config import DB_PATH, SEVERITY_ERROR
from configurator.db import (
    fetch_configurator,
    find_category_by_name,
    get_connection,
    insert_category,
    insert_incompatibility_rows,
    insert_option,
    transaction,
)
from configurator.errors import (
    ImportValidationError,
    NotFoundError,
    OwnershipError,
    StorageError,
)
from configurator.logging_config import log_engine_event
from configurator.models import Incompatibility
from configurator.pricing import parse_price

__all__ = [
    "NormalizedOption",
    "NormalizedItem",
    "CreatedOption",
    "ImportResult",
    "normalize_incompatible_refs",
    "normalize_request",
    "ensure_categories",
    "create_options",
    "build_incompatibility_rows",
    "normalize_and_link_import",
]

logger = logging.getLogger(__name__)


@dataclass
class NormalizedOption:
    label: str
    temp_id: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None  # None means "no price set"
    sku: Optional[str] = None
    image_url: Optional[str] = None
    incompatible_with: List[str] = field(default_factory=list)


@dataclass
class NormalizedItem:
    category_name: str
    options: List[NormalizedOption] = field(default_factory=list)


@dataclass
class CreatedOption:
    """An option inserted during the import, with its source row."""

    id: str
    label: str
    category_name: str
    original: NormalizedOption
    sku: Optional[str] = None
    temp_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "sku": self.sku,
            "categoryName": self.category_name,
            "tempId": self.temp_id,
        }


@dataclass
class ImportResult:
    categories: List[Dict[str, Any]] = field(default_factory=list)
    options: List[CreatedOption] = field(default_factory=list)
    incompatibilities_created: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": list(self.categories),
            "options": [o.to_dict() for o in self.options],
            "incompatibilitiesCreated": self.incompatibilities_created,
            "warnings": list(self.warnings),
        }


# =============================================================================
# Normalization
# =============================================================================

def _safe_string(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_string(value: Any) -> Optional[str]:
    text = _safe_string(value)
    return text or None


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def normalize_incompatible_refs(value: Any) -> List[str]:
    """Normalize an ``incompatibleWith`` field to a list of references.

    Accepts a list or a comma-separated string; anything else yields [].
    """
    if isinstance(value, (list, tuple)):
        return [ref for ref in (_safe_string(v) for v in value) if ref]
    if isinstance(value, str):
        return [ref.strip() for ref in value.split(",") if ref.strip()]
    return []


def _normalize_option(raw: Dict[str, Any]) -> NormalizedOption:
    # "id" is the legacy alias of tempId, "option" the legacy alias of label
    return NormalizedOption(
        label=_safe_string(_first_present(raw, "option", "label")),
        temp_id=_optional_string(_first_present(raw, "tempId", "id")),
        description=_optional_string(raw.get("description")),
        price=parse_price(raw.get("price")),
        sku=_optional_string(raw.get("sku")),
        image_url=_optional_string(_first_present(raw, "imageUrl", "image_url")),
        incompatible_with=normalize_incompatible_refs(raw.get("incompatibleWith")),
    )


def normalize_request(payload: Any) -> List[NormalizedItem]:
    """Parse a raw import payload into canonical items.

    Options with an empty label are dropped, then groups with an empty
    category name or no surviving options are dropped. Neither is an error.
    """
    raw_items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw_item in raw_items:
        if not isinstance(raw_item, dict):
            continue
        category_name = _safe_string(raw_item.get("category"))
        raw_options = raw_item.get("options")
        if not isinstance(raw_options, list):
            raw_options = []

        options = [_normalize_option(o) for o in raw_options if isinstance(o, dict)]
        options = [o for o in options if o.label]

        if category_name and options:
            items.append(NormalizedItem(category_name=category_name, options=options))
    return items


# =============================================================================
# Transactional Phases
# =============================================================================

def ensure_categories(
    conn: sqlite3.Connection,
    configurator_id: str,
    items: List[NormalizedItem],
) -> Dict[str, Dict[str, Any]]:
    """Find or create every category named by the items.

    Returns:
        Map of category name -> ``{"id", "name"}``.
    """
    category_map: Dict[str, Dict[str, Any]] = {}
    for item in items:
        if item.category_name in category_map:
            continue
        existing = find_category_by_name(conn, configurator_id, item.category_name)
        if existing:
            category_map[item.category_name] = existing
            continue
        category_map[item.category_name] = insert_category(
            conn, configurator_id, item.category_name, is_primary=False
        )
        logger.debug(f"Created category '{item.category_name}'")
    return category_map


def create_options(
    conn: sqlite3.Connection,
    category_map: Dict[str, Dict[str, Any]],
    items: List[NormalizedItem],
) -> Tuple[List[CreatedOption], Dict[str, CreatedOption]]:
    """Insert all options and build the reference lookup.

    Each option is registered under its temp id, its sku and its lowercase
    label. Temp id and sku are exact keys and always win; a lowercase label
    key only replaces an earlier label key (last write wins among labels).

    Returns:
        (created options in input order, lookup map)
    """
    created_options: List[CreatedOption] = []
    lookup: Dict[str, CreatedOption] = {}
    exact_keys = set()

    for item in items:
        category = category_map.get(item.category_name)
        if not category:
            continue

        for index, option in enumerate(item.options):
            row = insert_option(
                conn,
                category["id"],
                option.label,
                price=option.price if option.price is not None else Decimal("0"),
                description=option.description,
                sku=option.sku,
                image_url=option.image_url,
                order_index=index,
                is_active=True,
            )
            record = CreatedOption(
                id=row["id"],
                label=row["label"],
                category_name=item.category_name,
                original=option,
                sku=option.sku,
                temp_id=option.temp_id,
            )
            created_options.append(record)

            for key in (option.temp_id, option.sku):
                if key:
                    lookup[key] = record
                    exact_keys.add(key)

            label_key = option.label.lower()
            if label_key not in exact_keys:
                lookup[label_key] = record

    return created_options, lookup


def build_incompatibility_rows(
    created_options: List[CreatedOption],
    lookup: Dict[str, CreatedOption],
) -> Tuple[List[Incompatibility], List[str]]:
    """Resolve references into deduplicated bidirectional rows.

    Returns:
        (rows, warnings) where each resolved reference contributed both
        A->B and B->A, deduplicated on (option_id, incompatible_option_id).
    """
    rows: List[Incompatibility] = []
    warnings: List[str] = []

    for created in created_options:
        for ref in created.original.incompatible_with:
            if not ref:
                continue
            target = lookup.get(ref) or lookup.get(ref.lower())
            if target is None:
                warnings.append(
                    f'Could not resolve incompatibility reference "{ref}" for option '
                    f'"{created.label}" (created id: {created.id})'
                )
                continue
            if target.id == created.id:
                warnings.append(f'Ignoring self-reference "{ref}" on option "{created.label}"')
                continue
            rows.append(Incompatibility(created.id, target.id, SEVERITY_ERROR))
            rows.append(Incompatibility(target.id, created.id, SEVERITY_ERROR))

    unique: Dict[Tuple[str, str], Incompatibility] = {}
    for row in rows:
        unique.setdefault((row.option_id, row.incompatible_option_id), row)

    for warning in warnings:
        logger.warning(warning)
    return list(unique.values()), warnings


# =============================================================================
# Main Import Pipeline
# =============================================================================

def _check_configurator(db_path: str, configurator_id: str, client_id: Optional[str]) -> None:
    with get_connection(db_path) as conn:
        configurator = fetch_configurator(conn, configurator_id)
    if configurator is None:
        raise NotFoundError("Configurator")
    if client_id is not None and configurator["client_id"] != client_id:
        raise OwnershipError("You don't own this configurator")


def normalize_and_link_import(
    payload: Dict[str, Any],
    db_path: str = DB_PATH,
    client_id: Optional[str] = None,
) -> ImportResult:
    """Run a complete bulk import for one configurator.

    Args:
        payload: ``{"configuratorId": ..., "items": [{"category", "options"}]}``.
        db_path: Path to SQLite database.
        client_id: When given, the configurator must belong to this client.

    Returns:
        ImportResult with the categories used, options created, number of
        incompatibility rows written and non-fatal warnings.

    Raises:
        ImportValidationError: Missing configurator id or no usable items.
        NotFoundError: The configurator does not exist.
        OwnershipError: The configurator belongs to another client.
        StorageError: The transaction failed and was rolled back.
    """
    if not isinstance(payload, dict):
        raise ImportValidationError("Import payload must be a JSON object")

    configurator_id = _safe_string(_first_present(payload, "configuratorId", "configurator_id"))
    if not configurator_id:
        raise ImportValidationError("Configurator ID is required")

    _check_configurator(db_path, configurator_id, client_id)

    items = normalize_request(payload)
    if not items:
        raise ImportValidationError("No items provided")

    option_total = sum(len(item.options) for item in items)
    logger.info(f"IMPORT: {len(items)} categories, {option_total} options for {configurator_id}")

    try:
        with transaction(db_path) as conn:
            category_map = ensure_categories(conn, configurator_id, items)
            created_options, lookup = create_options(conn, category_map, items)
            rows, warnings = build_incompatibility_rows(created_options, lookup)
            inserted = insert_incompatibility_rows(conn, rows) if rows else 0
    except sqlite3.Error as e:
        logger.exception("IMPORT: transaction rolled back")
        raise StorageError(f"Bulk import failed: {e}") from e

    result = ImportResult(
        categories=list(category_map.values()),
        options=created_options,
        incompatibilities_created=inserted,
        warnings=warnings,
    )
    log_engine_event(
        "import_completed",
        {
            "configurator_id": configurator_id,
            "categories": len(result.categories),
            "options": len(result.options),
            "incompatibilities_created": inserted,
            "warnings": len(warnings),
        },
    )
    return result
