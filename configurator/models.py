"""Data models for configurator catalogs.

Categories own their options; incompatibilities are stored as flat
directed rows keyed by option id rather than as live back-references
between option objects.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Set

from configurator.config import (
    DEFAULT_CATEGORY_TYPE,
    SEVERITIES,
    SEVERITY_ERROR,
    is_valid_category_type,
)

__all__ = [
    "AttributeDefinition",
    "Incompatibility",
    "Option",
    "Category",
    "Catalog",
    "to_decimal",
]

logger = logging.getLogger(__name__)


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, tolerating camelCase and snake_case."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def to_decimal(value: Any) -> Decimal:
    """Convert a price-like value to Decimal.

    Raises:
        ValueError: If the value is not numeric or is negative.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid price: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip() or "0")
        except InvalidOperation:
            raise ValueError(f"Invalid price: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Invalid price: {value!r}")
    if result < 0:
        raise ValueError(f"Negative price: {value!r}")
    return result


@dataclass
class AttributeDefinition:
    """Custom attribute shown alongside a category's options (display only)."""

    key: str
    label: str
    type: str = "text"
    unit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "label": self.label, "type": self.type, "unit": self.unit}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttributeDefinition":
        return cls(
            key=str(data.get("key", "")),
            label=str(data.get("label", data.get("key", ""))),
            type=str(data.get("type", "text")),
            unit=data.get("unit"),
        )


@dataclass
class Incompatibility:
    """Directed incompatibility edge between two options.

    Only error-severity edges are hard blocks. The reverse edge is expected
    to exist as its own row.
    """

    option_id: str
    incompatible_option_id: str
    severity: str = SEVERITY_ERROR
    message: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity == SEVERITY_ERROR

    def reversed(self) -> "Incompatibility":
        return Incompatibility(
            option_id=self.incompatible_option_id,
            incompatible_option_id=self.option_id,
            severity=self.severity,
            message=self.message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "optionId": self.option_id,
            "incompatibleOptionId": self.incompatible_option_id,
            "severity": self.severity,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], option_id: str = "") -> "Incompatibility":
        severity = str(_get(data, "severity", default=SEVERITY_ERROR)).lower()
        if severity not in SEVERITIES:
            logger.warning(f"Unknown severity '{severity}', treating as warning")
            severity = "warning"
        return cls(
            option_id=str(_get(data, "optionId", "option_id", default=option_id)),
            incompatible_option_id=str(
                _get(data, "incompatibleOptionId", "incompatible_option_id", default="")
            ),
            severity=severity,
            message=_get(data, "message"),
        )


@dataclass
class Option:
    """A single selectable choice within a category."""

    id: str
    category_id: str
    label: str
    description: Optional[str] = None
    price: Decimal = Decimal("0")
    sku: Optional[str] = None
    image_url: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    in_stock: bool = True
    order_index: int = 0
    incompatibilities: List[Incompatibility] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.price = to_decimal(self.price)

    @property
    def is_selectable(self) -> bool:
        return self.is_active and self.in_stock

    def error_incompatible_ids(self) -> Set[str]:
        """Ids this option is hard-blocked against (error severity only)."""
        return {
            edge.incompatible_option_id
            for edge in self.incompatibilities
            if edge.is_blocking
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "label": self.label,
            "description": self.description,
            "price": str(self.price),
            "sku": self.sku,
            "imageUrl": self.image_url,
            "isDefault": self.is_default,
            "isActive": self.is_active,
            "inStock": self.in_stock,
            "orderIndex": self.order_index,
            "incompatibleWith": [edge.to_dict() for edge in self.incompatibilities],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], category_id: str = "") -> "Option":
        option_id = str(_get(data, "id", default=""))
        edges = []
        for raw in _get(data, "incompatibleWith", "incompatibilities", default=[]):
            if isinstance(raw, dict):
                edges.append(Incompatibility.from_dict(raw, option_id=option_id))
            elif raw:
                # Bare id means a plain error edge
                edges.append(Incompatibility(option_id=option_id, incompatible_option_id=str(raw)))
        return cls(
            id=option_id,
            category_id=str(_get(data, "categoryId", "category_id", default=category_id)),
            label=str(_get(data, "label", default="")),
            description=_get(data, "description"),
            price=_get(data, "price", default="0"),
            sku=_get(data, "sku"),
            image_url=_get(data, "imageUrl", "image_url"),
            is_default=bool(_get(data, "isDefault", "is_default", default=False)),
            is_active=bool(_get(data, "isActive", "is_active", default=True)),
            in_stock=bool(_get(data, "inStock", "in_stock", default=True)),
            order_index=int(_get(data, "orderIndex", "order_index", default=0)),
            incompatibilities=edges,
        )


@dataclass
class Category:
    """A named configuration decision grouping its options in display order."""

    id: str
    name: str
    category_type: str = DEFAULT_CATEGORY_TYPE
    description: Optional[str] = None
    is_primary: bool = False
    is_required: bool = False
    order_index: int = 0
    attributes_template: List[AttributeDefinition] = field(default_factory=list)
    options: List[Option] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not is_valid_category_type(self.category_type):
            logger.warning(
                f"Unknown category type '{self.category_type}' for '{self.name}', "
                f"using '{DEFAULT_CATEGORY_TYPE}'"
            )
            self.category_type = DEFAULT_CATEGORY_TYPE

    @property
    def must_select(self) -> bool:
        return self.is_primary or self.is_required

    def find_option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def selectable_options(self) -> List[Option]:
        return [o for o in self.options if o.is_selectable]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "categoryType": self.category_type,
            "description": self.description,
            "isPrimary": self.is_primary,
            "isRequired": self.is_required,
            "orderIndex": self.order_index,
            "attributesTemplate": [a.to_dict() for a in self.attributes_template],
            "options": [o.to_dict() for o in self.options],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        category_id = str(_get(data, "id", default=""))
        return cls(
            id=category_id,
            name=str(_get(data, "name", default="")),
            category_type=str(
                _get(data, "categoryType", "category_type", "type", default=DEFAULT_CATEGORY_TYPE)
            ).lower(),
            description=_get(data, "description"),
            is_primary=bool(_get(data, "isPrimary", "is_primary", default=False)),
            is_required=bool(_get(data, "isRequired", "is_required", default=False)),
            order_index=int(_get(data, "orderIndex", "order_index", default=0)),
            attributes_template=[
                AttributeDefinition.from_dict(a)
                for a in _get(data, "attributesTemplate", "attributes_template", default=[])
            ],
            options=[
                Option.from_dict(o, category_id=category_id)
                for o in _get(data, "options", default=[])
            ],
        )


class Catalog:
    """Read-only snapshot of one configurator's categories and options.

    Categories are kept in ``order_index`` order (stable for ties). Options
    are indexed by id so incompatibility lookups never walk the tree.
    """

    def __init__(self, configurator_id: str, categories: Iterable[Category]):
        self.configurator_id = configurator_id
        self.categories: List[Category] = sorted(categories, key=lambda c: c.order_index)
        self._categories_by_id: Dict[str, Category] = {c.id: c for c in self.categories}
        self._options_by_id: Dict[str, Option] = {
            o.id: o for c in self.categories for o in c.options
        }

        primaries = [c for c in self.categories if c.is_primary]
        if len(primaries) > 1:
            logger.warning(
                f"Configurator {configurator_id} has {len(primaries)} primary categories; "
                f"using '{primaries[0].name}'"
            )

    def category(self, category_id: str) -> Optional[Category]:
        return self._categories_by_id.get(category_id)

    def option(self, option_id: str) -> Optional[Option]:
        return self._options_by_id.get(option_id)

    def primary_category(self) -> Optional[Category]:
        for category in self.categories:
            if category.is_primary:
                return category
        return None

    def incompatibility_index(self) -> Dict[str, Set[str]]:
        """Adjacency sets of error-severity edges keyed by option id."""
        index: Dict[str, Set[str]] = {}
        for option in self._options_by_id.values():
            blocked = option.error_incompatible_ids()
            if blocked:
                index[option.id] = blocked
        return index

    def option_count(self) -> int:
        return len(self._options_by_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configuratorId": self.configurator_id,
            "categories": [c.to_dict() for c in self.categories],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Catalog":
        return cls(
            configurator_id=str(_get(data, "configuratorId", "configurator_id", "id", default="")),
            categories=[Category.from_dict(c) for c in _get(data, "categories", default=[])],
        )
