"""Selection state machine for a configuration session.

The state is the pair (selected_config, selected_quantities): one slot per
category holding an option id ("" or absent means no selection) and an
independent quantity per category. Two entry points mutate it:

1. ``run_auto_selection`` fills empty slots of primary/required categories.
2. ``select_option`` applies a user pick and evicts directly conflicting
   picks in other categories (one hop only, no chain reactions).

Unknown category or option ids are deliberate no-ops: the calling layer is
expected to only present valid ids.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from configurator.config import DEFAULT_QUANTITY
from configurator.models import Catalog, Category, Option
from configurator.pricing import LineItem, build_price_breakdown, calculate_total, format_total
from configurator.resolver import blocked_option_ids, blocking_selections, is_option_blocked

__all__ = [
    "SelectionResult",
    "pick_auto_option",
    "run_auto_selection",
    "select_option",
    "set_quantity",
    "ConfigurationSession",
]

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Outcome of a user option pick."""

    selected_config: Dict[str, str]
    cleared_category_ids: List[str] = field(default_factory=list)
    selected_option: Optional[Option] = None
    changed: bool = False

    @property
    def message(self) -> Optional[str]:
        """Notification text when the pick evicted other selections."""
        if not self.cleared_category_ids or self.selected_option is None:
            return None
        return (
            "Some options were automatically deselected because they're "
            f'incompatible with "{self.selected_option.label}".'
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selectedConfig": dict(self.selected_config),
            "clearedCategoryIds": list(self.cleared_category_ids),
            "changed": self.changed,
            "message": self.message,
        }


def _find_category(categories: Sequence[Category], category_id: str) -> Optional[Category]:
    for category in categories:
        if category.id == category_id:
            return category
    return None


def pick_auto_option(category: Category) -> Optional[Option]:
    """Choose the option to auto-select for a mandatory category.

    Priority:
    1. The option flagged ``is_default``.
    2. The strictly lowest-priced option (first encountered wins ties).
    3. The first option in category order.

    Only selectable (active, in stock) options are considered unless none
    is selectable, in which case every option is.
    """
    candidates = category.selectable_options() or category.options
    if not candidates:
        return None

    for option in candidates:
        if option.is_default:
            return option

    # min() keeps the first of equal keys, so ties fall back to category order
    return min(candidates, key=lambda o: o.price)


def run_auto_selection(
    categories: Sequence[Category],
    selected_config: Mapping[str, str],
) -> Dict[str, str]:
    """Fill empty slots of primary/required categories.

    Never overrides an existing choice, so running it again over its own
    output changes nothing.

    Args:
        categories: All categories of the configurator.
        selected_config: Current selection (not mutated).

    Returns:
        New selected config.
    """
    config = dict(selected_config)
    filled: List[Option] = []
    for category in categories:
        if not category.must_select or not category.options:
            continue
        if config.get(category.id):
            continue

        option = pick_auto_option(category)
        if option is None:
            continue
        config[category.id] = option.id
        logger.debug(f"Auto-selected '{option.label}' for category '{category.name}'")
        filled.append(option)

    # Slots are filled without conflict checks; surface any resulting clash
    for option in filled:
        blockers = blocking_selections(option, config, categories)
        if blockers:
            logger.warning(
                f"Auto-selected option {option.id} conflicts with selections in categories {blockers}"
            )
    return config


def select_option(
    category_id: str,
    option_id: Optional[str],
    categories: Sequence[Category],
    selected_config: Mapping[str, str],
) -> SelectionResult:
    """Apply a user pick (or clear, with an empty option id).

    Guards:
    - Clearing a primary category that already has a selection is a no-op.
    - Unknown category ids and option ids are no-ops.

    When the new option has error-severity incompatibilities, every other
    category whose current selection is in that list is cleared. Clearing
    does not trigger a further cascade.
    """
    option_id = option_id or ""
    unchanged = SelectionResult(selected_config=dict(selected_config))

    category = _find_category(categories, category_id)
    if category is None:
        logger.debug(f"Ignoring selection for unknown category {category_id}")
        return unchanged

    if not option_id and category.is_primary and selected_config.get(category_id):
        logger.debug(f"Primary category '{category.name}' cannot be cleared")
        return unchanged

    option = None
    if option_id:
        option = category.find_option(option_id)
        if option is None:
            logger.debug(f"Ignoring unknown option {option_id} for category {category_id}")
            return unchanged

    config = dict(selected_config)
    config[category_id] = option_id
    result = SelectionResult(
        selected_config=config,
        selected_option=option,
        changed=(selected_config.get(category_id) or "") != option_id,
    )

    if option is None:
        return result

    incompatible_ids = option.error_incompatible_ids()
    if not incompatible_ids:
        return result

    for other_id, other_option_id in selected_config.items():
        if other_id == category_id or not other_option_id:
            continue
        if other_option_id in incompatible_ids:
            config[other_id] = ""
            result.cleared_category_ids.append(other_id)

    if result.cleared_category_ids:
        result.changed = True
        logger.info(
            f"Selecting '{option.label}' cleared {len(result.cleared_category_ids)} "
            f"incompatible selection(s)"
        )
    return result


def set_quantity(
    category_id: str,
    quantity: Any,
    selected_quantities: Mapping[str, int],
) -> Dict[str, int]:
    """Store a positive quantity for a category (values below 1 become 1)."""
    quantities = dict(selected_quantities)
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        value = DEFAULT_QUANTITY
    quantities[category_id] = value if value >= 1 else DEFAULT_QUANTITY
    return quantities


class ConfigurationSession:
    """In-memory state of one end user's configuration session.

    Wraps the pure functions above around a loaded catalog. Auto-selection
    runs when the session starts and whenever ``refresh`` swaps the catalog;
    it does not run after individual picks.
    """

    def __init__(
        self,
        catalog: Catalog,
        selected_config: Optional[Mapping[str, str]] = None,
        selected_quantities: Optional[Mapping[str, int]] = None,
    ):
        self.catalog = catalog
        self.selected_config: Dict[str, str] = dict(selected_config or {})
        self.selected_quantities: Dict[str, int] = dict(selected_quantities or {})
        self.selected_config = run_auto_selection(self.catalog.categories, self.selected_config)

    @property
    def categories(self) -> List[Category]:
        return self.catalog.categories

    def refresh(self, catalog: Catalog) -> None:
        """Swap in a reloaded catalog and re-apply auto-selection."""
        self.catalog = catalog
        self.selected_config = run_auto_selection(self.categories, self.selected_config)

    def select(self, category_id: str, option_id: Optional[str]) -> SelectionResult:
        result = select_option(category_id, option_id, self.categories, self.selected_config)
        self.selected_config = result.selected_config
        return result

    def clear(self, category_id: str) -> SelectionResult:
        return self.select(category_id, "")

    def set_quantity(self, category_id: str, quantity: Any) -> None:
        self.selected_quantities = set_quantity(category_id, quantity, self.selected_quantities)

    def is_blocked(self, option_id: str) -> bool:
        option = self.catalog.option(option_id)
        if option is None:
            return False
        return is_option_blocked(option, self.selected_config, self.categories)

    def blocked_option_ids(self) -> Set[str]:
        return blocked_option_ids(self.selected_config, self.categories)

    def total(self) -> Decimal:
        return calculate_total(self.selected_config, self.selected_quantities, self.categories)

    def breakdown(self) -> List[LineItem]:
        return build_price_breakdown(self.selected_config, self.selected_quantities, self.categories)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configuratorId": self.catalog.configurator_id,
            "selectedConfig": dict(self.selected_config),
            "selectedQuantities": dict(self.selected_quantities),
            "blockedOptionIds": sorted(self.blocked_option_ids()),
            "lineItems": [item.to_dict() for item in self.breakdown()],
            "total": format_total(self.total()),
        }
