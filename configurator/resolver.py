"""Incompatibility resolution between a candidate option and a selection.

Everything here is a pure predicate over the catalog and the current
selected config. Only error-severity edges block; warning edges are
advisory and are ignored.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from configurator.models import Category, Option

__all__ = [
    "is_option_blocked",
    "blocking_selections",
    "blocked_option_ids",
    "find_asymmetric_edges",
]

logger = logging.getLogger(__name__)


def _selected_option(category: Category, selected_config: Mapping[str, str]) -> Tuple[str, Optional[Option]]:
    """Return (selected id, resolved option) for a category slot."""
    selected_id = selected_config.get(category.id) or ""
    if not selected_id:
        return "", None
    return selected_id, category.find_option(selected_id)


def _conflicts(candidate: Option, selected_id: str, selected: Optional[Option]) -> bool:
    # Forward: the selected option lists the candidate
    if selected is not None and candidate.id in selected.error_incompatible_ids():
        return True
    # Reverse: tolerate one-directional data
    return selected_id in candidate.error_incompatible_ids()


def blocking_selections(
    option: Option,
    selected_config: Mapping[str, str],
    categories: Sequence[Category],
) -> List[str]:
    """List the category ids whose current selection blocks ``option``.

    The option's own category is never considered: picking another option
    there replaces the selection instead of conflicting with it.
    """
    blockers = []
    for category in categories:
        if category.id == option.category_id:
            continue
        selected_id, selected = _selected_option(category, selected_config)
        if not selected_id:
            continue
        if _conflicts(option, selected_id, selected):
            blockers.append(category.id)
    return blockers


def is_option_blocked(
    option: Option,
    selected_config: Mapping[str, str],
    categories: Sequence[Category],
) -> bool:
    """Check whether a candidate option conflicts with the current selection.

    Args:
        option: Candidate option.
        selected_config: Mapping of category id -> selected option id.
        categories: All categories of the configurator.

    Returns:
        True if any selected option in another category has an
        error-severity incompatibility with the candidate, in either
        direction.
    """
    return bool(blocking_selections(option, selected_config, categories))


def blocked_option_ids(
    selected_config: Mapping[str, str],
    categories: Sequence[Category],
) -> Set[str]:
    """Collect every option currently blocked by the selection (UI greying)."""
    blocked = set()
    for category in categories:
        for option in category.options:
            if is_option_blocked(option, selected_config, categories):
                blocked.add(option.id)
    return blocked


def find_asymmetric_edges(categories: Sequence[Category]) -> List[Tuple[str, str]]:
    """Find error edges A->B that lack the reverse B->A row.

    A non-empty result is a data integrity bug: every creation path is
    expected to write both directions.
    """
    index: Dict[str, Set[str]] = {}
    for category in categories:
        for option in category.options:
            index[option.id] = option.error_incompatible_ids()

    missing = []
    for option_id, targets in index.items():
        for target in sorted(targets):
            if option_id not in index.get(target, set()):
                missing.append((option_id, target))

    if missing:
        logger.warning(f"Found {len(missing)} one-directional incompatibility edges")
    return missing
