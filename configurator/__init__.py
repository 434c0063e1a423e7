"""Product configurator engine package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from configurator.config import CATEGORY_TYPES, DB_PATH, SEVERITY_ERROR, SEVERITY_WARNING
from configurator.db import init_db, load_catalog
from configurator.errors import ConfiguratorError
from configurator.importer import ImportResult, normalize_and_link_import
from configurator.models import Catalog, Category, Incompatibility, Option
from configurator.pricing import calculate_total
from configurator.resolver import is_option_blocked
from configurator.selection import ConfigurationSession, run_auto_selection, select_option

__all__ = [
    # Version
    "__version__",
    # Config
    "CATEGORY_TYPES",
    "DB_PATH",
    "SEVERITY_ERROR",
    "SEVERITY_WARNING",
    # Models
    "Catalog",
    "Category",
    "Option",
    "Incompatibility",
    "ImportResult",
    "ConfiguratorError",
    # Core functions
    "is_option_blocked",
    "run_auto_selection",
    "select_option",
    "calculate_total",
    "normalize_and_link_import",
    "init_db",
    "load_catalog",
    "ConfigurationSession",
]
