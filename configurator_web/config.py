"""Centralized configuration for the configurator web app."""

import os
from pathlib import Path

from configurator.config import DB_PATH as CORE_DB_PATH

# Determine project root (parent of 'configurator_web' directory)
_THIS_DIR = Path(__file__).parent
_PROJECT_ROOT = _THIS_DIR.parent

# Flask app settings (allow env overrides; default debug off for safety)
# Hosting platforms set PORT dynamically; fall back to FLASK_PORT or 5000 for local.
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "5000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Catalog store shared with the CLI
DB_PATH = CORE_DB_PATH

# Errors are kept apart from catalog data so they survive catalog resets
ERROR_LOG_DB_PATH = os.getenv("ERROR_LOG_DB_PATH", str(_PROJECT_ROOT / "data" / "errors.db"))

# Upload limit for CSV imports
MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(5 * 1024 * 1024)))
