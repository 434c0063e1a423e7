"""API endpoints for configuration sessions, catalog admin and imports.

Session endpoints are stateless: the client sends its current selection
with every call and gets the next state back.

1. /session  - start a session (auto-selection of mandatory categories)
2. /select   - apply a pick, evicting directly conflicting picks
3. /total    - price a selection

Admin endpoints write to the catalog: bulk import (JSON or CSV) and
bidirectional incompatibility edits. Quotes freeze a priced selection.
"""

import logging
import sqlite3
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from flask import Blueprint, Response, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from configurator.config import SEVERITY_ERROR
from configurator.csv_utils import load_import_csv
from configurator.db import add_incompatibility, load_catalog, remove_incompatibility
from configurator.errors import ConfiguratorError, ImportValidationError, StorageError, ValidationError
from configurator.importer import normalize_and_link_import
from configurator.pricing import build_price_breakdown, calculate_total, format_total
from configurator.quotes import create_quote, get_quote
from configurator.resolver import blocked_option_ids
from configurator.selection import ConfigurationSession, select_option

from .error_logging import log_database_error, log_unexpected_error, log_validation_error

__all__ = ["api"]

logger = logging.getLogger(__name__)

ApiResponse = Union[Tuple[Response, int], Response]

# Create blueprint for API
api = Blueprint("api", __name__, url_prefix="/api")


def _db_path() -> str:
    return current_app.config["DB_PATH"]


def _request_id() -> str:
    if "request_id" not in g:
        g.request_id = str(uuid.uuid4())
    return g.request_id


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _success(data: Any, message: Optional[str] = None, status: int = 200) -> ApiResponse:
    return jsonify({"success": True, "data": data, "message": message}), status


def _fail(error: ConfiguratorError, operation: str) -> ApiResponse:
    """Record a rejected or failed operation and build the error response."""
    context = {"path": request.path}
    if isinstance(error, StorageError):
        log_database_error(error.message, _request_id(), error.code, operation, context)
    else:
        log_validation_error(error.message, _request_id(), error.code, operation, context)
    body = {"success": False, **error.to_dict()}
    return jsonify(body), error.status_code


def _selection_from(data: Mapping[str, Any]) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Extract (selectedConfig, selectedQuantities) from a request body."""
    raw_config = data.get("selectedConfig")
    raw_quantities = data.get("selectedQuantities")
    config = {}
    if isinstance(raw_config, dict):
        config = {str(k): str(v) if v is not None else "" for k, v in raw_config.items()}
    quantities = dict(raw_quantities) if isinstance(raw_quantities, dict) else {}
    return config, quantities


@api.errorhandler(Exception)
def handle_unexpected(error: Exception) -> ApiResponse:
    """Catch-all so clients always get the JSON error shape."""
    if isinstance(error, ConfiguratorError):
        return _fail(error, request.endpoint or "unknown")
    if isinstance(error, HTTPException):
        # Werkzeug HTTPException (404 route, 405 method, 413 upload size)
        return jsonify({"success": False, "error": error.description, "code": error.name}), error.code
    logger.exception(f"Unhandled error in {request.path}")
    log_unexpected_error(str(error), _request_id(), request.endpoint, {"path": request.path})
    return jsonify({"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# Configuration Sessions
# =============================================================================

@api.route("/health", methods=["GET"])
def health() -> Response:
    return jsonify({"status": "ok"})


@api.route("/configurators/<configurator_id>/catalog", methods=["GET"])
def get_catalog(configurator_id: str) -> ApiResponse:
    """Return categories, options and incompatibilities of a configurator."""
    catalog = load_catalog(_db_path(), configurator_id)
    return _success(catalog.to_dict())


@api.route("/configurators/<configurator_id>/session", methods=["POST"])
def start_session(configurator_id: str) -> ApiResponse:
    """Start (or resume) a session.

    Request JSON:
        {"selectedConfig": {...}, "selectedQuantities": {...}}  // both optional

    Mandatory categories without a selection are auto-filled. Existing
    choices are kept.
    """
    config, quantities = _selection_from(_json_body())
    session = ConfigurationSession(load_catalog(_db_path(), configurator_id), config, quantities)
    return _success(session.to_dict())


@api.route("/configurators/<configurator_id>/select", methods=["POST"])
def select(configurator_id: str) -> ApiResponse:
    """Apply one pick to the client's current selection.

    Request JSON:
        {
            "categoryId": "...",
            "optionId": "..." | "",   // empty clears the slot
            "selectedConfig": {...},
            "selectedQuantities": {...}
        }

    Response JSON data:
        {
            "selectedConfig": {...},
            "clearedCategoryIds": [...],
            "changed": true,
            "message": "Some options were automatically deselected ...",
            "blockedOptionIds": [...],
            "total": "123.00"
        }
    """
    data = _json_body()
    category_id = data.get("categoryId")
    if not isinstance(category_id, str) or not category_id:
        return _fail(ValidationError("categoryId is required"), "select")

    option_id = data.get("optionId") or ""
    config, quantities = _selection_from(data)
    catalog = load_catalog(_db_path(), configurator_id)

    result = select_option(category_id, str(option_id), catalog.categories, config)
    body = result.to_dict()
    body["blockedOptionIds"] = sorted(blocked_option_ids(result.selected_config, catalog.categories))
    body["total"] = format_total(calculate_total(result.selected_config, quantities, catalog.categories))
    return _success(body, result.message)


@api.route("/configurators/<configurator_id>/total", methods=["POST"])
def total(configurator_id: str) -> ApiResponse:
    """Price a selection: total plus one line item per selected category."""
    config, quantities = _selection_from(_json_body())
    catalog = load_catalog(_db_path(), configurator_id)
    line_items = build_price_breakdown(config, quantities, catalog.categories)
    amount = calculate_total(config, quantities, catalog.categories)
    return _success({
        "total": format_total(amount),
        "lineItems": [item.to_dict() for item in line_items],
    })


# =============================================================================
# Catalog Administration
# =============================================================================

@api.route("/options/incompatibilities", methods=["POST"])
def create_incompatibility() -> ApiResponse:
    """Declare two options incompatible (both directions are written).

    Request JSON:
        {"optionId", "incompatibleOptionId", "severity": "error"|"warning", "message"}
    """
    data = _json_body()
    option_id = data.get("optionId")
    other_id = data.get("incompatibleOptionId")
    if not option_id or not other_id:
        return _fail(
            ValidationError("optionId and incompatibleOptionId are required"),
            "create_incompatibility",
        )
    try:
        forward, backward = add_incompatibility(
            _db_path(),
            option_id,
            other_id,
            severity=data.get("severity") or SEVERITY_ERROR,
            message=data.get("message"),
        )
    except ValueError as e:
        return _fail(ValidationError(str(e)), "create_incompatibility")
    return _success([forward.to_dict(), backward.to_dict()], "Incompatibility created", 201)


@api.route("/options/incompatibilities", methods=["DELETE"])
def delete_incompatibility() -> ApiResponse:
    """Remove an incompatibility in both directions (JSON body or query args)."""
    data = _json_body() or request.args
    option_id = data.get("optionId")
    other_id = data.get("incompatibleOptionId")
    if not option_id or not other_id:
        return _fail(
            ValidationError("optionId and incompatibleOptionId are required"),
            "delete_incompatibility",
        )
    removed = remove_incompatibility(_db_path(), option_id, other_id)
    return _success({"removed": removed})


@api.route("/import/bulk-create", methods=["POST"])
def bulk_create() -> ApiResponse:
    """Bulk import categories, options and incompatibilities.

    Request JSON:
        {
            "configuratorId": "...",
            "clientId": "...",   // optional ownership check
            "items": [
                {
                    "category": "Frame",
                    "options": [
                        {"tempId": "f1", "label": "Steel", "price": 450,
                         "sku": "FR-ST", "incompatibleWith": ["fork-carbon"]}
                    ]
                }
            ]
        }
    """
    payload = _json_body()
    try:
        result = normalize_and_link_import(payload, db_path=_db_path(), client_id=payload.get("clientId"))
    except ConfiguratorError as e:
        return _fail(e, "bulk_create")
    except sqlite3.Error as e:
        return _fail(StorageError(f"Bulk import failed: {e}"), "bulk_create")
    return _success(result.to_dict(), "Bulk import completed")


@api.route("/import/csv", methods=["POST"])
def import_csv() -> ApiResponse:
    """Bulk import from an uploaded CSV (multipart field ``file``)."""
    configurator_id = request.form.get("configuratorId", "")
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return _fail(ImportValidationError("A CSV file is required"), "import_csv")
    try:
        items = load_import_csv(upload.stream)
        result = normalize_and_link_import(
            {"configuratorId": configurator_id, "items": items},
            db_path=_db_path(),
            client_id=request.form.get("clientId"),
        )
    except ConfiguratorError as e:
        return _fail(e, "import_csv")
    return _success(result.to_dict(), "Bulk import completed")


# =============================================================================
# Quotes
# =============================================================================

@api.route("/quotes", methods=["POST"])
def post_quote() -> ApiResponse:
    """Create a quote; the total is recomputed from the stored catalog.

    Request JSON:
        {"configuratorId", "customerEmail", "customerName", "customerPhone",
         "selectedConfig", "selectedQuantities"}
    """
    data = _json_body()
    config, quantities = _selection_from(data)
    try:
        quote = create_quote(
            configurator_id=str(data.get("configuratorId") or ""),
            customer_email=data.get("customerEmail"),
            selected_config=config,
            selected_quantities=quantities,
            customer_name=data.get("customerName"),
            customer_phone=data.get("customerPhone"),
            db_path=_db_path(),
        )
    except ConfiguratorError as e:
        return _fail(e, "create_quote")
    return _success(quote, "Quote created", 201)


@api.route("/quotes/<quote_code>", methods=["GET"])
def fetch_quote(quote_code: str) -> ApiResponse:
    return _success(get_quote(quote_code, db_path=_db_path()))
