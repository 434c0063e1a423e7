"""SQLite database schema and helpers for configurator catalogs.

Path-level helpers (taking ``db_path``) open and commit their own
connection. Connection-level helpers (taking ``conn``) are the building
blocks of multi-step operations run inside ``transaction()``.
"""

import json
import logging
import secrets
import sqlite3
import string
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Tuple

from configurator.config import DB_PATH, DEFAULT_CATEGORY_TYPE, SEVERITIES, SEVERITY_ERROR
from configurator.errors import NotFoundError
from configurator.models import (
    AttributeDefinition,
    Catalog,
    Category,
    Incompatibility,
    Option,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "get_connection",
    "transaction",
    "init_db",
    "generate_id",
    "create_configurator",
    "get_configurator",
    "fetch_configurator",
    "create_category",
    "insert_category",
    "find_category_by_name",
    "delete_category",
    "create_option",
    "insert_option",
    "delete_option",
    "add_incompatibility",
    "remove_incompatibility",
    "insert_incompatibility_rows",
    "load_catalog",
    "insert_quote",
    "get_quote_by_code",
    "count_categories",
    "count_options",
    "count_incompatibilities",
]

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = DB_PATH

_ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


@contextmanager
def get_connection(db_path: str = DEFAULT_DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    # Ensure directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(db_path: str = DEFAULT_DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Run a block as one all-or-nothing unit: commit on success, rollback on error."""
    with get_connection(db_path) as conn:
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS configurators (
                id TEXT PRIMARY KEY,
                client_id TEXT,
                name TEXT NOT NULL,
                public_id TEXT UNIQUE NOT NULL,
                currency TEXT DEFAULT 'USD',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                configurator_id TEXT NOT NULL,
                name TEXT NOT NULL,
                category_type TEXT DEFAULT 'generic',
                description TEXT,
                is_primary INTEGER DEFAULT 0,
                is_required INTEGER DEFAULT 0,
                order_index INTEGER DEFAULT 0,
                attributes_template TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (configurator_id) REFERENCES configurators(id) ON DELETE CASCADE
            )
        """)

        # Prices are stored as TEXT to keep exact decimal values
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS options (
                id TEXT PRIMARY KEY,
                category_id TEXT NOT NULL,
                label TEXT NOT NULL,
                description TEXT,
                price TEXT NOT NULL DEFAULT '0',
                sku TEXT,
                image_url TEXT,
                is_default INTEGER DEFAULT 0,
                is_active INTEGER DEFAULT 1,
                in_stock INTEGER DEFAULT 1,
                order_index INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS option_incompatibilities (
                option_id TEXT NOT NULL,
                incompatible_option_id TEXT NOT NULL,
                severity TEXT NOT NULL DEFAULT 'error',
                message TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (option_id, incompatible_option_id),
                FOREIGN KEY (option_id) REFERENCES options(id) ON DELETE CASCADE,
                FOREIGN KEY (incompatible_option_id) REFERENCES options(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS quotes (
                id TEXT PRIMARY KEY,
                quote_code TEXT UNIQUE NOT NULL,
                configurator_id TEXT,
                customer_email TEXT NOT NULL,
                customer_name TEXT,
                customer_phone TEXT,
                selected_options TEXT,
                quantities TEXT,
                total_price TEXT NOT NULL,
                status TEXT DEFAULT 'PENDING',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (configurator_id) REFERENCES configurators(id) ON DELETE SET NULL
            )
        """)

        # Indexes for common queries
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_categories_configurator ON categories(configurator_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_categories_name ON categories(configurator_id, name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_options_category ON options(category_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_options_sku ON options(sku)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_incompat_target ON option_incompatibilities(incompatible_option_id)"
        )

        conn.commit()


def generate_id(length: int = 12) -> str:
    """Generate an opaque alphanumeric identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


# =============================================================================
# Configurators
# =============================================================================

def create_configurator(
    db_path: str,
    name: str,
    client_id: Optional[str] = None,
    currency: str = "USD",
) -> Dict[str, Any]:
    """Create a configurator, returning its row as a dict."""
    configurator_id = generate_id()
    public_id = generate_id(16)
    with get_connection(db_path) as conn:
        conn.execute(
            "INSERT INTO configurators (id, client_id, name, public_id, currency) VALUES (?, ?, ?, ?, ?)",
            (configurator_id, client_id, name, public_id, currency),
        )
        conn.commit()
    logger.info(f"Created configurator '{name}' ({configurator_id})")
    return get_configurator(db_path, configurator_id)


def fetch_configurator(conn: sqlite3.Connection, configurator_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM configurators WHERE id = ?", (configurator_id,)).fetchone()
    return dict(row) if row else None


def get_configurator(db_path: str, configurator_id: str) -> Dict[str, Any]:
    """Get a configurator by id.

    Raises:
        NotFoundError: If no configurator has this id.
    """
    with get_connection(db_path) as conn:
        configurator = fetch_configurator(conn, configurator_id)
    if configurator is None:
        raise NotFoundError("Configurator", configurator_id)
    return configurator


# =============================================================================
# Categories
# =============================================================================

def insert_category(
    conn: sqlite3.Connection,
    configurator_id: str,
    name: str,
    category_type: str = DEFAULT_CATEGORY_TYPE,
    description: Optional[str] = None,
    is_primary: bool = False,
    is_required: bool = False,
    order_index: Optional[int] = None,
    attributes_template: Optional[List[AttributeDefinition]] = None,
) -> Dict[str, Any]:
    """Insert a category row (no commit), returning ``{"id", "name"}``.

    New categories are appended after the existing ones unless an explicit
    order index is given.
    """
    if order_index is None:
        row = conn.execute(
            "SELECT COALESCE(MAX(order_index) + 1, 0) AS next_index FROM categories WHERE configurator_id = ?",
            (configurator_id,),
        ).fetchone()
        order_index = row["next_index"]

    template_json = (
        json.dumps([a.to_dict() for a in attributes_template], ensure_ascii=False)
        if attributes_template
        else None
    )
    category_id = generate_id()
    conn.execute(
        """
        INSERT INTO categories (id, configurator_id, name, category_type, description,
                                is_primary, is_required, order_index, attributes_template)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (category_id, configurator_id, name, category_type, description,
         int(is_primary), int(is_required), order_index, template_json),
    )
    return {"id": category_id, "name": name}


def create_category(db_path: str, configurator_id: str, name: str, **kwargs: Any) -> Dict[str, Any]:
    """Create a category and commit. See ``insert_category`` for keyword arguments."""
    with transaction(db_path) as conn:
        return insert_category(conn, configurator_id, name, **kwargs)


def find_category_by_name(conn: sqlite3.Connection, configurator_id: str, name: str) -> Optional[Dict[str, Any]]:
    """Find a category by exact (case-sensitive) name within a configurator."""
    row = conn.execute(
        "SELECT id, name FROM categories WHERE configurator_id = ? AND name = ? ORDER BY order_index LIMIT 1",
        (configurator_id, name),
    ).fetchone()
    return dict(row) if row else None


def delete_category(db_path: str, category_id: str) -> None:
    """Delete a category; its options and their incompatibilities cascade."""
    with transaction(db_path) as conn:
        conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))


# =============================================================================
# Options
# =============================================================================

def insert_option(
    conn: sqlite3.Connection,
    category_id: str,
    label: str,
    price: Any = "0",
    description: Optional[str] = None,
    sku: Optional[str] = None,
    image_url: Optional[str] = None,
    is_default: bool = False,
    is_active: bool = True,
    in_stock: bool = True,
    order_index: int = 0,
) -> Dict[str, Any]:
    """Insert an option row (no commit), returning ``{"id", "label", "sku"}``."""
    option_id = generate_id()
    conn.execute(
        """
        INSERT INTO options (id, category_id, label, description, price, sku, image_url,
                             is_default, is_active, in_stock, order_index)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (option_id, category_id, label, description, str(price), sku, image_url,
         int(is_default), int(is_active), int(in_stock), order_index),
    )
    return {"id": option_id, "label": label, "sku": sku}


def create_option(db_path: str, category_id: str, label: str, **kwargs: Any) -> Dict[str, Any]:
    """Create an option and commit. See ``insert_option`` for keyword arguments."""
    with transaction(db_path) as conn:
        return insert_option(conn, category_id, label, **kwargs)


def delete_option(db_path: str, option_id: str) -> None:
    """Delete an option; incompatibility rows in both directions cascade."""
    with transaction(db_path) as conn:
        conn.execute("DELETE FROM options WHERE id = ?", (option_id,))


# =============================================================================
# Incompatibilities
# =============================================================================

def insert_incompatibility_rows(conn: sqlite3.Connection, rows: Iterable[Incompatibility]) -> int:
    """Bulk insert directed rows, skipping ones that already exist.

    Returns:
        Number of rows actually inserted.
    """
    inserted = 0
    for row in rows:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO option_incompatibilities
                (option_id, incompatible_option_id, severity, message)
            VALUES (?, ?, ?, ?)
            """,
            (row.option_id, row.incompatible_option_id, row.severity, row.message),
        )
        inserted += cursor.rowcount
    return inserted


def add_incompatibility(
    db_path: str,
    option_id: str,
    incompatible_option_id: str,
    severity: str = SEVERITY_ERROR,
    message: Optional[str] = None,
) -> Tuple[Incompatibility, Incompatibility]:
    """Declare two options incompatible, writing both directed rows.

    Both options must belong to the same configurator.

    Raises:
        ValueError: If the ids are equal, the severity is unknown, or the
            options belong to different configurators.
        NotFoundError: If either option does not exist.
    """
    if option_id == incompatible_option_id:
        raise ValueError("An option cannot be incompatible with itself")
    if severity not in SEVERITIES:
        raise ValueError(f"Invalid severity: {severity}. Must be one of {sorted(SEVERITIES)}")

    forward = Incompatibility(option_id, incompatible_option_id, severity, message)
    backward = forward.reversed()

    with transaction(db_path) as conn:
        configurators = {}
        for oid in (option_id, incompatible_option_id):
            row = conn.execute(
                """
                SELECT c.configurator_id FROM options o
                JOIN categories c ON c.id = o.category_id
                WHERE o.id = ?
                """,
                (oid,),
            ).fetchone()
            if row is None:
                raise NotFoundError("Option", oid)
            configurators[oid] = row["configurator_id"]

        if configurators[option_id] != configurators[incompatible_option_id]:
            raise ValueError("Options belong to different configurators")

        # Upsert both directions so a re-declaration can change severity
        for edge in (forward, backward):
            conn.execute(
                """
                INSERT INTO option_incompatibilities (option_id, incompatible_option_id, severity, message)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(option_id, incompatible_option_id) DO UPDATE SET
                    severity = excluded.severity,
                    message = excluded.message
                """,
                (edge.option_id, edge.incompatible_option_id, edge.severity, edge.message),
            )

    return forward, backward


def remove_incompatibility(db_path: str, option_id: str, incompatible_option_id: str) -> int:
    """Remove an incompatibility in both directions, returning rows deleted."""
    with transaction(db_path) as conn:
        cursor = conn.execute(
            """
            DELETE FROM option_incompatibilities
            WHERE (option_id = ? AND incompatible_option_id = ?)
               OR (option_id = ? AND incompatible_option_id = ?)
            """,
            (option_id, incompatible_option_id, incompatible_option_id, option_id),
        )
        return cursor.rowcount


# =============================================================================
# Catalog Loading
# =============================================================================

def _parse_template(raw: Optional[str]) -> List[AttributeDefinition]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed attributes_template JSON")
        return []
    return [AttributeDefinition.from_dict(item) for item in data if isinstance(item, dict)]


def load_catalog(db_path: str, configurator_id: str) -> Catalog:
    """Load a configurator's categories, options and incompatibilities.

    Raises:
        NotFoundError: If the configurator does not exist.
    """
    with get_connection(db_path) as conn:
        if fetch_configurator(conn, configurator_id) is None:
            raise NotFoundError("Configurator", configurator_id)

        category_rows = conn.execute(
            "SELECT * FROM categories WHERE configurator_id = ? ORDER BY order_index, rowid",
            (configurator_id,),
        ).fetchall()

        option_rows = conn.execute(
            """
            SELECT o.* FROM options o
            JOIN categories c ON c.id = o.category_id
            WHERE c.configurator_id = ?
            ORDER BY o.order_index, o.rowid
            """,
            (configurator_id,),
        ).fetchall()

        edge_rows = conn.execute(
            """
            SELECT i.* FROM option_incompatibilities i
            JOIN options o ON o.id = i.option_id
            JOIN categories c ON c.id = o.category_id
            WHERE c.configurator_id = ?
            """,
            (configurator_id,),
        ).fetchall()

    edges: Dict[str, List[Incompatibility]] = {}
    for row in edge_rows:
        edges.setdefault(row["option_id"], []).append(
            Incompatibility(
                option_id=row["option_id"],
                incompatible_option_id=row["incompatible_option_id"],
                severity=row["severity"],
                message=row["message"],
            )
        )

    options: Dict[str, List[Option]] = {}
    for row in option_rows:
        options.setdefault(row["category_id"], []).append(
            Option(
                id=row["id"],
                category_id=row["category_id"],
                label=row["label"],
                description=row["description"],
                price=row["price"],
                sku=row["sku"],
                image_url=row["image_url"],
                is_default=bool(row["is_default"]),
                is_active=bool(row["is_active"]),
                in_stock=bool(row["in_stock"]),
                order_index=row["order_index"],
                incompatibilities=edges.get(row["id"], []),
            )
        )

    categories = [
        Category(
            id=row["id"],
            name=row["name"],
            category_type=row["category_type"] or DEFAULT_CATEGORY_TYPE,
            description=row["description"],
            is_primary=bool(row["is_primary"]),
            is_required=bool(row["is_required"]),
            order_index=row["order_index"],
            attributes_template=_parse_template(row["attributes_template"]),
            options=options.get(row["id"], []),
        )
        for row in category_rows
    ]
    return Catalog(configurator_id, categories)


# =============================================================================
# Quotes
# =============================================================================

def insert_quote(db_path: str, quote: Dict[str, Any]) -> None:
    """Persist a quote record built by ``configurator.quotes``."""
    with transaction(db_path) as conn:
        conn.execute(
            """
            INSERT INTO quotes (id, quote_code, configurator_id, customer_email, customer_name,
                                customer_phone, selected_options, quantities, total_price, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                quote["id"],
                quote["quote_code"],
                quote["configurator_id"],
                quote["customer_email"],
                quote.get("customer_name"),
                quote.get("customer_phone"),
                json.dumps(quote.get("selected_options") or [], ensure_ascii=False),
                json.dumps(quote.get("quantities") or {}, ensure_ascii=False),
                quote["total_price"],
                quote["status"],
            ),
        )


def get_quote_by_code(db_path: str, quote_code: str) -> Optional[Dict[str, Any]]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM quotes WHERE quote_code = ?", (quote_code,)).fetchone()
    if not row:
        return None
    quote = dict(row)
    quote["selected_options"] = json.loads(quote["selected_options"] or "[]")
    quote["quantities"] = json.loads(quote["quantities"] or "{}")
    return quote


# =============================================================================
# Stats
# =============================================================================

def count_categories(db_path: str, configurator_id: Optional[str] = None) -> int:
    with get_connection(db_path) as conn:
        if configurator_id:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM categories WHERE configurator_id = ?", (configurator_id,)
            ).fetchone()
        else:
            row = conn.execute("SELECT COUNT(*) AS count FROM categories").fetchone()
        return row["count"]


def count_options(db_path: str, configurator_id: Optional[str] = None) -> int:
    with get_connection(db_path) as conn:
        if configurator_id:
            row = conn.execute(
                """
                SELECT COUNT(*) AS count FROM options o
                JOIN categories c ON c.id = o.category_id
                WHERE c.configurator_id = ?
                """,
                (configurator_id,),
            ).fetchone()
        else:
            row = conn.execute("SELECT COUNT(*) AS count FROM options").fetchone()
        return row["count"]


def count_incompatibilities(db_path: str) -> int:
    with get_connection(db_path) as conn:
        return conn.execute("SELECT COUNT(*) AS count FROM option_incompatibilities").fetchone()["count"]
