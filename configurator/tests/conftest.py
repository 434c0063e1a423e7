"""Shared test fixtures for the configurator engine test suite."""

from decimal import Decimal

import pytest

from configurator.db import create_configurator, init_db
from configurator.models import Catalog, Category, Incompatibility, Option


def _option(option_id, category_id, price, edges=(), **kwargs):
    """Build an option with (target_id, severity) edges."""
    return Option(
        id=option_id,
        category_id=category_id,
        label=option_id.replace("-", " ").title(),
        price=Decimal(str(price)),
        incompatibilities=[Incompatibility(option_id, target, severity) for target, severity in edges],
        **kwargs,
    )


@pytest.fixture
def bike_catalog():
    """A small bike catalog with symmetric error edges and one warning edge.

    frame (primary):  frame-steel 450, frame-alu 300, frame-carbon 900
    fork (required):  fork-steel 80, fork-carbon 250 (default)
    wheels:           wheels-basic 100, wheels-aero 600
    color:            color-red 0, color-matte 50

    Error edges: frame-steel <-> fork-carbon, frame-steel <-> wheels-aero
    Warning edge: color-matte <-> wheels-basic
    """
    frame = Category(
        id="frame",
        name="Frame",
        is_primary=True,
        order_index=0,
        options=[
            _option("frame-steel", "frame", 450, [("fork-carbon", "error"), ("wheels-aero", "error")]),
            _option("frame-alu", "frame", 300),
            _option("frame-carbon", "frame", 900),
        ],
    )
    fork = Category(
        id="fork",
        name="Fork",
        is_required=True,
        order_index=1,
        options=[
            _option("fork-steel", "fork", 80),
            _option("fork-carbon", "fork", 250, [("frame-steel", "error")], is_default=True),
        ],
    )
    wheels = Category(
        id="wheels",
        name="Wheels",
        order_index=2,
        options=[
            _option("wheels-basic", "wheels", 100, [("color-matte", "warning")]),
            _option("wheels-aero", "wheels", 600, [("frame-steel", "error")]),
        ],
    )
    color = Category(
        id="color",
        name="Color",
        category_type="color",
        order_index=3,
        options=[
            _option("color-red", "color", 0),
            _option("color-matte", "color", 50, [("wheels-basic", "warning")]),
        ],
    )
    return Catalog("bike", [frame, fork, wheels, color])


@pytest.fixture
def make_option():
    """Factory for ad-hoc options: make_option(id, category_id, price, edges)."""
    return _option


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database with the full schema."""
    db_path = str(tmp_path / "configurator.db")
    init_db(db_path)
    return db_path


@pytest.fixture
def configurator(temp_db):
    """A configurator owned by client 'acme' in the temporary database."""
    return create_configurator(temp_db, "Road bike", client_id="acme")


@pytest.fixture
def import_payload(configurator):
    """Bulk import payload using every accepted input shape."""
    return {
        "configuratorId": configurator["id"],
        "items": [
            {
                "category": "Frame",
                "options": [
                    {"tempId": "f-steel", "label": "Steel", "price": 450, "sku": "FR-ST",
                     "incompatibleWith": ["k-carbon"]},
                    {"id": "f-alu", "option": "Aluminium", "price": "300.50"},
                ],
            },
            {
                "category": "Fork",
                "options": [
                    {"tempId": "k-carbon", "label": "Carbon fork", "price": "250",
                     "incompatibleWith": "f-steel, FR-ST"},
                    {"tempId": "k-steel", "label": "Steel fork", "price": None,
                     "incompatibleWith": ["missing-ref"]},
                ],
            },
        ],
    }
