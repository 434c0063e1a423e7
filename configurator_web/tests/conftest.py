"""Shared test fixtures for the web test suite."""

import pytest

from configurator.db import add_incompatibility, create_category, create_configurator, create_option
from configurator_web.app import create_app


@pytest.fixture
def app(tmp_path):
    """Flask app backed by temporary catalog and error databases."""
    app = create_app({
        "TESTING": True,
        "DB_PATH": str(tmp_path / "configurator.db"),
        "ERROR_LOG_DB_PATH": str(tmp_path / "errors.db"),
    })
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def db_path(app):
    return app.config["DB_PATH"]


@pytest.fixture
def seeded(db_path):
    """A configurator with a primary frame, a required fork and one conflict.

    Returns a dict of ids: configurator, frame, fork, steel, alu, carbon_fork,
    steel_fork.
    """
    configurator = create_configurator(db_path, "Road bike", client_id="acme")
    frame = create_category(db_path, configurator["id"], "Frame", is_primary=True)
    fork = create_category(db_path, configurator["id"], "Fork", is_required=True)
    steel = create_option(db_path, frame["id"], "Steel", price="450")
    alu = create_option(db_path, frame["id"], "Aluminium", price="300")
    carbon_fork = create_option(db_path, fork["id"], "Carbon fork", price="250", is_default=True)
    steel_fork = create_option(db_path, fork["id"], "Steel fork", price="80")
    add_incompatibility(db_path, steel["id"], carbon_fork["id"])
    return {
        "configurator": configurator["id"],
        "frame": frame["id"],
        "fork": fork["id"],
        "steel": steel["id"],
        "alu": alu["id"],
        "carbon_fork": carbon_fork["id"],
        "steel_fork": steel_fork["id"],
    }
