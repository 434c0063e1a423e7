"""Tests for the selection state machine."""

import logging
from decimal import Decimal

from configurator.models import Catalog, Category
from configurator.selection import (
    ConfigurationSession,
    pick_auto_option,
    run_auto_selection,
    select_option,
    set_quantity,
)


class TestPickAutoOption:
    """Auto-selection priority rules."""

    def test_default_option_wins(self, bike_catalog):
        fork = bike_catalog.category("fork")
        assert pick_auto_option(fork).id == "fork-carbon"

    def test_cheapest_option_without_default(self, bike_catalog):
        frame = bike_catalog.category("frame")
        assert pick_auto_option(frame).id == "frame-alu"

    def test_price_tie_keeps_first_in_order(self, make_option):
        category = Category(id="c", name="C", options=[
            make_option("first", "c", 5),
            make_option("second", "c", 5),
            make_option("third", "c", 9),
        ])
        assert pick_auto_option(category).id == "first"

    def test_prefers_selectable_options(self, make_option):
        category = Category(id="c", name="C", options=[
            make_option("cheap-but-gone", "c", 1, in_stock=False),
            make_option("available", "c", 20),
        ])
        assert pick_auto_option(category).id == "available"

    def test_falls_back_to_all_options_when_none_selectable(self, make_option):
        category = Category(id="c", name="C", options=[
            make_option("a", "c", 7, is_active=False),
            make_option("b", "c", 3, is_active=False),
        ])
        assert pick_auto_option(category).id == "b"

    def test_empty_category(self):
        assert pick_auto_option(Category(id="c", name="C")) is None


class TestRunAutoSelection:
    """Auto-selection pass over all categories."""

    def test_fills_primary_and_required_only(self, bike_catalog):
        config = run_auto_selection(bike_catalog.categories, {})
        assert config == {"frame": "frame-alu", "fork": "fork-carbon"}

    def test_never_overrides_existing_choice(self, bike_catalog):
        config = run_auto_selection(bike_catalog.categories, {"frame": "frame-carbon"})
        assert config["frame"] == "frame-carbon"

    def test_is_idempotent(self, bike_catalog):
        once = run_auto_selection(bike_catalog.categories, {"wheels": "wheels-basic"})
        twice = run_auto_selection(bike_catalog.categories, once)
        assert once == twice

    def test_does_not_mutate_input(self, bike_catalog):
        original = {}
        run_auto_selection(bike_catalog.categories, original)
        assert original == {}

    def test_skips_mandatory_category_without_options(self):
        categories = [Category(id="c", name="Empty", is_required=True)]
        assert run_auto_selection(categories, {}) == {}

    def test_conflicting_defaults_are_kept_and_reported(self, make_option, caplog):
        categories = [
            Category(id="X", name="X", is_primary=True, order_index=0, options=[
                make_option("x1", "X", 10, [("y1", "error")], is_default=True),
            ]),
            Category(id="Y", name="Y", is_required=True, order_index=1, options=[
                make_option("y1", "Y", 20, [("x1", "error")]),
            ]),
        ]
        with caplog.at_level(logging.WARNING, logger="configurator.selection"):
            config = run_auto_selection(categories, {})
        assert config == {"X": "x1", "Y": "y1"}
        assert any("conflicts" in r.getMessage() for r in caplog.records)

    def test_compatible_defaults_log_no_warning(self, bike_catalog, caplog):
        with caplog.at_level(logging.WARNING, logger="configurator.selection"):
            run_auto_selection(bike_catalog.categories, {})
        assert not caplog.records


class TestSelectOption:
    """User picks and cascading deselection."""

    def test_simple_pick(self, bike_catalog):
        result = select_option("wheels", "wheels-basic", bike_catalog.categories, {})
        assert result.selected_config == {"wheels": "wheels-basic"}
        assert result.changed
        assert result.cleared_category_ids == []
        assert result.message is None

    def test_primary_selection_cannot_be_cleared(self, bike_catalog):
        result = select_option("frame", "", bike_catalog.categories, {"frame": "frame-alu"})
        assert result.selected_config == {"frame": "frame-alu"}
        assert not result.changed

    def test_primary_selection_can_be_replaced(self, bike_catalog):
        result = select_option("frame", "frame-carbon", bike_catalog.categories, {"frame": "frame-alu"})
        assert result.selected_config["frame"] == "frame-carbon"

    def test_non_primary_selection_can_be_cleared(self, bike_catalog):
        result = select_option("wheels", "", bike_catalog.categories, {"wheels": "wheels-basic"})
        assert result.selected_config["wheels"] == ""
        assert result.changed

    def test_conflicting_pick_clears_other_category(self, bike_catalog):
        current = {"frame": "frame-alu", "fork": "fork-carbon"}
        result = select_option("frame", "frame-steel", bike_catalog.categories, current)
        assert result.selected_config["frame"] == "frame-steel"
        assert result.selected_config["fork"] == ""
        assert result.cleared_category_ids == ["fork"]
        assert result.message == (
            "Some options were automatically deselected because they're "
            'incompatible with "Frame Steel".'
        )

    def test_cascade_is_one_hop_only(self, make_option):
        # x2 conflicts with y1; y1 clearing must not touch Z even though
        # z1 conflicts with y-side options
        x1 = make_option("x1", "X", 1)
        x2 = make_option("x2", "X", 1, [("y1", "error")])
        y1 = make_option("y1", "Y", 1, [("x2", "error"), ("z1", "error")])
        z1 = make_option("z1", "Z", 1, [("y1", "error")])
        categories = [
            Category(id="X", name="X", options=[x1, x2]),
            Category(id="Y", name="Y", options=[y1]),
            Category(id="Z", name="Z", options=[z1]),
        ]
        current = {"X": "x1", "Y": "y1", "Z": "z1"}
        result = select_option("X", "x2", categories, current)
        assert result.selected_config == {"X": "x2", "Y": "", "Z": "z1"}
        assert result.cleared_category_ids == ["Y"]

    def test_warning_edges_do_not_cascade(self, bike_catalog):
        current = {"wheels": "wheels-basic"}
        result = select_option("color", "color-matte", bike_catalog.categories, current)
        assert result.selected_config["wheels"] == "wheels-basic"

    def test_unknown_category_is_noop(self, bike_catalog):
        current = {"frame": "frame-alu"}
        result = select_option("nope", "x", bike_catalog.categories, current)
        assert result.selected_config == current
        assert not result.changed

    def test_unknown_option_is_noop(self, bike_catalog):
        current = {"frame": "frame-alu"}
        result = select_option("frame", "fork-steel", bike_catalog.categories, current)
        assert result.selected_config == current

    def test_input_config_is_not_mutated(self, bike_catalog):
        current = {"frame": "frame-alu", "fork": "fork-carbon"}
        select_option("frame", "frame-steel", bike_catalog.categories, current)
        assert current == {"frame": "frame-alu", "fork": "fork-carbon"}


class TestSetQuantity:
    """Quantity updates."""

    def test_positive_quantity_is_kept(self):
        assert set_quantity("c", 3, {}) == {"c": 3}

    def test_values_below_one_become_one(self):
        assert set_quantity("c", 0, {}) == {"c": 1}
        assert set_quantity("c", -4, {}) == {"c": 1}

    def test_garbage_becomes_one(self):
        assert set_quantity("c", "lots", {"c": 5}) == {"c": 1}


class TestConfigurationSession:
    """Stateful session wrapper."""

    def test_start_runs_auto_selection(self, bike_catalog):
        session = ConfigurationSession(bike_catalog)
        assert session.selected_config == {"frame": "frame-alu", "fork": "fork-carbon"}
        assert session.total() == Decimal("550")

    def test_pick_does_not_rerun_auto_selection(self, bike_catalog):
        session = ConfigurationSession(bike_catalog)
        session.select("frame", "frame-steel")
        # Fork was evicted and stays empty until the catalog is refreshed
        assert session.selected_config["fork"] == ""
        session.refresh(bike_catalog)
        assert session.selected_config["fork"] == "fork-carbon"

    def test_blocked_options_follow_selection(self, bike_catalog):
        session = ConfigurationSession(bike_catalog, {"frame": "frame-steel", "fork": "fork-steel"})
        assert session.is_blocked("wheels-aero")
        assert not session.is_blocked("wheels-basic")
        assert not session.is_blocked("unknown")

    def test_quantities_affect_total(self, bike_catalog):
        session = ConfigurationSession(bike_catalog)
        session.set_quantity("fork", 2)
        assert session.total() == Decimal("800")

    def test_to_dict(self, bike_catalog):
        data = ConfigurationSession(bike_catalog).to_dict()
        assert data["configuratorId"] == "bike"
        assert data["total"] == "550.00"
        assert [item["categoryId"] for item in data["lineItems"]] == ["frame", "fork"]
        # fork-carbon lists frame-steel, so the other frame choice is greyed out
        assert data["blockedOptionIds"] == ["frame-steel"]

    def test_inactive_selection_is_kept(self, make_option):
        option = make_option("retired", "c", 10, is_active=False)
        catalog = Catalog("cfg", [Category(id="c", name="C", is_required=True, options=[option])])
        session = ConfigurationSession(catalog, {"c": "retired"})
        assert session.selected_config == {"c": "retired"}
        assert session.total() == Decimal("10")
