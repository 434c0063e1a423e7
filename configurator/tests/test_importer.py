"""Tests for the bulk import normalizer and linker."""

import sqlite3
from decimal import Decimal

import pytest

from configurator.db import (
    count_categories,
    count_incompatibilities,
    count_options,
    create_category,
    load_catalog,
    transaction,
)
from configurator.errors import ImportValidationError, NotFoundError, OwnershipError, StorageError
from configurator.importer import (
    CreatedOption,
    NormalizedItem,
    NormalizedOption,
    build_incompatibility_rows,
    create_options,
    ensure_categories,
    normalize_and_link_import,
    normalize_incompatible_refs,
    normalize_request,
)
from configurator.resolver import find_asymmetric_edges


class TestNormalizeRequest:
    """Parsing loosely shaped payloads."""

    def test_legacy_aliases(self):
        items = normalize_request({"items": [
            {"category": "Frame", "options": [{"id": "t1", "option": "Steel", "price": "12"}]},
        ]})
        option = items[0].options[0]
        assert option.temp_id == "t1"
        assert option.label == "Steel"
        assert option.price == Decimal("12")

    def test_temp_id_wins_over_id(self):
        items = normalize_request({"items": [
            {"category": "Frame", "options": [{"tempId": "new", "id": "old", "label": "Steel"}]},
        ]})
        assert items[0].options[0].temp_id == "new"

    def test_option_wins_over_label(self):
        items = normalize_request({"items": [
            {"category": "Frame", "options": [{"option": "Primary", "label": "Secondary"}]},
        ]})
        assert items[0].options[0].label == "Primary"

    def test_drops_empty_labels_and_empty_groups(self):
        items = normalize_request({"items": [
            {"category": "  ", "options": [{"label": "Orphan"}]},
            {"category": "Frame", "options": [{"label": "  "}, {"label": "Steel"}]},
            {"category": "Fork", "options": [{"label": ""}]},
            {"category": "Wheels"},
            "not-a-dict",
        ]})
        assert [i.category_name for i in items] == ["Frame"]
        assert [o.label for o in items[0].options] == ["Steel"]

    def test_unparseable_price_means_no_price(self):
        items = normalize_request({"items": [
            {"category": "Frame", "options": [{"label": "A", "price": "abc"}, {"label": "B", "price": -3}]},
        ]})
        assert [o.price for o in items[0].options] == [None, None]

    def test_missing_items(self):
        assert normalize_request({}) == []
        assert normalize_request({"items": "nope"}) == []
        assert normalize_request(None) == []


class TestNormalizeIncompatibleRefs:
    """String-or-list reference fields."""

    def test_comma_separated_string(self):
        assert normalize_incompatible_refs(" a, b ,,c ") == ["a", "b", "c"]

    def test_list_is_trimmed(self):
        assert normalize_incompatible_refs([" a ", "", None, 7]) == ["a", "7"]

    def test_other_types(self):
        assert normalize_incompatible_refs(None) == []
        assert normalize_incompatible_refs(42) == []


class TestBuildIncompatibilityRows:
    """Reference resolution without a database."""

    @staticmethod
    def _created(option_id, label, refs, temp_id=None, sku=None):
        original = NormalizedOption(label=label, temp_id=temp_id, sku=sku, incompatible_with=refs)
        return CreatedOption(
            id=option_id, label=label, category_name="C", original=original, sku=sku, temp_id=temp_id
        )

    def test_rows_are_bidirectional_and_deduplicated(self):
        a = self._created("A", "Alpha", ["b"], temp_id="a")
        b = self._created("B", "Beta", ["a", "alpha"], temp_id="b")
        lookup = {"a": a, "b": b, "alpha": a, "beta": b}
        rows, warnings = build_incompatibility_rows([a, b], lookup)
        keys = sorted((r.option_id, r.incompatible_option_id) for r in rows)
        assert keys == [("A", "B"), ("B", "A")]
        assert all(r.severity == "error" for r in rows)
        assert warnings == []

    def test_label_lookup_is_case_insensitive(self):
        a = self._created("A", "Alpha", ["ALPHA-X"])
        b = self._created("B", "Alpha-X", [])
        rows, _ = build_incompatibility_rows([a, b], {"alpha": a, "alpha-x": b})
        assert len(rows) == 2

    def test_unresolved_reference_warns(self):
        a = self._created("A", "Alpha", ["ghost"])
        rows, warnings = build_incompatibility_rows([a], {"alpha": a})
        assert rows == []
        assert warnings == [
            'Could not resolve incompatibility reference "ghost" for option "Alpha" (created id: A)'
        ]

    def test_self_reference_is_skipped(self):
        a = self._created("A", "Alpha", ["a"], temp_id="a")
        rows, warnings = build_incompatibility_rows([a], {"a": a, "alpha": a})
        assert rows == []
        assert len(warnings) == 1


class TestCreateOptions:
    """Lookup keys registered while inserting options."""

    @staticmethod
    def _import(db_path, configurator_id, *options):
        items = [NormalizedItem("Frame", list(options))]
        with transaction(db_path) as conn:
            category_map = ensure_categories(conn, configurator_id, items)
            return create_options(conn, category_map, items)

    def test_temp_id_is_not_replaced_by_later_label(self, temp_db, configurator):
        created, lookup = self._import(
            temp_db,
            configurator["id"],
            NormalizedOption(label="Steel tube", temp_id="steel"),
            NormalizedOption(label="Steel"),
        )
        assert lookup["steel"].id == created[0].id
        assert lookup["steel tube"].id == created[0].id

    def test_sku_is_not_replaced_by_later_label(self, temp_db, configurator):
        created, lookup = self._import(
            temp_db,
            configurator["id"],
            NormalizedOption(label="Carbon frame", sku="carbon"),
            NormalizedOption(label="Carbon"),
        )
        assert lookup["carbon"].id == created[0].id

    def test_same_label_last_write_wins(self, temp_db, configurator):
        created, lookup = self._import(
            temp_db,
            configurator["id"],
            NormalizedOption(label="Steel"),
            NormalizedOption(label="STEEL"),
        )
        assert lookup["steel"].id == created[1].id

    def test_later_sku_replaces_earlier_label(self, temp_db, configurator):
        created, lookup = self._import(
            temp_db,
            configurator["id"],
            NormalizedOption(label="Steel"),
            NormalizedOption(label="Chromoly", sku="steel"),
        )
        assert lookup["steel"].id == created[1].id
        assert lookup["chromoly"].id == created[1].id

    def test_reference_resolves_through_exact_key(self, temp_db, configurator):
        created, lookup = self._import(
            temp_db,
            configurator["id"],
            NormalizedOption(label="Steel tube", temp_id="steel"),
            NormalizedOption(label="Steel"),
            NormalizedOption(label="Carbon fork", incompatible_with=["steel"]),
        )
        rows, warnings = build_incompatibility_rows(created, lookup)
        pairs = {(r.option_id, r.incompatible_option_id) for r in rows}
        assert pairs == {(created[2].id, created[0].id), (created[0].id, created[2].id)}
        assert warnings == []


class TestNormalizeAndLinkImport:
    """End-to-end import against a temporary database."""

    def test_full_import(self, temp_db, configurator, import_payload):
        result = normalize_and_link_import(import_payload, db_path=temp_db)

        assert [c["name"] for c in result.categories] == ["Frame", "Fork"]
        assert [o.label for o in result.options] == ["Steel", "Aluminium", "Carbon fork", "Steel fork"]
        assert result.incompatibilities_created == 2
        assert len(result.warnings) == 1
        assert '"missing-ref"' in result.warnings[0]
        assert count_incompatibilities(temp_db) == 2

        data = result.to_dict()
        assert data["incompatibilitiesCreated"] == 2
        assert data["options"][0]["tempId"] == "f-steel"
        assert data["options"][0]["categoryName"] == "Frame"

    def test_imported_edges_are_symmetric(self, temp_db, configurator, import_payload):
        normalize_and_link_import(import_payload, db_path=temp_db)
        catalog = load_catalog(temp_db, configurator["id"])
        assert find_asymmetric_edges(catalog.categories) == []

        steel = next(o for c in catalog.categories for o in c.options if o.label == "Steel")
        fork = next(o for c in catalog.categories for o in c.options if o.label == "Carbon fork")
        assert steel.error_incompatible_ids() == {fork.id}
        assert fork.error_incompatible_ids() == {steel.id}

    def test_prices_are_stored(self, temp_db, configurator, import_payload):
        normalize_and_link_import(import_payload, db_path=temp_db)
        catalog = load_catalog(temp_db, configurator["id"])
        prices = {o.label: o.price for c in catalog.categories for o in c.options}
        assert prices["Aluminium"] == Decimal("300.50")
        assert prices["Steel fork"] == Decimal("0")

    def test_second_import_reuses_categories_but_duplicates_options(
        self, temp_db, configurator, import_payload
    ):
        first = normalize_and_link_import(import_payload, db_path=temp_db)
        second = normalize_and_link_import(import_payload, db_path=temp_db)

        assert [c["id"] for c in first.categories] == [c["id"] for c in second.categories]
        assert count_categories(temp_db, configurator["id"]) == 2
        assert count_options(temp_db, configurator["id"]) == 8
        assert second.incompatibilities_created == 2

    def test_existing_category_is_reused_by_exact_name(self, temp_db, configurator, import_payload):
        existing = create_category(temp_db, configurator["id"], "Frame", is_primary=True)
        result = normalize_and_link_import(import_payload, db_path=temp_db)
        assert result.categories[0]["id"] == existing["id"]

        catalog = load_catalog(temp_db, configurator["id"])
        assert catalog.category(existing["id"]).is_primary

    def test_category_name_match_is_case_sensitive(self, temp_db, configurator, import_payload):
        create_category(temp_db, configurator["id"], "frame")
        normalize_and_link_import(import_payload, db_path=temp_db)
        assert count_categories(temp_db, configurator["id"]) == 3

    def test_missing_configurator_id(self, temp_db):
        with pytest.raises(ImportValidationError, match="Configurator ID is required"):
            normalize_and_link_import({"items": []}, db_path=temp_db)

    def test_unknown_configurator(self, temp_db, import_payload):
        import_payload["configuratorId"] = "does-not-exist"
        with pytest.raises(NotFoundError, match="Configurator not found"):
            normalize_and_link_import(import_payload, db_path=temp_db)

    def test_wrong_owner(self, temp_db, import_payload):
        with pytest.raises(OwnershipError):
            normalize_and_link_import(import_payload, db_path=temp_db, client_id="someone-else")

    def test_right_owner(self, temp_db, import_payload):
        result = normalize_and_link_import(import_payload, db_path=temp_db, client_id="acme")
        assert len(result.options) == 4

    def test_no_surviving_items(self, temp_db, configurator):
        payload = {"configuratorId": configurator["id"], "items": [{"category": "X", "options": [{"label": ""}]}]}
        with pytest.raises(ImportValidationError, match="No items provided"):
            normalize_and_link_import(payload, db_path=temp_db)
        assert count_categories(temp_db) == 0

    def test_storage_failure_rolls_back_everything(self, temp_db, configurator, import_payload, monkeypatch):
        def boom(conn, rows):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr("configurator.importer.insert_incompatibility_rows", boom)
        with pytest.raises(StorageError) as exc_info:
            normalize_and_link_import(import_payload, db_path=temp_db)

        assert exc_info.value.code == "IMPORT_ERROR"
        assert count_categories(temp_db) == 0
        assert count_options(temp_db) == 0
