"""Tests for the file-backed routing table store."""

import asyncio
import json

import pytest

from issuer_proxy.shared.errors import PersistenceError, ValidationError
from issuer_proxy.storage import DEFAULT_ROUTES, RouteStore


def read_file(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class TestLoad:
    """Startup loading and default seeding."""

    def test_missing_file_seeds_and_persists_defaults(self, config):
        store = RouteStore(config.ROUTES_FILE)
        table = store.load()

        assert set(table) == {"fido.moi.gov.tw", "land.moi.gov.tw", "zuvi.io"}
        assert read_file(config.ROUTES_FILE) == store.to_dict()
        assert store.get("land.moi.gov.tw").target == "https://localhost:5001"

    def test_existing_file_is_loaded_verbatim(self, config):
        data = {"issuer.example": {"target": "https://localhost:8080", "name": "Example"}}
        with open(config.ROUTES_FILE, "w") as f:
            json.dump(data, f)

        store = RouteStore(config.ROUTES_FILE)
        store.load()

        assert store.to_dict() == data
        assert "fido.moi.gov.tw" not in store

    def test_corrupt_file_falls_back_to_defaults(self, config, tmp_path):
        with open(config.ROUTES_FILE, "w") as f:
            f.write("{not json")

        store = RouteStore(config.ROUTES_FILE)
        store.load()

        assert len(store) == len(DEFAULT_ROUTES)
        assert (tmp_path / "issuers-config.json.corrupt").read_text() == "{not json"
        assert set(read_file(config.ROUTES_FILE)) == {r["hostname"] for r in DEFAULT_ROUTES}

    def test_non_object_file_falls_back_to_defaults(self, config):
        with open(config.ROUTES_FILE, "w") as f:
            json.dump(["fido.moi.gov.tw"], f)

        store = RouteStore(config.ROUTES_FILE)
        store.load()

        assert len(store) == len(DEFAULT_ROUTES)

    def test_invalid_entries_are_skipped(self, config):
        data = {
            "good.example": {"target": "https://localhost:5003", "name": "Good"},
            "bad.example": {"target": "ftp://localhost:21"},
            "worse.example": "https://localhost:5004",
        }
        with open(config.ROUTES_FILE, "w") as f:
            json.dump(data, f)

        store = RouteStore(config.ROUTES_FILE)
        store.load()

        assert list(store.snapshot()) == ["good.example"]

    def test_entries_are_normalized_on_load(self, config):
        with open(config.ROUTES_FILE, "w") as f:
            json.dump({"Mixed.Example:443": {"target": "https://localhost:5003/"}}, f)

        store = RouteStore(config.ROUTES_FILE)
        store.load()

        route = store.get("mixed.example")
        assert route.target == "https://localhost:5003"
        assert route.name == "mixed.example"

    def test_save_then_load_preserves_table(self, store, config):
        before = store.to_dict()
        store.save(store.snapshot())

        reloaded = RouteStore(config.ROUTES_FILE)
        reloaded.load()

        assert reloaded.to_dict() == before


class TestUpsert:
    """Mutations through upsert."""

    async def test_upsert_adds_and_persists(self, store, config):
        route = await store.upsert("New.Example", "https://localhost:8081", "New issuer")

        assert route.hostname == "new.example"
        assert store.get("new.example").target == "https://localhost:8081"
        assert read_file(config.ROUTES_FILE)["new.example"] == {
            "target": "https://localhost:8081",
            "name": "New issuer",
        }

    async def test_upsert_overwrites_existing(self, store):
        await store.upsert("zuvi.io", "https://localhost:8000", "Moved")

        assert store.get("zuvi.io").target == "https://localhost:8000"
        assert store.get("zuvi.io").name == "Moved"
        assert len(store) == len(DEFAULT_ROUTES)

    async def test_identical_upsert_does_not_rewrite(self, store, monkeypatch):
        await store.upsert("again.example", "https://localhost:5005", "Again")

        calls = []
        monkeypatch.setattr(store, "save", lambda table: calls.append(table))
        await store.upsert("again.example", "https://localhost:5005", "Again")

        assert calls == []

    async def test_invalid_target_is_rejected(self, store):
        with pytest.raises(ValidationError) as exc_info:
            await store.upsert("bad.example", "localhost:5000")

        assert exc_info.value.code == "invalid route"
        assert "bad.example" not in store

    async def test_target_with_path_is_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.upsert("bad.example", "https://localhost:5000/issuer")

    async def test_persistence_failure_leaves_table_unchanged(self, store, config, monkeypatch):
        before = store.to_dict()

        def failing_save(table):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "save", failing_save)

        with pytest.raises(PersistenceError):
            await store.upsert("lost.example", "https://localhost:5003")

        assert store.to_dict() == before
        assert read_file(config.ROUTES_FILE) == before

    async def test_unwritable_directory_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = RouteStore(str(blocker / "routes.json"))

        with pytest.raises(PersistenceError):
            store.save({})

    async def test_concurrent_upserts_all_persist(self, store, config):
        hostnames = [f"issuer{i}.example" for i in range(10)]

        await asyncio.gather(*(
            store.upsert(hostname, f"https://localhost:{5000 + i}")
            for i, hostname in enumerate(hostnames)
        ))

        on_disk = read_file(config.ROUTES_FILE)
        for i, hostname in enumerate(hostnames):
            assert store.get(hostname).target == f"https://localhost:{5000 + i}"
            assert on_disk[hostname]["target"] == f"https://localhost:{5000 + i}"

    async def test_concurrent_upserts_same_hostname_keep_one_winner(self, store, config):
        targets = [f"https://localhost:{port}" for port in (8000, 8001, 8080)]

        await asyncio.gather(*(store.upsert("race.example", target) for target in targets))

        winner = store.get("race.example").target
        assert winner in targets
        assert read_file(config.ROUTES_FILE)["race.example"]["target"] == winner

    async def test_snapshot_is_not_affected_by_later_upserts(self, store):
        snapshot = store.snapshot()
        await store.upsert("later.example", "https://localhost:5004")

        assert "later.example" not in snapshot
        assert "later.example" in store

    async def test_skipped_entries_survive_later_writes(self, config):
        data = {
            "good.example": {"target": "https://localhost:5003", "name": "Good"},
            "bad.example": {"target": "ftp://localhost:21"},
            "worse.example": "https://localhost:5004",
        }
        with open(config.ROUTES_FILE, "w") as f:
            json.dump(data, f)
        store = RouteStore(config.ROUTES_FILE)
        store.load()

        await store.upsert("new.example", "https://localhost:5005")

        on_disk = read_file(config.ROUTES_FILE)
        assert on_disk["bad.example"] == {"target": "ftp://localhost:21"}
        assert on_disk["worse.example"] == "https://localhost:5004"
        assert on_disk["new.example"]["target"] == "https://localhost:5005"
        assert "bad.example" not in store

    async def test_valid_upsert_replaces_skipped_entry(self, config):
        with open(config.ROUTES_FILE, "w") as f:
            json.dump({"Bad.Example": {"target": "ftp://localhost:21"}}, f)
        store = RouteStore(config.ROUTES_FILE)
        store.load()

        await store.upsert("bad.example", "https://localhost:5006")

        on_disk = read_file(config.ROUTES_FILE)
        assert list(on_disk) == ["bad.example"]
        assert on_disk["bad.example"]["target"] == "https://localhost:5006"
