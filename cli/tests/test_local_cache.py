"""Tests for the local world cache and its file-backed store."""

from __future__ import annotations

import json
import logging

from engine.kernel import actions

from enfield_cli.cache import CACHE_KEY, FileStore, LocalCache


class TestLocalCache:
    def test_missing_is_none(self, cache):
        assert cache.load() is None

    def test_save_then_load(self, cache, ada):
        result = actions.create_world([], ada, "Ashgrove")
        cache.save(result.worlds, result.changes)

        snapshot = cache.load()
        assert [w.name for w in snapshot.worlds] == ["Ashgrove"]
        assert [type(c).__name__ for c in snapshot.pending_changes] == ["CreateWorld"]
        assert snapshot.timestamp.endswith("Z")

    def test_wire_shape(self, cache, store, ada):
        result = actions.create_world([], ada, "Ashgrove")
        cache.save(result.worlds, result.changes)
        raw = json.loads(store.data[CACHE_KEY])
        assert set(raw) == {"worlds", "pendingChanges", "timestamp"}
        assert raw["pendingChanges"][0]["type"] == "createWorld"
        assert raw["worlds"][0]["ownerId"] == "u1"

    def test_unparsable_is_none(self, cache, store, caplog):
        store.data[CACHE_KEY] = "{not json"
        with caplog.at_level(logging.WARNING):
            assert cache.load() is None
        assert "unparsable" in caplog.text

    def test_worlds_must_be_a_list(self, cache, store):
        store.data[CACHE_KEY] = json.dumps({"worlds": {"w1": {}}, "pendingChanges": []})
        assert cache.load() is None
        store.data[CACHE_KEY] = json.dumps(["w1"])
        assert cache.load() is None

    def test_partial_records_are_normalized(self, cache, store):
        store.data[CACHE_KEY] = json.dumps(
            {
                "worlds": [{"id": "w1", "name": "Ashgrove", "pages": [{"id": "p1"}]}],
                "pendingChanges": [
                    {"type": "dropTables"},
                    {"type": "removePage", "worldId": "w1", "pageId": "p1"},
                ],
            }
        )
        snapshot = cache.load()
        assert snapshot.worlds[0].pages[0].title == "Untitled page"
        assert [c.type for c in snapshot.pending_changes] == ["removePage"]
        assert snapshot.timestamp is None

    def test_non_string_change_types_are_skipped(self, cache, store):
        store.data[CACHE_KEY] = json.dumps(
            {
                "worlds": [{"id": "w1", "collaborators": [{"id": "u1", "role": {"x": 1}}]}],
                "pendingChanges": [
                    {"type": {}},
                    {"type": ["createWorld"]},
                    {"type": "deleteWorld", "worldId": "w1"},
                ],
            }
        )
        snapshot = cache.load()
        assert [c.type for c in snapshot.pending_changes] == ["deleteWorld"]
        roles = {c.id: c.role for c in snapshot.worlds[0].collaborators}
        assert roles == {"w1-owner": "Owner", "u1": "Editor"}

    def test_missing_pending_is_empty(self, cache, store):
        store.data[CACHE_KEY] = json.dumps({"worlds": []})
        assert cache.load().pending_changes == []


class TestFileStore:
    def test_roundtrip(self, tmp_path):
        store = FileStore(tmp_path / "cache")
        assert store.get("k") is None
        store.set("k", '{"a": 1}')
        assert store.get("k") == '{"a": 1}'
        assert (tmp_path / "cache" / "k.json").exists()
        assert not (tmp_path / "cache" / "k.tmp").exists()

    def test_write_failure_is_logged(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileStore(blocker)
        with caplog.at_level(logging.WARNING):
            store.set("k", "{}")
        assert "failed to write" in caplog.text
        assert store.get("k") is None

    def test_backs_local_cache(self, tmp_path, ada):
        cache = LocalCache(FileStore(tmp_path))
        world = actions.new_world(ada, "Ashgrove")
        cache.save([world], [])
        assert (tmp_path / f"{CACHE_KEY}.json").exists()
        assert LocalCache(FileStore(tmp_path)).load().worlds[0].id == world.id
