"""Tests for the project config stores."""

import json
import logging
from datetime import timedelta
from pathlib import Path

import pytest

from frc.errors import ConfigWriteFailure
from frc.runtime import RuntimeKind
from frc.store import ConfigStore, InMemoryConfigStore, JsonConfigStore, ProjectConfig

NOW = 1_760_000_000
DAY = 24 * 60 * 60


def cfg(pid: str = "/proj", memory: int = 4096, last_used: int = NOW, runtime=RuntimeKind.NODE):
    return ProjectConfig(project_id=pid, runtime=runtime, memory_mb=memory, last_used=last_used)


@pytest.fixture
def json_path(tmp_path: Path) -> Path:
    return tmp_path / "frc" / "config.json"


@pytest.fixture(params=["json", "memory"])
def store(request, json_path: Path) -> ConfigStore:
    if request.param == "json":
        return JsonConfigStore(json_path, clock=lambda: NOW)
    return InMemoryConfigStore(clock=lambda: NOW)


class TestProjectConfig:
    def test_rejects_non_positive_memory(self):
        with pytest.raises(ValueError):
            cfg(memory=0)

    def test_from_dict_ignores_unknown_fields(self):
        c = ProjectConfig.from_dict(
            "/p", {"runtime": "deno", "memory_mb": 2048, "last_used": 5, "color": "blue"}
        )
        assert c == ProjectConfig("/p", RuntimeKind.DENO, 2048, 5)

    def test_from_dict_legacy_string_memory(self):
        c = ProjectConfig.from_dict("/p", {"runtime": "node", "memory": "8192", "last_used": 5})
        assert c.memory_mb == 8192

    def test_touched(self):
        assert cfg(last_used=1).touched(NOW + 0.7).last_used == NOW


class TestStoreOperations:
    def test_get_missing(self, store):
        assert store.get("/nope") is None

    def test_round_trip(self, store):
        c = cfg()
        store.put(c)
        assert store.get("/proj") == c

    def test_put_is_idempotent(self, store):
        store.put(cfg())
        store.put(cfg())
        assert store.get("/proj") == cfg()
        assert len(store.list()) == 1

    def test_put_overwrites(self, store):
        store.put(cfg(memory=4096))
        store.put(cfg(memory=6144, runtime=RuntimeKind.DENO, last_used=NOW + 1))
        got = store.get("/proj")
        assert got.memory_mb == 6144
        assert got.runtime is RuntimeKind.DENO
        assert got.last_used == NOW + 1

    def test_delete(self, store):
        store.put(cfg())
        assert store.delete("/proj")
        assert not store.delete("/proj")  # already removed
        assert store.get("/proj") is None

    def test_list_newest_first(self, store):
        store.put(cfg("/a", last_used=NOW - 10))
        store.put(cfg("/b", last_used=NOW))
        store.put(cfg("/c", last_used=NOW - 5))
        assert [c.project_id for c in store.list()] == ["/b", "/c", "/a"]

    def test_prune(self, store):
        store.put(cfg("/stale", last_used=NOW - 31 * DAY))
        store.put(cfg("/fresh", last_used=NOW - 5 * DAY))
        assert store.prune(timedelta(days=30)) == 1
        assert store.get("/stale") is None
        assert store.get("/fresh") is not None

    def test_prune_nothing(self, store):
        store.put(cfg())
        assert store.prune(timedelta(days=1)) == 0
        assert len(store.list()) == 1

    def test_satisfies_protocol(self, store):
        assert isinstance(store, ConfigStore)


class TestJsonConfigStore:
    def test_missing_file_is_empty(self, json_path: Path):
        store = JsonConfigStore(json_path)
        assert store.list() == []
        assert not json_path.exists()

    def test_document_shape(self, json_path: Path):
        JsonConfigStore(json_path).put(cfg())
        doc = json.loads(json_path.read_text())
        assert doc == {"projects": {"/proj": {"runtime": "node", "memory_mb": 4096, "last_used": NOW}}}

    def test_survives_new_instance(self, json_path: Path):
        JsonConfigStore(json_path).put(cfg())
        assert JsonConfigStore(json_path).get("/proj") == cfg()

    def test_no_temp_files_left(self, json_path: Path):
        JsonConfigStore(json_path).put(cfg())
        assert [p.name for p in json_path.parent.iterdir()] == ["config.json"]

    def test_corrupt_file_treated_as_empty(self, json_path: Path, caplog):
        json_path.parent.mkdir(parents=True)
        json_path.write_text("{not json")
        store = JsonConfigStore(json_path)
        with caplog.at_level(logging.WARNING):
            assert store.list() == []
        assert "Malformed JSON" in caplog.text

    def test_corrupt_file_replaced_on_write(self, json_path: Path):
        json_path.parent.mkdir(parents=True)
        json_path.write_text("[1, 2, 3]")
        store = JsonConfigStore(json_path)
        store.put(cfg())
        assert store.get("/proj") == cfg()

    def test_bad_entry_skipped(self, json_path: Path, caplog):
        json_path.parent.mkdir(parents=True)
        json_path.write_text(json.dumps({
            "projects": {
                "/good": {"runtime": "node", "memory_mb": 4096, "last_used": NOW},
                "/bad-runtime": {"runtime": "python", "memory_mb": 4096, "last_used": NOW},
                "/bad-memory": {"runtime": "node", "memory_mb": "lots", "last_used": NOW},
                "/not-a-dict": 7,
            },
            "version": 3,
        }))
        with caplog.at_level(logging.WARNING):
            configs = JsonConfigStore(json_path).list()
        assert [c.project_id for c in configs] == ["/good"]
        assert "/bad-runtime" in caplog.text

    def test_infinite_numbers_skipped(self, json_path: Path, caplog):
        json_path.parent.mkdir(parents=True)
        json_path.write_text(
            '{"projects": {'
            '"/huge": {"runtime": "node", "memory_mb": 1e400, "last_used": 1},'
            '"/inf": {"runtime": "node", "memory_mb": 4096, "last_used": Infinity},'
            '"/ok": {"runtime": "node", "memory_mb": 4096, "last_used": 1}}}'
        )
        store = JsonConfigStore(json_path, clock=lambda: NOW)
        with caplog.at_level(logging.WARNING):
            assert [c.project_id for c in store.list()] == ["/ok"]
        assert "/huge" in caplog.text
        # writes still work and drop the bad entries
        store.put(cfg("/new"))
        assert store.get("/new") == cfg("/new")
        assert store.get("/huge") is None

    def test_legacy_document(self, json_path: Path):
        json_path.parent.mkdir(parents=True)
        json_path.write_text(json.dumps({
            "projects": {"/old": {"runtime": "node", "memory": "4096", "last_used": 1000}}
        }))
        store = JsonConfigStore(json_path)
        assert store.get("/old") == ProjectConfig("/old", RuntimeKind.NODE, 4096, 1000)

    def test_write_failure(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = JsonConfigStore(blocker / "config.json")
        with pytest.raises(ConfigWriteFailure):
            store.put(cfg())
