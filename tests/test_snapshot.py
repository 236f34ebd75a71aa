"""Tests for snapshot export/import and JSON persistence."""

import json

import numpy as np
import pytest

from agentdb.errors import SnapshotError
from agentdb.store import SNAPSHOT_VERSION, AgentDB


def _search_ids_and_distances(db, queries, k=10):
    return [[(r["id"], r["distance"]) for r in db.search(q, k)] for q in queries]


class TestExport:
    """Test export_snapshot."""

    def test_contents(self, scenario_db):
        scenario_db.add_reasoning("ctx", "why")
        snap = scenario_db.export_snapshot()

        assert snap["version"] == SNAPSHOT_VERSION
        assert snap["current_id"] == 3
        assert snap["config"]["dimension"] == 4
        assert set(snap["config"]) >= {"dimension", "max_elements", "m", "ef_construction", "ef_search"}
        assert [v["id"] for v in snap["vectors"]] == [0, 1, 2]
        assert snap["vectors"][2]["vector"] == pytest.approx([0.9, 0.1, 0.0, 0.0])
        assert snap["vectors"][0]["metadata"] == {"name": "v0"}
        assert "created_at" in snap["vectors"][0]
        rid, entry = snap["reasoning_bank"][0]
        assert entry["context"] == "ctx"
        assert entry["reasoning"] == "why"

    def test_is_json_serialisable(self, loaded_db):
        snap = loaded_db.export_snapshot()
        assert json.loads(json.dumps(snap)) == snap

    def test_deleted_vectors_flagged(self, scenario_db):
        """Tombstoned vectors are exported in place, flagged and without metadata."""
        scenario_db.delete_vector(1)
        snap = scenario_db.export_snapshot()

        assert [v["id"] for v in snap["vectors"]] == [0, 1, 2]
        assert snap["vectors"][1] == {"id": 1, "vector": [0.0, 1.0, 0.0, 0.0], "deleted": True}
        assert "deleted" not in snap["vectors"][0]
        assert snap["current_id"] == 3

    def test_compacted_store_exports_no_tombstones(self, scenario_db):
        scenario_db.delete_vector(1)
        scenario_db.compact()

        assert [v["id"] for v in scenario_db.export_snapshot()["vectors"]] == [0, 2]


class TestImport:
    """Test import_snapshot."""

    def test_round_trip_reproduces_search(self, loaded_db, rng):
        """export → clear → import gives identical search results."""
        queries = rng.normal(size=(10, 16)).astype(np.float32)
        before = _search_ids_and_distances(loaded_db, queries)
        snap = loaded_db.export_snapshot()

        loaded_db.clear()
        loaded_db.import_snapshot(snap)

        after = _search_ids_and_distances(loaded_db, queries)
        assert [[i for i, _ in row] for row in after] == [[i for i, _ in row] for row in before]
        for row_a, row_b in zip(after, before):
            assert [d for _, d in row_a] == pytest.approx([d for _, d in row_b], abs=1e-6)

    def test_round_trip_through_json(self, loaded_db, rng):
        queries = rng.normal(size=(5, 16)).astype(np.float32)
        before = _search_ids_and_distances(loaded_db, queries)
        snap = json.loads(json.dumps(loaded_db.export_snapshot()))

        fresh = AgentDB(dimension=16)
        fresh.import_snapshot(snap)

        assert [[i for i, _ in row] for row in _search_ids_and_distances(fresh, queries)] == \
            [[i for i, _ in row] for row in before]
        assert fresh.config.m == 8
        assert fresh.config.ef_construction == 100

    def test_restores_everything(self, loaded_db):
        loaded_db.update_metadata(5, {"flag": True})
        rid = loaded_db.add_reasoning("ctx", "kept")
        snap = loaded_db.export_snapshot()

        other = AgentDB(dimension=16)
        other.add_vector(np.ones(16))
        other.import_snapshot(snap)

        assert len(other) == 200
        assert other.current_id == 200
        assert other.get_vector(5)["metadata"] == {"n": 5, "parity": "odd", "flag": True}
        assert other.get_vector(5)["created_at"] == loaded_db.get_vector(5)["created_at"]
        assert other.get_reasoning(rid)["reasoning"] == "kept"
        assert other.get_stats()["total_reasoning"] == 3

    def test_round_trip_after_deletes(self, loaded_db, rng):
        """Search results survive export → clear → import when half the ids are deleted."""
        for i in range(0, 200, 2):
            loaded_db.delete_vector(i)
        loaded_db.add_vector(rng.normal(size=16).astype(np.float32), {"late": True})
        loaded_db.set_ef_search(2)
        queries = rng.normal(size=(30, 16)).astype(np.float32)
        before = _search_ids_and_distances(loaded_db, queries)
        snap = json.loads(json.dumps(loaded_db.export_snapshot()))

        loaded_db.clear()
        loaded_db.import_snapshot(snap)

        after = _search_ids_and_distances(loaded_db, queries)
        assert [[i for i, _ in row] for row in after] == [[i for i, _ in row] for row in before]
        for row_a, row_b in zip(after, before):
            assert [d for _, d in row_a] == pytest.approx([d for _, d in row_b], abs=1e-6)

    def test_import_keeps_tombstones_out_of_counts(self, scenario_db):
        scenario_db.delete_vector(0)
        snap = scenario_db.export_snapshot()
        scenario_db.clear()
        scenario_db.import_snapshot(snap)

        stats = scenario_db.get_stats()
        assert len(scenario_db) == 2
        assert stats["total_vectors"] == 2
        assert stats["deleted_vectors"] == 1
        assert scenario_db.update_metadata(0, {"a": 1}) is False
        assert [r["id"] for r in scenario_db.search([1, 0, 0, 0], 3)] == [2, 1]

    def test_ids_preserved_after_deletes(self, scenario_db):
        """Surviving vectors keep their ids; the counter does not rewind."""
        scenario_db.delete_vector(0)
        snap = scenario_db.export_snapshot()
        scenario_db.clear()
        scenario_db.import_snapshot(snap)

        assert scenario_db.get_vector(0) is None
        assert scenario_db.get_vector(2)["metadata"] == {"name": "v2"}
        assert scenario_db.add_vector([0, 0, 0, 1]) == 3

    def test_counter_at_least_past_max_id(self, scenario_db):
        snap = scenario_db.export_snapshot()
        snap["current_id"] = 0
        scenario_db.import_snapshot(snap)

        assert scenario_db.current_id == 3

    def test_reasoning_ids_stay_unique_after_import(self, db):
        rid = db.add_reasoning("a", "b")
        snap = db.export_snapshot()
        db.import_snapshot(snap)

        new_ids = {db.add_reasoning("c", "d") for _ in range(50)}

        assert rid not in new_ids
        assert db.get_reasoning(rid)["context"] == "a"


class TestImportAtomicity:
    """Malformed snapshots fail without touching the store."""

    @pytest.mark.parametrize("mutate", [
        lambda s: s.pop("config"),
        lambda s: s["config"].pop("dimension"),
        lambda s: s["config"].update(dimension=8),
        lambda s: s.pop("vectors"),
        lambda s: s["vectors"][1].pop("vector"),
        lambda s: s["vectors"][1].pop("id"),
        lambda s: s["vectors"][2].update(vector=[1.0, 2.0]),
        lambda s: s["vectors"].append(dict(s["vectors"][0])),
        lambda s: s["config"].update(m=0),
        lambda s: s.update(current_id="abc"),
        lambda s: s.update(reasoning_bank=[["r1", {"context": "only"}]]),
    ])
    def test_bad_snapshot_leaves_state(self, scenario_db, mutate):
        snap = scenario_db.export_snapshot()
        before = scenario_db.export_snapshot()
        mutate(snap)

        with pytest.raises(SnapshotError):
            scenario_db.import_snapshot(snap)

        assert scenario_db.export_snapshot() == before
        assert [r["id"] for r in scenario_db.search([1, 0, 0, 0], 2)] == [0, 2]

    def test_not_a_dict(self, scenario_db):
        with pytest.raises(SnapshotError):
            scenario_db.import_snapshot(["not", "a", "snapshot"])


class TestFilePersistence:
    """Test save / load."""

    def test_save_creates_file(self, scenario_db, tmp_path):
        path = tmp_path / "nested" / "db.json"
        scenario_db.save(str(path))

        assert path.exists()
        assert json.loads(path.read_text())["current_id"] == 3

    def test_save_load_roundtrip(self, loaded_db, tmp_path, rng):
        queries = rng.normal(size=(5, 16)).astype(np.float32)
        path = tmp_path / "db.json"
        loaded_db.save(str(path))

        restored = AgentDB.load(str(path))

        assert restored.dimension == 16
        assert len(restored) == 200
        assert [[i for i, _ in row] for row in _search_ids_and_distances(restored, queries)] == \
            [[i for i, _ in row] for row in _search_ids_and_distances(loaded_db, queries)]

    def test_load_passes_kwargs(self, scenario_db, tmp_path):
        path = tmp_path / "db.json"
        scenario_db.save(str(path))
        events = []

        restored = AgentDB.load(str(path), handlers={"imported": events.append})

        assert events == [{"vectors": 3, "reasoning": 0}]
        assert restored.search([1, 0, 0, 0], 1)[0]["id"] == 0

    def test_load_invalid_config_values(self, scenario_db, tmp_path):
        """Bad index parameters in the file surface as SnapshotError."""
        path = tmp_path / "db.json"
        scenario_db.save(str(path))
        data = json.loads(path.read_text())
        data["config"]["m"] = 0
        path.write_text(json.dumps(data))

        with pytest.raises(SnapshotError):
            AgentDB.load(str(path))

    def test_load_without_config(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"vectors": []}))

        with pytest.raises(SnapshotError):
            AgentDB.load(str(path))
