"""Tests for the persisted vector store."""

import pytest

from sitekb.store import EmbeddingRecord, VectorStore, load_store, save_store


def test_round_trip(tmp_path, three_record_store):
    path = str(tmp_path / "kb.json")
    save_store(three_record_store.records, path)
    loaded = load_store(path)
    assert [(r.url, r.content, list(r.vector)) for r in loaded] == [
        (r.url, r.content, list(r.vector)) for r in three_record_store
    ]


def test_save_replaces_previous_artifact(tmp_path, three_record_store):
    path = str(tmp_path / "kb.json")
    save_store(three_record_store.records, path)
    save_store(three_record_store.records[:1], path)
    assert len(load_store(path)) == 1
    assert not (tmp_path / "kb.json.tmp").exists()


def test_missing_artifact_loads_empty(tmp_path, caplog):
    store = load_store(str(tmp_path / "absent.json"))
    assert len(store) == 0
    assert store.dimension is None
    assert "not found" in caplog.text


@pytest.mark.parametrize("content", [
    "{not json",
    '{"url": "x"}',
    '[{"url": "x", "content": "y"}]',
    '[{"url": "x", "content": "y", "embedding": "abc"}]',
    '[{"url": "a", "content": "y", "embedding": [1, 2]}, {"url": "b", "content": "z", "embedding": [1]}]',
])
def test_corrupt_artifact_loads_empty(tmp_path, content):
    path = tmp_path / "kb.json"
    path.write_text(content, encoding="utf-8")
    assert len(load_store(str(path))) == 0


def test_rejects_mismatched_dimension():
    store = VectorStore([EmbeddingRecord("u", "c", [1.0, 2.0])])
    with pytest.raises(ValueError):
        store.add(EmbeddingRecord("v", "d", [1.0, 2.0, 3.0]))
    with pytest.raises(ValueError):
        VectorStore().add(EmbeddingRecord("w", "e", []))
    assert len(store) == 1


def test_matrix_tracks_additions(three_record_store):
    assert three_record_store.matrix.shape == (3, 2)
    three_record_store.add(EmbeddingRecord("u", "c", [2.0, 2.0]))
    assert three_record_store.matrix.shape == (4, 2)
