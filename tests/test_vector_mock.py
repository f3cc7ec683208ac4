"""
Brute-force cosine search backend.
"""

import numpy as np
import pytest

from bookrec.core.errors import DimensionMismatchError
from bookrec.vector.index import BruteForceVectorStore, IVectorStore
from bookrec.vector.types import VectorRecord


def _record(record_id, vector, title=""):
    return VectorRecord(id=record_id, vector=np.array(vector, dtype=np.float32), metadata={"title": title})


def test_vector_store_interface():
    """Test that BruteForceVectorStore implements IVectorStore interface."""
    store = BruteForceVectorStore(dimension=3)
    assert isinstance(store, IVectorStore)


def test_add_single_record():
    """Test adding a single record."""
    store = BruteForceVectorStore(dimension=3)
    store.add(_record("test_id", [1.0, 0.0, 0.0], title="A title"))

    results = store.search(np.array([1.0, 0.0, 0.0]), top_k=1)
    assert len(results) == 1
    assert results[0].id == "test_id"
    assert results[0].title == "A title"
    assert results[0].score == pytest.approx(1.0)


def test_search_similarity_order():
    """Test that search returns results ordered by similarity."""
    store = BruteForceVectorStore(dimension=2)
    store.batch_add([
        _record("a", [1.0, 0.0]),
        _record("b", [0.0, 1.0]),
        _record("c", [0.9, 0.1]),
    ])

    results = store.search(np.array([1.0, 0.0]), top_k=3)
    assert [r.id for r in results] == ["a", "c", "b"]
    assert results[1].score == pytest.approx(0.9 / np.sqrt(0.82))
    assert results[2].score == pytest.approx(0.0)


def test_ties_broken_by_ascending_id():
    """Test that equal scores are ordered by ascending id."""
    store = BruteForceVectorStore(dimension=2)
    store.batch_add([
        _record("zeta", [1.0, 0.0]),
        _record("alpha", [2.0, 0.0]),
        _record("mid", [3.0, 0.0]),
    ])

    results = store.search(np.array([1.0, 0.0]), top_k=3)
    assert [r.id for r in results] == ["alpha", "mid", "zeta"]


def test_result_length_is_min_of_k_and_size():
    """Test that results hold min(k, index size) items."""
    store = BruteForceVectorStore(dimension=2)
    store.batch_add([_record(str(i), [1.0, float(i)]) for i in range(4)])

    assert len(store.search(np.array([1.0, 0.0]), top_k=2)) == 2
    assert len(store.search(np.array([1.0, 0.0]), top_k=10)) == 4


def test_zero_query_vector_scores_zero():
    """Test that a zero query vector scores every record 0.0."""
    store = BruteForceVectorStore(dimension=2)
    store.batch_add([_record("b", [0.0, 1.0]), _record("a", [1.0, 0.0])])

    results = store.search(np.array([0.0, 0.0]), top_k=2)
    assert [r.id for r in results] == ["a", "b"]
    assert all(r.score == 0.0 for r in results)


def test_re_adding_replaces_record():
    """Test that re-adding an id replaces the record."""
    store = BruteForceVectorStore(dimension=2)
    store.add(_record("x", [1.0, 0.0], title="old"))
    store.add(_record("x", [0.0, 1.0], title="new"))

    assert len(store) == 1
    results = store.search(np.array([0.0, 1.0]), top_k=1)
    assert results[0].title == "new"
    assert results[0].score == pytest.approx(1.0)


def test_dimension_mismatch_on_add_and_search():
    """Test dimension checks on add and search."""
    store = BruteForceVectorStore(dimension=3)

    with pytest.raises(DimensionMismatchError):
        store.add(_record("x", [1.0, 0.0]))

    store.add(_record("y", [1.0, 0.0, 0.0]))
    with pytest.raises(DimensionMismatchError):
        store.search(np.array([1.0, 0.0]), top_k=1)


def test_search_range():
    """Test range search by cosine distance."""
    store = BruteForceVectorStore(dimension=2)
    store.batch_add([
        _record("a", [1.0, 0.0]),
        _record("b", [0.0, 1.0]),
        _record("c", [0.9, 0.1]),
    ])

    hits = store.search_range(np.array([1.0, 0.0]), max_distance=0.1)
    assert [h.id for h in hits] == ["a", "c"]

    everything = store.search_range(np.array([1.0, 0.0]), max_distance=2.0)
    assert [h.id for h in everything] == ["a", "c", "b"]


def test_parallel_scan_matches_sequential():
    """Test that the chunked parallel scan matches the sequential scan."""
    rng = np.random.default_rng(7)
    vectors = rng.normal(size=(300, 8))
    query = rng.normal(size=8)

    sequential = BruteForceVectorStore(dimension=8)
    parallel = BruteForceVectorStore(dimension=8, workers=4, min_chunk_size=16)
    records = [_record(f"id{i:03d}", v) for i, v in enumerate(vectors)]
    sequential.batch_add(records)
    parallel.batch_add(records)

    expected = sequential.search(query, top_k=10)
    for _ in range(3):
        assert parallel.search(query, top_k=10) == expected


def test_clear_store():
    """Test clearing the store."""
    store = BruteForceVectorStore(dimension=2)
    store.add(_record("clear_test", [1.0, 0.0]))
    store.clear()

    assert len(store) == 0
    assert store.search(np.array([1.0, 0.0]), top_k=1) == []


def test_empty_search():
    """Test search on an empty store."""
    store = BruteForceVectorStore(dimension=2)
    assert store.search(np.array([1.0, 0.0]), top_k=5) == []


def test_search_range_zero_radius_includes_identical_vector():
    """Test that a zero radius still matches a vector identical to the query."""
    store = BruteForceVectorStore(dimension=3)
    vector = [0.1, 0.7, 0.3]
    store.batch_add([_record("self", vector), _record("other", [0.7, 0.1, 0.3])])

    hits = store.search_range(np.array(vector), max_distance=0.0)
    assert [h.id for h in hits] == ["self"]
