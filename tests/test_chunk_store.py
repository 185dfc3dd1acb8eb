import json
import math

import pytest

from chat_relay.services.chunk_store import (
    ChunkStore,
    StoreNotReadyError,
    cosine_similarity,
    keyword_similarity,
)


@pytest.fixture
def store(corpus_path):
    store = ChunkStore(corpus_path)
    assert store.load().ok
    return store


class TestCosineSimilarity:
    def test_self_similarity_is_one(self):
        vector = [0.3, -1.2, 4.5, 0.01]
        assert math.isclose(cosine_similarity(vector, vector), 1.0, rel_tol=1e-9)

    def test_symmetric(self):
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 1.0]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_opposite_vectors(self):
        assert math.isclose(cosine_similarity([1.0, 0.0], [-1.0, 0.0]), -1.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


class TestKeywordSimilarity:
    def test_counts_long_terms_only(self):
        # "los" and "son" are too short; "juegos" and "populares" both match.
        assert keyword_similarity("los juegos son populares", "Los juegos más populares") == 1.0

    def test_partial_overlap(self):
        assert keyword_similarity("juegos bonos", "juegos de mesa") == 0.5

    def test_no_long_terms(self):
        assert keyword_similarity("a la", "a la mesa") == 0.0


class TestSearch:
    def test_top_k_sorted_descending(self, store):
        results = store.search([0.9, 0.4, 0.1], 2)
        assert [r.chunk_id for r in results] == [0, 1]
        assert results[0].similarity >= results[1].similarity

    def test_at_most_k_results(self, store):
        assert len(store.search([1.0, 1.0, 1.0], 10)) == 3
        assert store.search([1.0, 1.0, 1.0], 0) == []
        assert store.search([1.0, 1.0, 1.0], -1) == []

    def test_ties_broken_by_chunk_id(self, store):
        results = store.search([1.0, 1.0, 1.0], 3)
        assert [r.chunk_id for r in results] == [0, 1, 2]

    def test_idempotent(self, store):
        first = [r.chunk_id for r in store.search([0.2, 0.7, 0.5], 3)]
        second = [r.chunk_id for r in store.search([0.2, 0.7, 0.5], 3)]
        assert first == second

    def test_query_dimension_must_match(self, store):
        with pytest.raises(ValueError):
            store.search([1.0, 0.0], 1)

    def test_keyword_search(self, store):
        results = store.keyword_search("cuanto demoran los retiros", 1)
        assert results[0].chunk_id == 2


class TestLoad:
    def test_unready_store_raises(self, tmp_path):
        store = ChunkStore(tmp_path / "missing.json")
        assert store.is_ready() is False
        with pytest.raises(StoreNotReadyError):
            store.search([1.0, 0.0, 0.0], 3)
        with pytest.raises(StoreNotReadyError):
            store.keyword_search("hola", 3)

    def test_missing_file_reported(self, tmp_path):
        result = ChunkStore(tmp_path / "missing.json").load()
        assert result.ok is False
        assert result.error_code == "corpus_missing"

    def test_malformed_file_keeps_previous_corpus(self, store, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json", encoding="utf-8")

        result = store.load(broken)

        assert result.ok is False
        assert result.error_code == "corpus_malformed"
        assert store.is_ready() is True
        assert store.info()["totalChunks"] == 3

    def test_mixed_dimensions_rejected(self, tmp_path):
        path = tmp_path / "mixed.json"
        path.write_text(
            json.dumps({"chunks": [{"id": 0, "text": "a", "vector": [1, 0]}, {"id": 1, "text": "b", "vector": [1]}]}),
            encoding="utf-8",
        )
        store = ChunkStore(path)
        assert store.load().ok is False
        assert store.is_ready() is False

    def test_non_numeric_declared_dimension_reported(self, store, tmp_path):
        path = tmp_path / "bad_dimension.json"
        path.write_text(
            json.dumps({"metadata": {"embeddingDimension": "abc"}, "chunks": [{"id": 0, "text": "a", "vector": [1, 0]}]}),
            encoding="utf-8",
        )

        result = store.load(path)

        assert result.ok is False
        assert result.error_code == "corpus_malformed"
        assert store.info()["totalChunks"] == 3

    def test_non_utf8_file_reported(self, store, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe\x00garbage")

        result = store.load(path)

        assert result.ok is False
        assert result.error_code == "corpus_malformed"
        assert store.is_ready() is True

    def test_legacy_layout_accepted(self, tmp_path):
        path = tmp_path / "legacy.json"
        path.write_text(
            json.dumps(
                {
                    "metadata": {"model": "text-embedding-3-large"},
                    "embeddings": [
                        {"id": 0, "text": "uno", "embedding": [1.0, 0.0]},
                        {"id": 1, "text": "dos", "embedding": [0.0, 1.0]},
                    ],
                }
            ),
            encoding="utf-8",
        )
        store = ChunkStore(path)
        assert store.load().ok
        assert store.search([0.0, 1.0], 1)[0].text == "dos"

    def test_reload_replaces_corpus(self, store, corpus_path):
        data = json.loads(corpus_path.read_text(encoding="utf-8"))
        data["chunks"] = data["chunks"][:1]
        corpus_path.write_text(json.dumps(data), encoding="utf-8")

        assert store.reload().ok
        assert store.info()["totalChunks"] == 1

    def test_info(self, store):
        info = store.info()
        assert info["embeddingDimension"] == 3
        assert info["model"] == "text-embedding-3-large"
        assert info["generatedAt"] == "2024-01-01T00:00:00+00:00"
        assert store.embedding_model == "text-embedding-3-large"
