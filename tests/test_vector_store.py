"""Tests for cosine similarity and the SQL vector store."""
import math

import pytest

from core.domain import DocumentChunk
from core.errors import VectorDimensionError
from infrastructure.vector_stores import SQLVectorStore, cosine_similarity


def _chunk(document_id: str, index: int, embedding, content: str = "text") -> DocumentChunk:
    return DocumentChunk(
        id=f"{document_id}:{index}",
        content=f"{content} {index}",
        document_id=document_id,
        chunk_index=index,
        embedding=embedding,
    )


class TestCosineSimilarity:

    def test_self_similarity_is_one(self):
        assert cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_is_symmetric(self):
        a, b = [1.0, 2.0, 3.0], [4.0, -5.0, 6.0]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(VectorDimensionError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_dimension_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])

    def test_empty_vector_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([], [])


class TestSQLVectorStore:

    @pytest.mark.asyncio
    async def test_search_orders_by_descending_score(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([
            _chunk("doc-a", 0, [0.0, 1.0]),
            _chunk("doc-a", 1, [1.0, 0.0]),
            _chunk("doc-a", 2, [1.0, 1.0]),
        ])

        results = await store.search([1.0, 0.0], top_k=3)

        assert [r.chunk.chunk_index for r in results] == [1, 2, 0]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(1 / math.sqrt(2))

    @pytest.mark.asyncio
    async def test_ties_broken_by_document_then_chunk_index(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc-b", 1, [1.0, 0.0]), _chunk("doc-b", 0, [2.0, 0.0])])
        await store.add_chunks([_chunk("doc-a", 3, [3.0, 0.0])])

        first = await store.search([1.0, 0.0], top_k=3)
        second = await store.search([1.0, 0.0], top_k=3)

        ids = [r.chunk.id for r in first]
        assert ids == ["doc-a:3", "doc-b:0", "doc-b:1"]
        assert ids == [r.chunk.id for r in second]

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc", i, [1.0, float(i)]) for i in range(5)])

        assert len(await store.search([1.0, 0.0], top_k=2)) == 2
        assert await store.search([1.0, 0.0], top_k=0) == []

    @pytest.mark.asyncio
    async def test_document_filter(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc-a", 0, [1.0, 0.0])])
        await store.add_chunks([_chunk("doc-b", 0, [1.0, 0.0])])

        results = await store.search([1.0, 0.0], top_k=5, document_id="doc-b")

        assert [r.chunk.document_id for r in results] == ["doc-b"]

    @pytest.mark.asyncio
    async def test_stored_dimension_mismatch_raises(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc", 0, [1.0, 0.0, 0.0])])

        with pytest.raises(VectorDimensionError):
            await store.search([1.0, 0.0], top_k=1)

    @pytest.mark.asyncio
    async def test_mixed_dimensions_rejected_on_insert(self, session):
        store = SQLVectorStore(session)
        with pytest.raises(VectorDimensionError):
            await store.add_chunks([_chunk("doc", 0, [1.0, 0.0]), _chunk("doc", 1, [1.0, 0.0, 0.0])])

    @pytest.mark.asyncio
    async def test_chunks_without_embeddings_are_not_searched(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc", 0, None), _chunk("doc", 1, [1.0, 0.0])])

        results = await store.search([1.0, 0.0], top_k=5)

        assert [r.chunk.chunk_index for r in results] == [1]
        assert await store.count() == 2
        assert await store.count_with_embeddings() == 1

    @pytest.mark.asyncio
    async def test_delete_by_document(self, session):
        store = SQLVectorStore(session)
        await store.add_chunks([_chunk("doc-a", i, [1.0, 0.0]) for i in range(3)])
        await store.add_chunks([_chunk("doc-b", 0, [1.0, 0.0])])

        assert await store.delete_by_document("doc-a") == 3
        assert not await store.has_chunks("doc-a")
        assert await store.has_chunks("doc-b")

    @pytest.mark.asyncio
    async def test_empty_query_raises(self, session):
        with pytest.raises(ValueError):
            await SQLVectorStore(session).search([], top_k=1)
