# infrastructure/vector_stores.py
"""SQL-backed vector store with brute-force cosine ranking"""
import asyncio
import logging
from typing import List, Optional, Sequence

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.domain import ChunkSearchResult, DocumentChunk
from core.errors import VectorDimensionError
from core.interfaces import IVectorStore
from database.session import ChunkEntity

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


# ============= Similarity =============

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    Raises VectorDimensionError when the lengths differ and ValueError for
    empty vectors. A zero-magnitude vector has similarity 0.0 with anything.
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.size == 0 or vec_b.size == 0:
        raise ValueError("Cannot compare empty vectors")
    if vec_a.shape != vec_b.shape:
        raise VectorDimensionError(
            f"Vector dimensions differ: {vec_a.shape[0]} != {vec_b.shape[0]}"
        )

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(vec_a, vec_b) / (norm_a * norm_b), -1.0, 1.0))


def _score_matrix(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Row-wise cosine similarity of matrix against query."""
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    denominators = row_norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denominators > 0, (matrix @ query) / denominators, 0.0)
    return np.clip(scores, -1.0, 1.0)


# ============= SQL Vector Store =============

class SQLVectorStore(IVectorStore):
    """
    Chunks and their embeddings live in the `document_chunks` table.

    Search loads every chunk with an embedding (optionally for one document),
    scores them all against the query and returns the top K. Ties are broken
    by (document_id, chunk_index) so identical inputs give identical output.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: ChunkEntity) -> DocumentChunk:
        return DocumentChunk(
            id=row.id,
            content=row.content,
            document_id=row.document_id,
            chunk_index=row.chunk_index,
            metadata=dict(row.chunk_metadata or {}),
            embedding=row.embedding,
            page_number=row.page_number,
        )

    async def add_chunks(self, chunks: List[DocumentChunk]) -> bool:
        if not chunks:
            return True

        dimensions = {len(c.embedding) for c in chunks if c.embedding}
        if len(dimensions) > 1:
            raise VectorDimensionError(
                f"Chunks carry embeddings of mixed dimensions: {sorted(dimensions)}"
            )

        for chunk in chunks:
            self.session.add(ChunkEntity(
                id=chunk.id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=[float(x) for x in chunk.embedding] if chunk.embedding else None,
                page_number=chunk.page_number,
                chunk_metadata=dict(chunk.metadata),
            ))
        await self.session.commit()
        logger.info(f"Stored {len(chunks)} chunks for document {chunks[0].document_id}")
        return True

    async def search(
        self,
        query_embedding: List[float],
        top_k: int = 5,
        document_id: Optional[str] = None,
    ) -> List[ChunkSearchResult]:
        if not query_embedding:
            raise ValueError("Query embedding must not be empty")
        if top_k <= 0:
            return []

        stmt = select(ChunkEntity).where(ChunkEntity.embedding.isnot(None))
        if document_id:
            stmt = stmt.where(ChunkEntity.document_id == document_id)
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        if not rows:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        for row in rows:
            if len(row.embedding) != query.shape[0]:
                raise VectorDimensionError(
                    f"Chunk {row.id} has dimension {len(row.embedding)}, "
                    f"query has {query.shape[0]}"
                )

        matrix = np.asarray([row.embedding for row in rows], dtype=np.float64)
        scores = await asyncio.to_thread(_score_matrix, matrix, query)

        ranked = sorted(
            zip(rows, scores.tolist()),
            key=lambda pair: (-pair[1], pair[0].document_id, pair[0].chunk_index),
        )
        return [
            ChunkSearchResult(chunk=self._to_domain(row), score=float(score))
            for row, score in ranked[:top_k]
        ]

    async def has_chunks(self, document_id: str) -> bool:
        result = await self.session.execute(
            select(ChunkEntity.id).where(ChunkEntity.document_id == document_id).limit(1)
        )
        return result.first() is not None

    async def delete_by_document(self, document_id: str) -> int:
        result = await self.session.execute(
            delete(ChunkEntity).where(ChunkEntity.document_id == document_id)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(ChunkEntity.id)))
        return int(result.scalar_one())

    async def count_with_embeddings(self) -> int:
        result = await self.session.execute(
            select(func.count(ChunkEntity.id)).where(ChunkEntity.embedding.isnot(None))
        )
        return int(result.scalar_one())

    async def health(self) -> dict:
        total = await self.count()
        with_embeddings = await self.count_with_embeddings()
        return {
            "status": "healthy",
            "collection": ChunkEntity.__tablename__,
            "total_chunks": total,
            "chunks_with_embeddings": with_embeddings,
        }
