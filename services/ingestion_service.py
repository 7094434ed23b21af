# services/ingestion_service.py
"""Chunk → embed → store for one document's extracted text"""
import logging
from typing import List

from core.domain import DocumentChunk, ExtractionResult
from core.enums import ErrorCode
from core.errors import AIServiceError, DocumentProcessingError
from core.interfaces import IEmbeddingService, IVectorStore
from services.chunking import TextChunker
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class DocumentIngestor:
    def __init__(self, embedding_service: IEmbeddingService, vector_store: IVectorStore, chunker: TextChunker = None):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker or TextChunker()

    async def ingest(self, document_id: str, filename: str, extraction: ExtractionResult) -> int:
        """
        Store embedded chunks for the document and return the chunk count.

        Chunks are written once. If the document already has chunks (a replayed
        extract step) nothing is re-embedded and 0 is returned.
        """
        if await self.vector_store.has_chunks(document_id):
            logger.info(f"Document {document_id} already has chunks; skipping ingestion")
            return 0

        chunks: List[DocumentChunk] = self.chunker.chunk(document_id, extraction.pages, source=filename)
        if not chunks:
            return 0

        try:
            embeddings = await self.embedding_service.generate_embeddings([c.content for c in chunks])
        except AIServiceError:
            raise
        except Exception as e:
            raise DocumentProcessingError(f"Embedding generation failed: {e}", ErrorCode.EMBEDDING_ERROR)

        if len(embeddings) != len(chunks):
            raise DocumentProcessingError(
                f"Expected {len(chunks)} embeddings, got {len(embeddings)}", ErrorCode.EMBEDDING_ERROR
            )
        for chunk, embedding in zip(chunks, embeddings):
            chunk.embedding = embedding
            chunk.metadata["embedding_model"] = self.embedding_service.model_name

        await self.vector_store.add_chunks(chunks)
        logger.info(f"Ingested {len(chunks)} chunks for document {document_id}")
        return len(chunks)
