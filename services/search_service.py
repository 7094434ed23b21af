# services/search_service.py
"""Semantic search and the agent endpoints built on it"""
import logging
from typing import Any, Dict, List, Optional

from core.domain import ChunkSearchResult
from core.errors import AIServiceError, ValidationError
from core.interfaces import IAIClient, IDocumentRepository, IEmbeddingService
from infrastructure.vector_stores import SQLVectorStore
from utils.common import truncate_text
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

NO_RESULTS_ANSWER = "No relevant documents found for this question."


class SearchService:

    def __init__(
        self,
        embedding_service: IEmbeddingService,
        vector_store: SQLVectorStore,
        document_repo: IDocumentRepository,
        ai_client: IAIClient,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.document_repo = document_repo
        self.ai_client = ai_client

    @staticmethod
    def _require(value: Optional[str], field_name: str) -> str:
        if not value or not value.strip():
            raise ValidationError(f"{field_name} is required")
        return value.strip()

    async def _filenames(self, results: List[ChunkSearchResult]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        for result in results:
            document_id = result.chunk.document_id
            if document_id not in names:
                document = await self.document_repo.get_by_id(document_id)
                names[document_id] = document.filename if document else result.chunk.metadata.get("source", "")
        return names

    async def _retrieve(self, query: str, top_k: int, document_id: Optional[str]) -> List[ChunkSearchResult]:
        top_k = max(1, min(top_k or settings.SEARCH_DEFAULT_TOP_K, settings.SEARCH_MAX_TOP_K))
        embedding = await self.embedding_service.generate_query_embedding(query)
        return await self.vector_store.search(embedding, top_k=top_k, document_id=document_id)

    async def search(
        self, query: str, top_k: int = settings.SEARCH_DEFAULT_TOP_K, document_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = self._require(query, "Query")
        results = await self._retrieve(query, top_k, document_id)
        filenames = await self._filenames(results)
        logger.info(f"Search '{query[:50]}' returned {len(results)} chunks")
        return [
            {
                "chunk_id": r.chunk.id,
                "document_id": r.chunk.document_id,
                "filename": filenames.get(r.chunk.document_id, ""),
                "chunk_index": r.chunk.chunk_index,
                "page_number": r.chunk.page_number,
                "content": truncate_text(r.chunk.content, settings.SNIPPET_LENGTH),
                "score": round(r.score, 4),
            }
            for r in results
        ]

    # ============= Agent =============

    async def answer(
        self, query: str, top_k: int = settings.SEARCH_DEFAULT_TOP_K, document_id: Optional[str] = None
    ) -> Dict[str, Any]:
        query = self._require(query, "Query")
        results = await self._retrieve(query, top_k, document_id)
        if not results:
            return {"query": query, "answer": NO_RESULTS_ANSWER, "confidence": 0.0, "method": "none", "sources": []}

        filenames = await self._filenames(results)
        sources = [
            {
                "document_id": r.chunk.document_id,
                "filename": filenames.get(r.chunk.document_id, ""),
                "chunk_index": r.chunk.chunk_index,
                "score": round(r.score, 4),
            }
            for r in results
        ]
        context = "\n\n".join(r.chunk.content for r in results)
        try:
            qa = await self.ai_client.answer_question(query, context)
            answer, confidence, method = qa["answer"], qa["score"], "ai"
        except AIServiceError as e:
            logger.warning(f"AI question answering unavailable, using best chunk: {e.message}")
            answer = truncate_text(results[0].chunk.content, settings.SNIPPET_LENGTH)
            confidence, method = results[0].score, "extractive"
        return {
            "query": query,
            "answer": answer,
            "confidence": round(float(confidence), 4),
            "method": method,
            "sources": sources,
        }

    async def summarize(self, text: str, max_length: int = settings.SUMMARY_DEFAULT_MAX_LENGTH) -> Dict[str, Any]:
        text = self._require(text, "Text")
        if max_length <= 0:
            raise ValidationError("max_length must be positive")
        try:
            summary = await self.ai_client.summarize(text, max_length=max_length)
            method = "ai"
        except AIServiceError as e:
            logger.warning(f"AI summarization unavailable, truncating: {e.message}")
            summary = text if len(text) <= max_length else text[:max_length] + "..."
            method = "truncation"
        return {"summary": summary, "method": method, "original_length": len(text)}

    async def embed(self, text: str) -> Dict[str, Any]:
        text = self._require(text, "Text")
        embedding = await self.embedding_service.generate_query_embedding(text)
        return {"embedding": embedding, "dimensions": len(embedding), "model": self.embedding_service.model_name}

    # ============= Health =============

    async def vector_health(self) -> Dict[str, Any]:
        return await self.vector_store.health()

    async def ai_health(self) -> Dict[str, Any]:
        return await self.ai_client.health()

    async def health(self) -> Dict[str, Any]:
        vector = await self.vector_health()
        ai = await self.ai_health()
        return {
            "status": "healthy",
            "embedding": {
                "model": self.embedding_service.model_name,
                "dimension": self.embedding_service.get_dimension(),
            },
            "vector_store": vector,
            "ai": ai,
        }
