# infrastructure/embedding_services.py
"""Embedding generation with L2 normalization for consistent similarity scoring"""
import asyncio
import logging
import numpy as np
from typing import Dict, List, Optional
from sentence_transformers import SentenceTransformer

from core.errors import AIServiceError
from core.interfaces import IEmbeddingService
from core.enums import ErrorCode
from infrastructure.huggingface_client import HuggingFaceClient
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


def l2_normalize(arr: np.ndarray) -> np.ndarray:
    """
    L2 normalize vectors to unit length (||v|| = 1), so cosine similarity
    equals the dot product.

    Args:
        arr: (N, D) array of N vectors with D dimensions
    """
    norms = np.linalg.norm(arr, axis=1, keepdims=True)
    norms[norms == 0] = 1e-12  # Avoid division by zero
    return arr / norms


class SentenceTransformerEmbedding(IEmbeddingService):
    """Local sentence-transformers model producing unit vectors."""

    _models: Dict[str, SentenceTransformer] = {}  # Singleton cache per model name

    def __init__(self, model_name: str = settings.EMBEDDING_MODEL_NAME):
        """Initializes the service, loading the heavy model only once."""
        self.model_name = model_name

        if model_name not in SentenceTransformerEmbedding._models:
            try:
                logger.info(f"Attempting to load model {model_name} from local cache...")
                model = SentenceTransformer(model_name, local_files_only=True)
                logger.info(f"Successfully loaded {model_name} from local cache.")
            except OSError as e:
                logger.warning(
                    f"Model {model_name} not found in cache. Attempting online download. "
                    f"This may take a few minutes. Error: {e}"
                )
                model = SentenceTransformer(model_name)
                logger.info(f"Successfully downloaded and loaded {model_name}.")
            SentenceTransformerEmbedding._models[model_name] = model

        self.model = SentenceTransformerEmbedding._models[model_name]

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        raw = await asyncio.to_thread(
            self.model.encode,
            texts,
            convert_to_tensor=False
        )
        normalized = l2_normalize(np.array(raw, dtype="float32"))
        return normalized.tolist()

    async def generate_query_embedding(self, query: str) -> List[float]:
        raw = await asyncio.to_thread(
            self.model.encode,
            query,
            convert_to_tensor=False
        )
        normalized = l2_normalize(np.array(raw, dtype="float32").reshape(1, -1))
        return normalized[0].tolist()

    def get_dimension(self) -> Optional[int]:
        return self.model.get_sentence_embedding_dimension()


class HuggingFaceInferenceEmbedding(IEmbeddingService):
    """Hosted feature-extraction pipeline, falling back to a second model."""

    def __init__(
        self,
        client: HuggingFaceClient,
        model_name: str = settings.EMBEDDING_MODEL_NAME,
        fallback_model_name: str = settings.EMBEDDING_FALLBACK_MODEL_NAME,
    ):
        self.client = client
        self.model_name = model_name
        self.fallback_model_name = fallback_model_name
        self._dimension: Optional[int] = None

    async def _embed(self, texts: List[str]) -> np.ndarray:
        try:
            raw = await self.client.feature_extraction(texts, [self.model_name, self.fallback_model_name])
        except AIServiceError as e:
            raise AIServiceError(f"Embedding generation failed: {e.message}", ErrorCode.EMBEDDING_ERROR)

        arr = np.array(raw, dtype="float32")
        if arr.ndim == 3:
            # Token-level output: mean-pool over tokens
            arr = arr.mean(axis=1)
        elif arr.ndim == 1:
            arr = arr.reshape(1, -1)
        self._dimension = int(arr.shape[1])
        return l2_normalize(arr)

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return (await self._embed(texts)).tolist()

    async def generate_query_embedding(self, query: str) -> List[float]:
        return (await self._embed([query]))[0].tolist()

    def get_dimension(self) -> Optional[int]:
        return self._dimension
