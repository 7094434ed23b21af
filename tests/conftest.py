"""Pytest configuration and shared fixtures."""
import uuid
from typing import List
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.domain import Document
from core.errors import AIServiceError
from core.interfaces import IAIClient, IEmbeddingService
from database.session import Base, get_db
from infrastructure.file_storage import LocalFileStorage
from infrastructure.repositories import SQLDocumentRepository
from main import app
from services.entity_extractor import EntityExtractor
from services.factory import (
    get_ai_client,
    get_embedding_service,
    get_entity_extractor,
    get_file_storage,
)

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def _memory_engine():
    return create_async_engine(
        MEMORY_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest_asyncio.fixture
async def engine():
    """In-memory database with all tables created."""
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def make_document():
    """Builds an unsaved Document with unique id and hash."""
    def _make(**overrides) -> Document:
        values = dict(
            id=str(uuid.uuid4()),
            filename="notes.txt",
            mime_type="text/plain",
            size=42,
            file_hash=uuid.uuid4().hex,
            stored_filename=f"{uuid.uuid4()}.txt",
            uploaded_by="tester",
        )
        values.update(overrides)
        return Document(**values)
    return _make


@pytest_asyncio.fixture
async def saved_document(session, make_document) -> Document:
    return await SQLDocumentRepository(session).create(make_document())


@pytest.fixture
def mock_embedding_service() -> Mock:
    """Embedding service returning a fixed 3-d vector per text."""
    service = Mock(spec=IEmbeddingService)
    service.model_name = "test-embedding"

    async def embed(texts: List[str]) -> List[List[float]]:
        return [[1.0, 0.0, 0.0] for _ in texts]

    service.generate_embeddings = AsyncMock(side_effect=embed)
    service.generate_query_embedding = AsyncMock(return_value=[1.0, 0.0, 0.0])
    service.get_dimension.return_value = 3
    return service


@pytest.fixture
def mock_ai_client() -> Mock:
    """AI client whose hosted calls all fail, forcing the local fallbacks."""
    client = Mock(spec=IAIClient)
    client.summarize = AsyncMock(side_effect=AIServiceError("offline"))
    client.classify = AsyncMock(side_effect=AIServiceError("offline"))
    client.answer_question = AsyncMock(side_effect=AIServiceError("offline"))
    client.health = AsyncMock(return_value={"status": "unconfigured"})
    return client


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def test_client(tmp_path, mock_embedding_service, mock_ai_client) -> TestClient:
    """
    FastAPI test client backed by a private in-memory database, a temporary
    upload directory and mocked model services.
    """
    engine = _memory_engine()
    maker = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with maker() as session:
            yield session

    storage = LocalFileStorage(tmp_path / "uploads")
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: storage
    app.dependency_overrides[get_embedding_service] = lambda: mock_embedding_service
    app.dependency_overrides[get_ai_client] = lambda: mock_ai_client
    app.dependency_overrides[get_entity_extractor] = lambda: EntityExtractor(ner_pipeline=None)
    return TestClient(app)
