"""Tests for the hosted inference client and its model fallback."""
from unittest.mock import Mock, patch

import pytest
import requests

from config import settings
from core.errors import AIServiceError
from infrastructure.huggingface_client import HuggingFaceClient


def _response(payload) -> Mock:
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


@pytest.fixture
def client() -> HuggingFaceClient:
    return HuggingFaceClient(api_key="hf_test", base_url="https://inference.example.com/models", timeout=5)


@pytest.mark.asyncio
async def test_primary_model_answers(client):
    with patch("infrastructure.huggingface_client.requests.post") as post:
        post.return_value = _response([{"summary_text": " Short version. "}])

        assert await client.summarize("long text " * 50) == "Short version."

    url = post.call_args.args[0]
    assert url == f"https://inference.example.com/models/{settings.HF_SUMMARIZATION_MODEL}"


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    requests.exceptions.Timeout("slow"),
    requests.exceptions.TooManyRedirects("loop"),
    requests.exceptions.ChunkedEncodingError("truncated"),
])
async def test_any_request_failure_falls_back(client, failure):
    with patch("infrastructure.huggingface_client.requests.post") as post:
        post.side_effect = [failure, _response({"labels": ["invoice", "receipt"], "scores": [0.7, 0.2]})]

        label, score = await client.classify("Invoice #1", ["invoice", "receipt"])

    assert (label, score) == ("invoice", 0.7)
    assert post.call_count == 2
    assert settings.HF_CLASSIFICATION_FALLBACK_MODEL in post.call_args.args[0]


@pytest.mark.asyncio
async def test_both_models_failing_raises_service_error(client):
    with patch("infrastructure.huggingface_client.requests.post") as post:
        post.side_effect = requests.exceptions.ContentDecodingError("gzip")

        with pytest.raises(AIServiceError, match="All models failed"):
            await client.answer_question("Who pays?", "Acme pays Beta.")


@pytest.mark.asyncio
async def test_missing_api_key_raises_without_calling():
    with patch("infrastructure.huggingface_client.requests.post") as post:
        with pytest.raises(AIServiceError, match="not configured"):
            await HuggingFaceClient(api_key="").summarize("text")

    post.assert_not_called()
