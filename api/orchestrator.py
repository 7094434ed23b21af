# api/orchestrator.py
"""Agent endpoints: question answering, summaries, embeddings and health"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.errors import http_error
from api.schemas import EmbeddingRequest, QARequest, SummarizeRequest
from core.errors import ApexFlowError
from services.factory import get_search_service
from services.search_service import SearchService

router = APIRouter(prefix="/agent")


@router.post("/qa")
async def question_answering(
    request: QARequest,
    search_service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        return await search_service.answer(request.query, request.top_k, request.document_id)
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/summarize")
async def summarize(
    request: SummarizeRequest,
    search_service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        return await search_service.summarize(request.text, request.max_length)
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/embeddings")
async def embeddings(
    request: EmbeddingRequest,
    search_service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        return await search_service.embed(request.text)
    except ApexFlowError as e:
        raise http_error(e)


@router.get("/health")
async def agent_health(search_service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return await search_service.health()


@router.get("/hf-health")
async def hf_health(search_service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return await search_service.ai_health()


@router.get("/vector-health")
async def vector_health(search_service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return await search_service.vector_health()
