# infrastructure/huggingface_client.py
"""Hosted Hugging Face inference with per-task model fallback"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from core.errors import AIServiceError
from core.interfaces import IAIClient
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

MAX_INPUT_CHARS = 4000


class HuggingFaceClient(IAIClient):
    """
    Calls the Hugging Face inference endpoint for each task's primary model and,
    if that fails, its fallback model. When both fail (or no API key is set) an
    AIServiceError is raised so callers can substitute a static response.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_key = settings.HUGGINGFACE_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.HF_INFERENCE_URL).rstrip("/")
        self.timeout = timeout or settings.HF_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, model: str, payload: Dict[str, Any], task_path: str = "") -> Any:
        """Blocking request; run through asyncio.to_thread."""
        url = f"{self.base_url}/{model}{task_path}"
        try:
            logger.info(f"Calling Hugging Face model '{model}'...")
            response = requests.post(
                url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout:
            raise AIServiceError(f"Model {model} timed out after {self.timeout} seconds")
        except requests.exceptions.ConnectionError:
            raise AIServiceError(f"Cannot connect to inference endpoint for {model}")
        except requests.exceptions.HTTPError as e:
            raise AIServiceError(f"Model {model} returned {e.response.status_code}: {e.response.text[:200]}")
        except ValueError:
            raise AIServiceError(f"Model {model} returned a non-JSON response")
        except requests.exceptions.RequestException as e:
            raise AIServiceError(f"Request to model {model} failed: {e}")

        if isinstance(result, dict) and result.get("error"):
            raise AIServiceError(f"Model {model} error: {result['error']}")
        return result

    async def _infer(self, models: List[str], payload: Dict[str, Any], task_path: str = "") -> Any:
        if not self.configured:
            raise AIServiceError("Hugging Face API key is not configured")

        last_error: Optional[AIServiceError] = None
        for model in models:
            try:
                return await asyncio.to_thread(self._post, model, payload, task_path)
            except AIServiceError as e:
                logger.warning(f"Inference with {model} failed: {e.message}")
                last_error = e
        raise AIServiceError(f"All models failed; last error: {last_error.message if last_error else 'none'}")

    # ============= Tasks =============

    async def summarize(self, text: str, max_length: int = 150) -> str:
        payload = {
            "inputs": text[:MAX_INPUT_CHARS],
            "parameters": {
                "max_length": max_length,
                "min_length": max(5, min(30, max_length // 2)),
                "do_sample": False,
            },
        }
        result = await self._infer(
            [settings.HF_SUMMARIZATION_MODEL, settings.HF_SUMMARIZATION_FALLBACK_MODEL], payload
        )
        if isinstance(result, list) and result and result[0].get("summary_text"):
            return result[0]["summary_text"].strip()
        raise AIServiceError("Summarization response was empty or malformed")

    async def classify(self, text: str, labels: List[str]) -> Tuple[str, float]:
        payload = {
            "inputs": text[:MAX_INPUT_CHARS],
            "parameters": {"candidate_labels": labels},
        }
        result = await self._infer(
            [settings.HF_CLASSIFICATION_MODEL, settings.HF_CLASSIFICATION_FALLBACK_MODEL], payload
        )
        # Two response shapes: {"labels": [...], "scores": [...]} or [{"label", "score"}, ...]
        if isinstance(result, dict) and result.get("labels") and result.get("scores"):
            pairs = list(zip(result["labels"], result["scores"]))
        elif isinstance(result, list) and result and isinstance(result[0], dict) and "label" in result[0]:
            pairs = [(item["label"], item["score"]) for item in result]
        else:
            raise AIServiceError("Classification response was empty or malformed")
        label, score = max(pairs, key=lambda p: p[1])
        return label, float(score)

    async def answer_question(self, question: str, context: str) -> Dict[str, Any]:
        payload = {"inputs": {"question": question, "context": context[:MAX_INPUT_CHARS]}}
        result = await self._infer([settings.HF_QA_MODEL, settings.HF_QA_FALLBACK_MODEL], payload)
        if isinstance(result, list) and result:
            result = result[0]
        if isinstance(result, dict) and result.get("answer"):
            return {"answer": result["answer"].strip(), "score": float(result.get("score", 0.0))}
        raise AIServiceError("Question answering response was empty or malformed")

    async def feature_extraction(self, texts: List[str], models: List[str]) -> Any:
        return await self._infer(models, {"inputs": texts}, task_path="/pipeline/feature-extraction")

    async def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self.configured else "unconfigured",
            "api_key_configured": self.configured,
            "endpoint": self.base_url,
            "models": {
                "summarization": [settings.HF_SUMMARIZATION_MODEL, settings.HF_SUMMARIZATION_FALLBACK_MODEL],
                "classification": [settings.HF_CLASSIFICATION_MODEL, settings.HF_CLASSIFICATION_FALLBACK_MODEL],
                "question_answering": [settings.HF_QA_MODEL, settings.HF_QA_FALLBACK_MODEL],
            },
        }
