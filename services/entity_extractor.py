# services/entity_extractor.py
"""
Named-entity extraction.

A transformer NER pipeline handles clean text. Text that looks risky for the
tokenizer (binary noise, long digit runs, mixed encodings) or that the model
fails on is handled by regular expressions instead, and partial model results
are topped up with pattern matches.
"""
import asyncio
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.domain import ExtractedEntity
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CLEAN_TEXT_LIMIT = 4000
MIN_MODEL_TEXT_LENGTH = 10
CHUNK_FAILURE_RATIO = 0.5
MIN_ENTITIES_BEFORE_MERGE = 5
MIN_ENTITY_SCORE = 0.1
DEFAULT_ENTITY_SCORE = 0.8

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_ALNUM = re.compile(r"[a-zA-Z0-9]")

# (pattern, label, confidence)
ENTITY_PATTERNS: List[Tuple[re.Pattern, str, float]] = [
    (re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b"), "PERSON", 0.7),
    (re.compile(
        r"\b[A-Z][a-zA-Z\s]+(?:Inc|Corp|LLC|Ltd|Company|Corporation|Group|Enterprises"
        r"|Solutions|Systems|Technologies|Services)\b"
    ), "ORG", 0.8),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "EMAIL", 0.9),
    (re.compile(r"(?<!\d)(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b"), "PHONE", 0.8),
    (re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"), "DATE", 0.7),
    (re.compile(
        r"\b(?:January|February|March|April|May|June|July|August|September|October"
        r"|November|December)\s+\d{1,2},?\s+\d{4}\b"
    ), "DATE", 0.8),
    (re.compile(r"\$[\d,]+\.?\d*"), "MONEY", 0.9),
    (re.compile(r"€[\d,]+\.?\d*"), "MONEY", 0.9),
    (re.compile(r"£[\d,]+\.?\d*"), "MONEY", 0.9),
    (re.compile(r"¥[\d,]+\.?\d*"), "MONEY", 0.9),
    (re.compile(
        r"\b\d+\s+[A-Za-z\s]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard"
        r"|Blvd|Way|Circle|Ct|Court|Place|Pl)\b"
    ), "ADDRESS", 0.6),
    (re.compile(r"\b\d{5}(?:-\d{4})?\b"), "ZIP", 0.8),
    (re.compile(r"\b(?:INV|Invoice|Bill|Receipt)[\s#-]*[A-Z0-9-]+\b", re.IGNORECASE), "INVOICE_NUMBER", 0.8),
    (re.compile(r"\b(?:Tax\s+ID|EIN|SSN)[\s#-]*[\d-]+\b", re.IGNORECASE), "TAX_ID", 0.7),
    (re.compile(r"\b(?:SKU|Product|Item)[\s#-]*[A-Z0-9-]+\b", re.IGNORECASE), "PRODUCT_CODE", 0.7),
    (re.compile(r"https?://[^\s]+"), "URL", 0.9),
    (re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"), "CARD_NUMBER", 0.8),
]


# ============= Text heuristics =============

def clean_text(text: str) -> str:
    """Normalise text before it reaches the tokenizer."""
    if not text:
        return ""
    cleaned = _CONTROL_CHARS.sub("", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = re.sub(r"(.)\1{5,}", r"\1\1\1", cleaned)
    cleaned = re.sub(r"\b\d{5,}n\b", "", cleaned)
    cleaned = re.sub(r"\.{3,}", "...", cleaned)
    return cleaned[:CLEAN_TEXT_LIMIT].strip()


def failure_risk(text: str) -> int:
    """
    Score 0-10 of how likely the NER model is to choke on this text.
    Scored on the raw text so control characters still count.
    """
    if not text:
        return 0
    length = len(text)
    risk = 0

    if len(_CONTROL_CHARS.findall(text)) / length > 0.05:
        risk += 3

    repeated_runs = sum(1 for _ in re.finditer(r"(.)\1{10,}", text))
    risk += min(3, repeated_runs)

    if sum(ch.isdigit() for ch in text) / length > 0.3:
        risk += 2

    if len(re.findall(r"\b\w{30,}\b", text)) > 5:
        risk += 2

    if sum(1 for ch in text if ord(ch) > 0x7F) / length > 0.1:
        risk += 2

    return min(10, risk)


def split_text(text: str, max_chunk_size: int) -> List[Tuple[int, str]]:
    """Split at word boundaries; returns (offset, chunk) pairs."""
    if len(text) <= max_chunk_size:
        return [(0, text)]

    chunks = []
    start = 0
    while start < len(text):
        end = start + max_chunk_size
        if end < len(text):
            last_space = text.rfind(" ", start, end + 1)
            if last_space > start:
                end = last_space
        chunks.append((start, text[start:end]))
        start = end + 1
    return chunks


# ============= Pattern extraction =============

def extract_with_patterns(text: str) -> List[ExtractedEntity]:
    entities: List[ExtractedEntity] = []
    seen = set()
    for pattern, label, confidence in ENTITY_PATTERNS:
        for match in pattern.finditer(text or ""):
            key = (match.group(0), match.start())
            if key in seen:
                continue
            seen.add(key)
            entities.append(ExtractedEntity(
                text=match.group(0),
                label=label,
                score=confidence,
                start=match.start(),
                end=match.end(),
                source="pattern",
            ))
    entities.sort(key=lambda e: e.score, reverse=True)
    logger.info(f"Pattern-based entity extraction completed: {len(entities)} entities found")
    return entities


def _validate(raw: Dict[str, Any]) -> bool:
    text = raw.get("word") or raw.get("entity") or ""
    if not text:
        return False
    if not (raw.get("entity_group") or raw.get("label")):
        return False
    score = raw.get("score") or raw.get("confidence") or 0
    if score < MIN_ENTITY_SCORE:
        return False
    if len(text) < 2 or len(text) > 100:
        return False
    return bool(_ALNUM.search(text))


def _normalize(raw: Dict[str, Any], offset: int) -> ExtractedEntity:
    start = raw.get("start")
    end = raw.get("end")
    return ExtractedEntity(
        text=(raw.get("word") or raw.get("entity")).strip(),
        label=raw.get("entity_group") or raw.get("label"),
        score=float(raw.get("score") or raw.get("confidence") or DEFAULT_ENTITY_SCORE),
        start=start + offset if start is not None else None,
        end=end + offset if end is not None else None,
        source="model",
    )


def merge_entities(model_entities: List[ExtractedEntity], pattern_entities: List[ExtractedEntity]) -> List[ExtractedEntity]:
    """Model results first, then pattern hits for texts the model missed; deduped by lowercased text."""
    merged: List[ExtractedEntity] = []
    seen = set()
    for entity in list(model_entities) + list(pattern_entities):
        key = entity.text.lower().strip()
        if key and key not in seen:
            seen.add(key)
            merged.append(entity)
    merged.sort(key=lambda e: e.score, reverse=True)
    return merged


# ============= Model management =============

class NerModelManager:
    """Lazily loads the token-classification pipeline once per process."""

    _pipeline: Optional[Callable] = None
    _load_failed = False

    @classmethod
    def get_pipeline(cls) -> Optional[Callable]:
        if not settings.NER_ENABLED or cls._load_failed:
            return None
        if cls._pipeline is None:
            try:
                from transformers import pipeline  # heavy import, deferred until first use
                logger.info(f"Loading NER model {settings.NER_MODEL_NAME}...")
                cls._pipeline = pipeline(
                    "token-classification",
                    model=settings.NER_MODEL_NAME,
                    aggregation_strategy="simple",
                )
                logger.info("NER model loaded.")
            except (OSError, ValueError, RuntimeError) as e:
                logger.warning(f"NER model unavailable, pattern extraction will be used: {e}")
                cls._load_failed = True
                return None
        return cls._pipeline


# ============= Extractor =============

class EntityExtractor:

    def __init__(
        self,
        ner_pipeline: Optional[Callable[[str], Any]] = None,
        max_text_length: int = settings.NER_MAX_TEXT_LENGTH,
        risk_threshold: int = settings.NER_RISK_THRESHOLD,
    ):
        self.ner_pipeline = ner_pipeline
        self.max_text_length = max_text_length
        self.risk_threshold = risk_threshold

    async def extract(self, text: str) -> List[ExtractedEntity]:
        if self.ner_pipeline is None:
            logger.warning("NER pipeline not available, using pattern-based fallback")
            return extract_with_patterns(text)

        cleaned = clean_text(text)
        if len(cleaned) < MIN_MODEL_TEXT_LENGTH:
            logger.warning("Text too short or invalid for NER, using pattern-based fallback")
            return extract_with_patterns(text)

        risk = failure_risk(text[:CLEAN_TEXT_LIMIT])
        if risk >= self.risk_threshold:
            logger.warning(f"High NER failure risk ({risk}/10), using pattern-based fallback")
            return extract_with_patterns(text)

        chunks = split_text(cleaned, self.max_text_length)
        max_failures = math.ceil(len(chunks) * CHUNK_FAILURE_RATIO)
        failures = 0
        found: List[ExtractedEntity] = []

        for offset, chunk in chunks:
            try:
                result = await asyncio.to_thread(self.ner_pipeline, chunk)
            except Exception as e:
                # Tokenizer/tensor errors surface as a variety of exception types
                failures += 1
                logger.warning(f"NER chunk processing failed: {e}")
                if failures > max_failures:
                    logger.warning(
                        f"Too many NER failures ({failures}/{len(chunks)}), switching to pattern-based extraction"
                    )
                    return extract_with_patterns(text)
                continue

            raw_entities = result if isinstance(result, list) else [result]
            valid = [r for r in raw_entities if isinstance(r, dict) and _validate(r)]
            if not valid:
                failures += 1
                logger.debug("NER chunk returned no valid entities")
                continue
            found.extend(_normalize(r, offset) for r in valid)

        if failures > max_failures:
            return extract_with_patterns(text)

        if failures > 0 and len(found) < MIN_ENTITIES_BEFORE_MERGE:
            logger.info(f"NER had {failures} failures, supplementing with pattern-based extraction")
            return merge_entities(found, extract_with_patterns(text))

        logger.info(f"NER extraction completed: {len(found)} entities found")
        return sorted(found, key=lambda e: e.score, reverse=True)
