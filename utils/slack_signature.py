# utils/slack_signature.py
"""Verification of Slack request signatures"""
import hashlib
import hmac
import logging
import time
from typing import Optional

from core.errors import SignatureVerificationError
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

SIGNATURE_VERSION = "v0"


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    signing_secret: Optional[str] = None,
    tolerance: int = settings.SLACK_TIMESTAMP_TOLERANCE,
    now: Optional[float] = None,
) -> None:
    """
    Raises SignatureVerificationError unless the request was signed with the
    signing secret within the tolerance window. With no secret configured the
    request is allowed and a warning is logged.
    """
    secret = settings.SLACK_SIGNING_SECRET if signing_secret is None else signing_secret
    if not secret:
        logger.warning("SLACK_SIGNING_SECRET is not set; accepting unsigned Slack request")
        return

    if not timestamp or not signature:
        raise SignatureVerificationError("Missing Slack signature headers")
    try:
        request_time = int(timestamp)
    except ValueError:
        raise SignatureVerificationError("Invalid Slack request timestamp")

    current = time.time() if now is None else now
    if abs(current - request_time) > tolerance:
        raise SignatureVerificationError("Slack request timestamp is too old")

    expected = compute_signature(secret, timestamp, body)
    # Header text may hold non-ASCII characters, so compare as bytes
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "surrogateescape")):
        raise SignatureVerificationError("Slack signature mismatch")
