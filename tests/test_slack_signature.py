"""Tests for Slack request signature verification."""
import pytest

from core.errors import SignatureVerificationError
from utils.slack_signature import compute_signature, verify_slack_signature

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = b"payload=%7B%22type%22%3A%22block_actions%22%7D"
NOW = 1_700_000_000


def _signed(timestamp: int = NOW, body: bytes = BODY) -> str:
    return compute_signature(SECRET, str(timestamp), body)


def test_signature_format():
    signature = _signed()
    assert signature.startswith("v0=")
    assert len(signature) == 3 + 64


def test_valid_signature_passes():
    verify_slack_signature(BODY, str(NOW), _signed(), signing_secret=SECRET, now=NOW + 10)


def test_tampered_body_rejected():
    with pytest.raises(SignatureVerificationError):
        verify_slack_signature(BODY + b"x", str(NOW), _signed(), signing_secret=SECRET, now=NOW)


def test_wrong_secret_rejected():
    with pytest.raises(SignatureVerificationError):
        verify_slack_signature(BODY, str(NOW), _signed(), signing_secret="other", now=NOW)


def test_stale_timestamp_rejected():
    with pytest.raises(SignatureVerificationError, match="too old"):
        verify_slack_signature(BODY, str(NOW), _signed(), signing_secret=SECRET, now=NOW + 301)


@pytest.mark.parametrize("timestamp,signature", [(None, "v0=abc"), (str(NOW), None), ("", "")])
def test_missing_headers_rejected(timestamp, signature):
    with pytest.raises(SignatureVerificationError):
        verify_slack_signature(BODY, timestamp, signature, signing_secret=SECRET, now=NOW)


def test_non_numeric_timestamp_rejected():
    with pytest.raises(SignatureVerificationError):
        verify_slack_signature(BODY, "yesterday", "v0=abc", signing_secret=SECRET, now=NOW)


def test_unconfigured_secret_allows_request():
    verify_slack_signature(BODY, None, None, signing_secret="")


def test_non_ascii_signature_is_a_mismatch():
    with pytest.raises(SignatureVerificationError, match="mismatch"):
        verify_slack_signature(BODY, str(NOW), "v0=é", signing_secret=SECRET, now=NOW)
