# utils/common.py
"""Common utilities: content decoding, hashing, validation and path management"""
import base64
import binascii
import hashlib
import re
import os
from pathlib import Path
from typing import Any, Dict, Optional

# config.py imports this module, so nothing here may import settings

SECRET_CONFIG_KEYS = {"bot_token", "password", "api_key", "token", "connection_string", "secret", "auth_token"}


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Creates the log directory if it doesn't exist and returns the full log file path."""
    project_root = get_project_root()
    log_dir = os.path.join(project_root, 'log')

    if not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    return os.path.join(log_dir, 'apexflow.log')


# ============= Content Decoding =============

def decode_content(content: str, encoding: str = "base64") -> bytes:
    """
    Decodes inline upload content.

    `encoding` is either "base64" (optionally a data URL) or "text".
    Raises ValueError when the payload cannot be decoded.
    """
    if encoding == "text":
        return content.encode("utf-8")

    if content.startswith("data:") and "," in content:
        content = content.split(",", 1)[1]
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 content: {e}")


def guess_mime_type(filename: str) -> Optional[str]:
    """Maps the file extension to a supported MIME type."""
    from config import settings  # Lazy import
    return settings.EXTENSION_MIME_TYPES.get(get_file_extension(filename))


# ============= File Utilities =============

def get_file_hash(content: bytes) -> str:
    """Calculates the SHA256 hash of file content."""
    return hashlib.sha256(content).hexdigest()


def validate_document_id(doc_id: str) -> bool:
    """Validate document ID format."""
    uuid_pattern = r'^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$'
    return bool(re.match(uuid_pattern, doc_id, re.IGNORECASE))


def sanitize_filename(filename: str) -> str:
    """Remove dangerous characters from filename."""
    safe_name = os.path.basename(filename.replace("\\", "/"))
    safe_name = re.sub(r'[^\w\-_\.]', '_', safe_name)
    return safe_name[:100]


def get_file_extension(filename: str) -> str:
    """Extracts and normalizes the file extension from a filename."""
    return Path(filename).suffix[1:].lower()


def count_words(text: str) -> int:
    return len(text.split())


# ============= Secrets =============

def mask_secrets(config: Dict[str, Any]) -> Dict[str, Any]:
    """Returns a copy of an integration config with secret values masked."""
    masked = {}
    for key, value in (config or {}).items():
        if key.lower() in SECRET_CONFIG_KEYS and isinstance(value, str) and value:
            masked[key] = "****" + value[-4:] if len(value) > 8 else "****"
        elif isinstance(value, dict):
            masked[key] = mask_secrets(value)
        else:
            masked[key] = value
    return masked


def truncate_text(text: str, max_chars: int) -> str:
    """Cuts text at a word boundary and appends '...' when it was shortened."""
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rsplit(" ", 1)[0] or text[:max_chars]
    return cut.rstrip(" ,.;:") + "..."
