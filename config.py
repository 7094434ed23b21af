# config.py
"""Application configuration loaded from the environment / .env"""
from typing import Dict, List
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path, get_project_root


class Settings(BaseSettings):
    """Application configuration"""

    # App metadata
    APP_TITLE: str = "ApexFlow Document Workflows"
    APP_VERSION: str = "1.0.0"

    # Logging
    LOGGER_NAME: str = "apexflow"
    LOG_FILE_PATH: str = get_log_file_path()
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./apexflow.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Uploads
    UPLOADS_DIR: str = f"{get_project_root()}/uploads"
    MAX_FILE_SIZE: int = 100 * 1024 * 1024
    ALLOWED_MIME_TYPES: List[str] = [
        "application/pdf",
        "text/plain",
        "text/csv",
        "text/markdown",
        "image/png",
        "image/jpeg",
    ]
    EXTENSION_MIME_TYPES: Dict[str, str] = {
        "pdf": "application/pdf",
        "txt": "text/plain",
        "csv": "text/csv",
        "md": "text/markdown",
        "png": "image/png",
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
    }

    # Text extraction
    OCR_DPI: int = 300
    OCR_LANGUAGES: str = "eng"
    OCR_TIMEOUT_SECONDS: float = 300.0

    # Chunking
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200

    # Embeddings
    EMBEDDING_PROVIDER: str = "local"  # Options: local, huggingface
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_FALLBACK_MODEL_NAME: str = "sentence-transformers/paraphrase-MiniLM-L6-v2"

    # Hugging Face hosted inference
    HUGGINGFACE_API_KEY: str = ""
    HF_INFERENCE_URL: str = "https://router.huggingface.co/hf-inference/models"
    HF_TIMEOUT_SECONDS: int = 60
    HF_SUMMARIZATION_MODEL: str = "facebook/bart-large-cnn"
    HF_SUMMARIZATION_FALLBACK_MODEL: str = "sshleifer/distilbart-cnn-12-6"
    HF_CLASSIFICATION_MODEL: str = "facebook/bart-large-mnli"
    HF_CLASSIFICATION_FALLBACK_MODEL: str = "typeform/distilbert-base-uncased-mnli"
    HF_QA_MODEL: str = "deepset/roberta-base-squad2"
    HF_QA_FALLBACK_MODEL: str = "distilbert-base-cased-distilled-squad"

    # Entity extraction
    NER_MODEL_NAME: str = "dslim/bert-base-NER"
    NER_ENABLED: bool = True
    NER_MAX_TEXT_LENGTH: int = 2000
    NER_RISK_THRESHOLD: int = 7

    # Slack
    SLACK_SIGNING_SECRET: str = ""
    SLACK_BOT_TOKEN: str = ""
    SLACK_API_URL: str = "https://slack.com/api"
    SLACK_TIMESTAMP_TOLERANCE: int = 300

    # Workflows
    DEFAULT_WORKFLOW_ID: str = "demo-workflow-1"
    AUTO_SELECT_OVERRIDE_THRESHOLD: float = 0.8

    # Search
    SEARCH_DEFAULT_TOP_K: int = 5
    SEARCH_MAX_TOP_K: int = 50
    SNIPPET_LENGTH: int = 300
    SUMMARY_DEFAULT_MAX_LENGTH: int = 150

    # Outbound integrations
    REQUEST_TIMEOUT: int = 30
    SMTP_TIMEOUT: int = 30

    # Authentication
    # When False, anonymous callers are served and name themselves via uploaded_by / approver_id
    REQUIRE_AUTHENTICATION: bool = False
    JWT_SECRET: str = "changeme-super-secure-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 24 * 60
    AUTH_COOKIE_NAME: str = "auth-token"
    PASSWORD_MIN_LENGTH: int = 6

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
