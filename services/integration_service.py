# services/integration_service.py
"""Integration configuration, validation and connectivity tests"""
import logging
import re
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from core.domain import Integration, to_iso, utc_now
from core.enums import IntegrationStatus, IntegrationType
from core.errors import IntegrationError, NotFoundError, ValidationError
from core.interfaces import IIntegrationRepository
from infrastructure.notifiers import NotifierRegistry
from utils.common import mask_secrets
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

EMAIL_ADDRESS = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
WEBHOOK_METHODS = {"POST", "PUT", "PATCH"}
DATABASE_TYPES = {"sqlite", "postgresql", "mysql", "mongodb"}


# ============= Validation =============

def _validate_slack(config: Dict[str, Any]) -> List[str]:
    errors = []
    workspace = urlparse(config.get("workspace_url") or "")
    if workspace.scheme != "https" or not (workspace.hostname or "").endswith("slack.com"):
        errors.append("workspace_url must be an https slack.com URL")
    if not str(config.get("bot_token") or "").startswith("xoxb-"):
        errors.append("bot_token must start with 'xoxb-'")
    if not config.get("default_channel"):
        errors.append("default_channel is required")
    return errors


def _validate_email(config: Dict[str, Any]) -> List[str]:
    errors = []
    if not config.get("username"):
        errors.append("username is required")
    if not config.get("password"):
        errors.append("password is required")
    if not EMAIL_ADDRESS.match(config.get("from_address") or ""):
        errors.append("from_address must be a valid email address")
    if config.get("provider", "smtp") == "smtp" and not config.get("smtp_host"):
        errors.append("smtp_host is required for the smtp provider")
    return errors


def _validate_webhook(config: Dict[str, Any]) -> List[str]:
    errors = []
    url = urlparse(config.get("url") or "")
    if url.scheme not in ("http", "https") or not url.netloc:
        errors.append("url must be a valid http(s) URL")
    if str(config.get("method", "POST")).upper() not in WEBHOOK_METHODS:
        errors.append(f"method must be one of {', '.join(sorted(WEBHOOK_METHODS))}")
    return errors


def _validate_database(config: Dict[str, Any]) -> List[str]:
    errors = []
    if not config.get("database_name"):
        errors.append("database_name is required")
    if config.get("database_type") not in DATABASE_TYPES:
        errors.append(f"database_type must be one of {', '.join(sorted(DATABASE_TYPES))}")
    if not (config.get("host") or config.get("connection_string")):
        errors.append("host or connection_string is required")
    return errors


VALIDATORS = {
    IntegrationType.SLACK: _validate_slack,
    IntegrationType.EMAIL: _validate_email,
    IntegrationType.WEBHOOK: _validate_webhook,
    IntegrationType.DATABASE: _validate_database,
}


def validate_config(integration_type: IntegrationType, config: Dict[str, Any]) -> List[str]:
    """Returns the list of problems with the config; empty when valid."""
    return VALIDATORS[integration_type](config or {})


def to_response(integration: Integration) -> Dict[str, Any]:
    return {
        "id": integration.id,
        "type": integration.type.value,
        "name": integration.name,
        "description": integration.description,
        "config": mask_secrets(integration.config),
        "enabled": integration.enabled,
        "status": integration.status.value,
        "last_tested_at": to_iso(integration.last_tested_at),
        "last_error": integration.last_error,
        "created_at": to_iso(integration.created_at),
        "updated_at": to_iso(integration.updated_at),
    }


# ============= Service =============

class IntegrationService:

    def __init__(self, integration_repo: IIntegrationRepository, notifiers: NotifierRegistry):
        self.integration_repo = integration_repo
        self.notifiers = notifiers

    @staticmethod
    def _parse_type(value: str) -> IntegrationType:
        try:
            return IntegrationType(value)
        except ValueError:
            allowed = ", ".join(t.value for t in IntegrationType)
            raise ValidationError(f"Unknown integration type '{value}'. Allowed: {allowed}")

    @staticmethod
    def _ensure_valid(integration_type: IntegrationType, config: Dict[str, Any]) -> None:
        errors = validate_config(integration_type, config)
        if errors:
            raise ValidationError(f"Invalid {integration_type.value} configuration: {'; '.join(errors)}")

    async def get(self, integration_id: str) -> Integration:
        integration = await self.integration_repo.get_by_id(integration_id)
        if integration is None:
            raise NotFoundError(f"Integration {integration_id} not found")
        return integration

    async def list_all(self, integration_type: Optional[str] = None) -> List[Integration]:
        parsed = self._parse_type(integration_type) if integration_type else None
        return await self.integration_repo.list_all(parsed)

    async def create(
        self,
        integration_type: str,
        name: str,
        config: Dict[str, Any],
        description: str = "",
        enabled: bool = True,
    ) -> Integration:
        parsed = self._parse_type(integration_type)
        if not name or not name.strip():
            raise ValidationError("Integration name is required")
        self._ensure_valid(parsed, config)

        integration = Integration(
            id=str(uuid.uuid4()),
            type=parsed,
            name=name.strip(),
            description=description or "",
            config=dict(config),
            enabled=enabled,
        )
        return await self.integration_repo.create(integration)

    async def update(
        self,
        integration_id: str,
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> Integration:
        integration = await self.get(integration_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Integration name is required")
            integration.name = name.strip()
        if config is not None:
            # Masked secrets echoed back by clients keep their stored value
            merged = dict(integration.config)
            for key, value in config.items():
                if isinstance(value, str) and value.startswith("****"):
                    continue
                merged[key] = value
            self._ensure_valid(integration.type, merged)
            integration.config = merged
            integration.status = IntegrationStatus.DISCONNECTED
        if description is not None:
            integration.description = description
        if enabled is not None:
            integration.enabled = enabled
        return await self.integration_repo.update(integration)

    async def delete(self, integration_id: str) -> bool:
        if not await self.integration_repo.delete(integration_id):
            raise NotFoundError(f"Integration {integration_id} not found")
        return True

    async def toggle(self, integration_id: str) -> Integration:
        integration = await self.get(integration_id)
        integration.enabled = not integration.enabled
        logger.info(f"Integration {integration_id} {'enabled' if integration.enabled else 'disabled'}")
        return await self.integration_repo.update(integration)

    async def test(self, integration_id: str) -> Dict[str, Any]:
        """Validates the config, contacts the target and records the outcome."""
        integration = await self.get(integration_id)
        errors = validate_config(integration.type, integration.config)
        details: Dict[str, Any] = {}

        if errors:
            integration.status = IntegrationStatus.ERROR
            integration.last_error = "; ".join(errors)
        else:
            try:
                details = await self.notifiers.get(integration.type).test(integration)
                integration.status = IntegrationStatus.CONNECTED
                integration.last_error = None
            except IntegrationError as e:
                logger.warning(f"Integration {integration_id} test failed: {e.message}")
                integration.status = IntegrationStatus.ERROR
                integration.last_error = e.message

        integration.last_tested_at = utc_now()
        integration = await self.integration_repo.update(integration)
        return {
            "success": integration.status == IntegrationStatus.CONNECTED,
            "status": integration.status.value,
            "error": integration.last_error,
            "details": details,
            "tested_at": to_iso(integration.last_tested_at),
        }
