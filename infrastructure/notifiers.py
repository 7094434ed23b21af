# infrastructure/notifiers.py
"""Outbound delivery for each integration type"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import requests

from core.domain import Integration
from core.enums import IntegrationType
from core.errors import IntegrationError
from core.interfaces import IExportRepository, INotifier
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


def _request(method: str, url: str, timeout: int, **kwargs: Any) -> requests.Response:
    """Blocking HTTP call with requests errors mapped to IntegrationError."""
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
        response.raise_for_status()
        return response
    except requests.exceptions.Timeout:
        raise IntegrationError(f"Request to {url} timed out after {timeout} seconds")
    except requests.exceptions.ConnectionError:
        raise IntegrationError(f"Cannot connect to {url}")
    except requests.exceptions.HTTPError as e:
        raise IntegrationError(f"{url} returned {e.response.status_code}: {e.response.text[:200]}")
    except requests.exceptions.RequestException as e:
        raise IntegrationError(f"Request to {url} failed: {e}")


# ============= Slack =============

class SlackNotifier(INotifier):
    """Posts messages through the Slack Web API."""

    def __init__(self, api_url: str = settings.SLACK_API_URL, timeout: int = settings.REQUEST_TIMEOUT):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _token(self, integration: Integration) -> str:
        token = integration.config.get("bot_token") or settings.SLACK_BOT_TOKEN
        if not token:
            raise IntegrationError(f"Slack integration {integration.id} has no bot token")
        return token

    def _call(self, integration: Integration, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = _request(
            "POST",
            f"{self.api_url}/{method}",
            self.timeout,
            headers={"Authorization": f"Bearer {self._token(integration)}"},
            json=body,
        )
        data = response.json()
        if not data.get("ok"):
            raise IntegrationError(f"Slack {method} failed: {data.get('error', 'unknown_error')}")
        return data

    @staticmethod
    def build_blocks(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{payload.get('title', 'Document update')}*\n{payload.get('text', '')}"}},
        ]
        if payload.get("approval_id"):
            blocks.append({
                "type": "actions",
                "elements": [
                    {"type": "button", "action_id": "approve_button", "style": "primary",
                     "text": {"type": "plain_text", "text": "Approve"}, "value": payload["approval_id"]},
                    {"type": "button", "action_id": "reject_button", "style": "danger",
                     "text": {"type": "plain_text", "text": "Reject"}, "value": payload["approval_id"]},
                ],
            })
        return blocks

    async def send(self, integration: Integration, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "channel": payload.get("channel") or integration.config.get("default_channel"),
            "text": payload.get("text", ""),
            "blocks": self.build_blocks(payload),
        }
        data = await asyncio.to_thread(self._call, integration, "chat.postMessage", body)
        return {"channel": data.get("channel"), "ts": data.get("ts")}

    async def test(self, integration: Integration) -> Dict[str, Any]:
        data = await asyncio.to_thread(self._call, integration, "auth.test", {})
        return {"team": data.get("team"), "user": data.get("user")}


# ============= Email =============

class EmailNotifier(INotifier):

    def __init__(self, timeout: int = settings.SMTP_TIMEOUT):
        self.timeout = timeout

    def _connect(self, config: Dict[str, Any]) -> smtplib.SMTP:
        host = config.get("smtp_host")
        if not host:
            raise IntegrationError("Email integration has no SMTP host")
        port = int(config.get("smtp_port") or 587)
        try:
            server = smtplib.SMTP(host, port, timeout=self.timeout)
            if config.get("use_tls", True):
                server.starttls()
            server.login(config["username"], config["password"])
            return server
        except (smtplib.SMTPException, OSError) as e:
            raise IntegrationError(f"SMTP connection to {host}:{port} failed: {e}")

    def _send(self, config: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        recipients = config.get("to_addresses") or [config["from_address"]]
        message = EmailMessage()
        message["Subject"] = payload.get("title", "Document update")
        message["From"] = config["from_address"]
        message["To"] = ", ".join(recipients)
        message.set_content(payload.get("text", ""))

        server = self._connect(config)
        try:
            server.send_message(message)
        except smtplib.SMTPException as e:
            raise IntegrationError(f"Sending email failed: {e}")
        finally:
            server.quit()
        return {"recipients": recipients}

    def _check_connection(self, config: Dict[str, Any]) -> Dict[str, Any]:
        server = self._connect(config)
        server.quit()
        return {"smtp_host": config.get("smtp_host")}

    async def send(self, integration: Integration, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._send, integration.config, payload)

    async def test(self, integration: Integration) -> Dict[str, Any]:
        return await asyncio.to_thread(self._check_connection, integration.config)


# ============= Webhook =============

class WebhookNotifier(INotifier):

    def __init__(self, timeout: int = settings.REQUEST_TIMEOUT):
        self.timeout = timeout

    @staticmethod
    def _headers(config: Dict[str, Any]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(config.get("headers") or {})
        if config.get("auth_token"):
            headers["Authorization"] = f"Bearer {config['auth_token']}"
        return headers

    async def send(self, integration: Integration, payload: Dict[str, Any]) -> Dict[str, Any]:
        config = integration.config
        response = await asyncio.to_thread(
            _request,
            config.get("method", "POST").upper(),
            config["url"],
            self.timeout,
            json=payload,
            headers=self._headers(config),
        )
        return {"status_code": response.status_code}

    async def test(self, integration: Integration) -> Dict[str, Any]:
        return await self.send(integration, {"event": "ping", "integration_id": integration.id})


# ============= Database =============

class DatabaseExporter(INotifier):
    """Writes payloads as exported records in the application database."""

    def __init__(self, export_repo: IExportRepository):
        self.export_repo = export_repo

    async def send(self, integration: Integration, payload: Dict[str, Any]) -> Dict[str, Any]:
        record_id = await self.export_repo.create_record(
            integration_id=integration.id,
            document_id=payload.get("document_id", ""),
            payload=payload,
        )
        return {"record_id": record_id}

    async def test(self, integration: Integration) -> Dict[str, Any]:
        await self.export_repo.ping()
        return {"database": integration.config.get("database_name")}


class NotifierRegistry:
    """Looks up the notifier for an integration type."""

    def __init__(self, notifiers: Dict[IntegrationType, INotifier]):
        self._notifiers = notifiers

    def get(self, integration_type: IntegrationType) -> INotifier:
        notifier: Optional[INotifier] = self._notifiers.get(integration_type)
        if notifier is None:
            raise IntegrationError(f"No notifier registered for {integration_type.value}")
        return notifier
