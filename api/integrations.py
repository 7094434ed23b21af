# api/integrations.py
"""Integration management and the Slack interactivity callback"""
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request

from api.errors import http_error
from api.schemas import IntegrationCreateRequest, IntegrationUpdateRequest
from core.errors import ApexFlowError
from services.approval_service import ApprovalService
from services.factory import get_approval_service, get_integration_service
from services.integration_service import IntegrationService, to_response
from utils.slack_signature import verify_slack_signature
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter()
# Slack authenticates itself by request signature, never by bearer token
slack_router = APIRouter()

APPROVAL_ACTIONS = {"approve_button": "approve", "reject_button": "reject"}


# ---------- Integrations ----------
@router.get("/integrations")
async def list_integrations(
    type: Optional[str] = None,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> List[Dict[str, Any]]:
    try:
        integrations = await integration_service.list_all(type)
    except ApexFlowError as e:
        raise http_error(e)
    return [to_response(i) for i in integrations]


@router.post("/integrations", status_code=201)
async def create_integration(
    request: IntegrationCreateRequest,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        integration = await integration_service.create(
            integration_type=request.type,
            name=request.name,
            config=request.config,
            description=request.description,
            enabled=request.enabled,
        )
    except ApexFlowError as e:
        raise http_error(e)
    return to_response(integration)


@router.get("/integrations/{integration_id}")
async def get_integration(
    integration_id: str,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        return to_response(await integration_service.get(integration_id))
    except ApexFlowError as e:
        raise http_error(e)


@router.put("/integrations/{integration_id}")
async def update_integration(
    integration_id: str,
    request: IntegrationUpdateRequest,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        integration = await integration_service.update(
            integration_id,
            name=request.name,
            config=request.config,
            description=request.description,
            enabled=request.enabled,
        )
    except ApexFlowError as e:
        raise http_error(e)
    return to_response(integration)


@router.delete("/integrations/{integration_id}")
async def delete_integration(
    integration_id: str,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        await integration_service.delete(integration_id)
    except ApexFlowError as e:
        raise http_error(e)
    return {"status": "success", "integration_id": integration_id}


@router.post("/integrations/{integration_id}/test")
async def test_integration(
    integration_id: str,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        return await integration_service.test(integration_id)
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/integrations/{integration_id}/toggle")
async def toggle_integration(
    integration_id: str,
    integration_service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    try:
        return to_response(await integration_service.toggle(integration_id))
    except ApexFlowError as e:
        raise http_error(e)


# ---------- Slack ----------
def _slack_reply(text: str) -> Dict[str, Any]:
    return {"response_type": "in_channel", "text": text, "replace_original": False}


def _parse_payload(body: bytes) -> Dict[str, Any]:
    form = parse_qs(body.decode("utf-8", errors="replace"))
    raw = form.get("payload", [None])[0]
    if raw is None:
        raise HTTPException(status_code=400, detail="Missing payload")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")
    return payload


@slack_router.post("/slack/interactions")
async def slack_interactions(
    request: Request,
    approval_service: ApprovalService = Depends(get_approval_service),
) -> Dict[str, Any]:
    # Signature covers the exact raw bytes
    body = await request.body()
    try:
        verify_slack_signature(
            body,
            request.headers.get("x-slack-request-timestamp"),
            request.headers.get("x-slack-signature"),
        )
    except ApexFlowError as e:
        logger.warning(f"Rejected Slack interaction: {e.message}")
        raise http_error(e)

    payload = _parse_payload(body)
    if payload.get("type") != "block_actions":
        return _slack_reply("Interaction received")

    user = payload.get("user")
    if not isinstance(user, dict):
        user = {}
    approver = user.get("username") or user.get("name") or user.get("id") or "slack-user"
    actions = payload.get("actions")
    for action in actions if isinstance(actions, list) else []:
        if not isinstance(action, dict):
            continue
        decision = APPROVAL_ACTIONS.get(action.get("action_id"))
        if decision is None:
            continue
        approval_id = action.get("value")
        try:
            approval = await approval_service.decide(
                approval_id, decision, approver, reason=f"Decided in Slack by {approver}"
            )
        except ApexFlowError as e:
            logger.warning(f"Slack decision on approval {approval_id} failed: {e}")
            return _slack_reply(f"Could not record decision: {e.message}")
        return _slack_reply(f"Approval for '{approval.step_name}' {approval.status.value} by {approver}")

    return _slack_reply("No actionable buttons in this interaction")
