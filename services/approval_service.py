# services/approval_service.py
"""Approval decisions for paused workflow executions"""
import logging
from typing import Callable, List, Optional

from core.domain import Approval
from core.enums import ApprovalStatus
from core.errors import NotFoundError, ValidationError
from core.interfaces import IApprovalRepository
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

DECISIONS = {
    "approve": ApprovalStatus.APPROVED,
    "approved": ApprovalStatus.APPROVED,
    "reject": ApprovalStatus.REJECTED,
    "rejected": ApprovalStatus.REJECTED,
}

# (document_id, workflow_id, execution_id) -> schedules the execution to continue
ResumeCallback = Callable[[str, str, str], None]


def parse_decision(decision: str) -> ApprovalStatus:
    status = DECISIONS.get((decision or "").strip().lower())
    if status is None:
        raise ValidationError(f"Unknown decision '{decision}'. Use 'approve' or 'reject'")
    return status


class ApprovalService:

    def __init__(self, approval_repo: IApprovalRepository, resume: Optional[ResumeCallback] = None):
        self.approval_repo = approval_repo
        self.resume = resume

    async def list_all(self, status: Optional[str] = None) -> List[Approval]:
        parsed = None
        if status:
            try:
                parsed = ApprovalStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown approval status '{status}'")
        return await self.approval_repo.list_all(parsed)

    async def get(self, approval_id: str) -> Approval:
        approval = await self.approval_repo.get_by_id(approval_id)
        if approval is None:
            raise NotFoundError(f"Approval {approval_id} not found")
        return approval

    async def decide(
        self, approval_id: str, decision: str, approver_id: str, reason: Optional[str] = None
    ) -> Approval:
        """
        Records the decision and resumes the paused execution.

        A rejection also resumes it: the approval step then fails and the
        workflow ends FAILED.
        """
        status = parse_decision(decision)
        # Raises ValidationError unless this call moved the approval out of pending
        approval = await self.approval_repo.decide(approval_id, status, approver_id or "anonymous", reason)
        logger.info(f"Approval {approval_id} {status.value} by {approval.approver_id}")

        if self.resume is not None:
            self.resume(approval.document_id, approval.workflow_id, approval.execution_id)
        return approval
