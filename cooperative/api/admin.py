"""
Administrative endpoints: fines, admin log and approvals
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends

from .system import CooperativeSystem, get_system, http_error, parse_date
from .schemas import FineRunRequest, FineSettingsRequest, ApprovalDecisionRequest, money_out
from ..approvals import Approval, ApprovalStatus, ApprovalType
from ..admin_log import AdminAction
from ..errors import CooperativeError


router = APIRouter()


def approval_to_response(approval: Approval) -> Dict[str, Any]:
    return {
        "id": approval.id,
        "type": approval.approval_type.value,
        "applicant_id": approval.applicant_id,
        "applicant_name": approval.applicant_name,
        "amount": str(approval.amount) if approval.amount is not None else None,
        "status": approval.status.value,
        "priority": approval.priority.value,
        "details": approval.details,
        "related_id": approval.related_id,
        "submitted_at": approval.created_at.isoformat(),
        "decided_by": approval.decided_by,
        "decision_notes": approval.decision_notes,
    }


# Fines

@router.get("/fines/preview")
async def preview_fines(as_of: Optional[str] = None, system: CooperativeSystem = Depends(get_system)):
    """Overdue loans and the fine each would be charged"""
    try:
        loans = system.fines.overdue_loans(parse_date(as_of))
    except CooperativeError as e:
        raise http_error(e)
    return {
        "overdue": [
            {
                "loan_id": loan.id,
                "member_id": loan.member_id,
                "member_name": loan.member_name,
                "next_payment_date": loan.next_payment_date.isoformat(),
                "potential_fine": money_out(system.fines.potential_fine(loan)),
            }
            for loan in loans
        ],
        "count": len(loans),
    }


@router.post("/fines/apply")
async def apply_fines(request: FineRunRequest, system: CooperativeSystem = Depends(get_system)):
    """Run the fine batch"""
    try:
        result = system.fines.apply_fines(parse_date(request.as_of), request.admin_id, request.admin_name)
    except CooperativeError as e:
        raise http_error(e)
    return {
        "period": result.period,
        "fined": result.fined,
        "skipped": result.skipped,
        "total": money_out(result.total),
    }


@router.get("/fines/settings")
async def get_fine_settings(system: CooperativeSystem = Depends(get_system)):
    policy = system.fines.policy
    return {
        "percentage": str(policy.percentage),
        "grace_period_days": policy.grace_period_days,
        "enabled": policy.enabled,
    }


@router.put("/fines/settings")
async def update_fine_settings(request: FineSettingsRequest, system: CooperativeSystem = Depends(get_system)):
    percentage = None
    if request.percentage is not None:
        try:
            percentage = Decimal(request.percentage)
        except InvalidOperation:
            raise HTTPException(status_code=400, detail="Percentage must be numeric")
        if not percentage.is_finite():
            raise HTTPException(status_code=400, detail="Percentage must be a finite number")
        if percentage < 0:
            raise HTTPException(status_code=400, detail="Percentage cannot be negative")
    if request.grace_period_days is not None and request.grace_period_days < 0:
        raise HTTPException(status_code=400, detail="Grace period cannot be negative")

    policy = system.fines.update_policy(request.admin_id, request.admin_name, percentage=percentage,
                                        grace_period_days=request.grace_period_days,
                                        enabled=request.enabled)
    return {
        "percentage": str(policy.percentage),
        "grace_period_days": policy.grace_period_days,
        "enabled": policy.enabled,
    }


# Admin log

@router.get("/logs")
async def list_admin_logs(
    action: Optional[str] = None,
    target_member: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        admin_action = AdminAction(action) if action else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")
    entries = system.admin_log.list_entries(admin_action, target_member)
    return {
        "logs": [
            {
                "id": entry.id,
                "admin_id": entry.admin_id,
                "admin_name": entry.admin_name,
                "action": entry.action.value,
                "details": entry.details,
                "target_member": entry.target_member,
                "amount": str(entry.amount) if entry.amount is not None else None,
                "timestamp": entry.created_at.isoformat(),
            }
            for entry in entries
        ]
    }


@router.get("/logs/verify")
async def verify_admin_log(system: CooperativeSystem = Depends(get_system)):
    return system.admin_log.verify_integrity()


# Approvals

@router.get("/approvals")
async def list_approvals(
    status: Optional[str] = None,
    type: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        approval_status = ApprovalStatus(status) if status else None
        approval_type = ApprovalType(type) if type else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    approvals = system.approvals.list(approval_status, approval_type)
    return {"approvals": [approval_to_response(a) for a in approvals], "count": len(approvals)}


@router.post("/approvals/{approval_id}/approve")
async def approve(approval_id: str, request: ApprovalDecisionRequest,
                  system: CooperativeSystem = Depends(get_system)):
    try:
        approval = system.approvals.approve(approval_id, request.admin_id, request.admin_name, request.notes)
    except CooperativeError as e:
        raise http_error(e)
    return approval_to_response(approval)


@router.post("/approvals/{approval_id}/reject")
async def reject(approval_id: str, request: ApprovalDecisionRequest,
                 system: CooperativeSystem = Depends(get_system)):
    try:
        approval = system.approvals.reject(approval_id, request.admin_id, request.admin_name, request.notes)
    except CooperativeError as e:
        raise http_error(e)
    return approval_to_response(approval)
