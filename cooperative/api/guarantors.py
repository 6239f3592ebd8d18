"""
Guarantor request endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .system import CooperativeSystem, get_system, http_error
from .schemas import GuarantorResponseRequest, money_out
from .loans import loan_to_response
from .notifications import notification_to_response
from ..guarantors import GuarantorResponse
from ..errors import CooperativeError


router = APIRouter()


@router.get("/{member_id}/requests")
async def pending_requests(member_id: str, system: CooperativeSystem = Depends(get_system)):
    """Guarantor requests awaiting this member's answer"""
    requests = []
    for notification in system.guarantors.pending_requests(member_id):
        entry = notification_to_response(notification)
        loan = system.loans.get_loan(notification.related_id) if notification.related_id else None
        if loan:
            entry["loan"] = {
                "id": loan.id,
                "borrower_name": loan.member_name,
                "amount": money_out(loan.amount),
                "duration_months": loan.duration_months,
                "purpose": loan.purpose,
                "weekly_payment": money_out(loan.weekly_payment),
            }
        requests.append(entry)
    return {"requests": requests, "count": len(requests)}


@router.post("/requests/{notification_id}/respond")
async def respond_to_request(
    notification_id: str,
    request: GuarantorResponseRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Accept or reject a guarantor request"""
    try:
        response = GuarantorResponse(request.response)
    except ValueError:
        raise HTTPException(status_code=400, detail="Response must be 'accepted' or 'rejected'")

    try:
        loan = system.guarantors.respond_to_guarantor_request(
            notification_id, response, request.member_id, agreed_to_terms=request.agreed_to_terms
        )
    except CooperativeError as e:
        raise http_error(e)

    if loan is None:
        return {"updated": False, "loan": None}
    return {"updated": True, "loan": loan_to_response(loan)}
