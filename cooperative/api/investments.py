"""
Investment endpoints
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import CooperativeSystem, get_system, http_error, parse_date
from .schemas import (
    CreateInvestmentRequest, InvestmentApplicationRequest, ContributionRequest,
    ApprovalDecisionRequest, money_out
)
from ..investments import Investment, InvestmentApplication, InvestmentStatus
from ..errors import CooperativeError


router = APIRouter()


def investment_to_response(investment: Investment) -> Dict[str, Any]:
    return {
        "id": investment.id,
        "product_name": investment.product_name,
        "description": investment.description,
        "unit_price": money_out(investment.unit_price),
        "total_weeks": investment.total_weeks,
        "total_units": investment.total_units,
        "available_units": investment.available_units,
        "status": investment.status.value,
        "product_images": investment.product_images,
    }


def application_to_response(application: InvestmentApplication) -> Dict[str, Any]:
    return {
        "id": application.id,
        "investment_id": application.investment_id,
        "product_name": application.product_name,
        "member_id": application.member_id,
        "member_name": application.member_name,
        "quantity": application.quantity,
        "total_amount": money_out(application.total_amount),
        "weekly_payment": money_out(application.weekly_payment),
        "remaining_amount": money_out(application.remaining_amount),
        "weeks_remaining": application.weeks_remaining,
        "status": application.status.value,
        "created_at": application.created_at.isoformat(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_investment(
    request: CreateInvestmentRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Publish a new investment product"""
    try:
        investment = system.investments.create_investment(
            request.product_name, request.description, system.money(request.unit_price),
            request.total_weeks, request.total_units, request.product_images,
            admin_id=request.admin_id, admin_name=request.admin_name,
        )
    except CooperativeError as e:
        raise http_error(e)
    return investment_to_response(investment)


@router.get("")
async def list_investments(
    status: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        investment_status = InvestmentStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown investment status: {status}")
    investments = system.investments.list_investments(investment_status)
    return {"investments": [investment_to_response(i) for i in investments], "count": len(investments)}


@router.get("/applications")
async def list_applications(
    member_id: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    applications = system.investments.list_applications(member_id=member_id)
    return {"applications": [application_to_response(a) for a in applications], "count": len(applications)}


@router.get("/{investment_id}")
async def get_investment(
    investment_id: str,
    system: CooperativeSystem = Depends(get_system)
):
    investment = system.investments.get_investment(investment_id)
    if not investment:
        raise HTTPException(status_code=404, detail="Investment not found")
    return investment_to_response(investment)


@router.post("/{investment_id}/apply", status_code=status.HTTP_201_CREATED)
async def apply_for_investment(
    investment_id: str,
    request: InvestmentApplicationRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Apply for units of an investment; the application waits for admin approval"""
    try:
        application = system.investments.apply_for_investment(investment_id, request.member_id,
                                                               request.quantity)
    except CooperativeError as e:
        raise http_error(e)
    return application_to_response(application)


@router.post("/applications/{application_id}/approve")
async def approve_application(
    application_id: str,
    request: ApprovalDecisionRequest,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        application = system.investments.approve_application(
            application_id, request.admin_id, request.admin_name, notes=request.notes
        )
    except CooperativeError as e:
        raise http_error(e)
    return application_to_response(application)


@router.post("/applications/{application_id}/reject")
async def reject_application(
    application_id: str,
    request: ApprovalDecisionRequest,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        application = system.investments.reject_application(
            application_id, request.admin_id, request.admin_name, reason=request.notes
        )
    except CooperativeError as e:
        raise http_error(e)
    return application_to_response(application)


@router.post("/applications/{application_id}/contribute")
async def record_contribution(
    application_id: str,
    request: ContributionRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Record a weekly contribution towards an approved investment"""
    try:
        application = system.investments.record_contribution(
            application_id, system.money(request.amount), parse_date(request.paid_on)
        )
    except CooperativeError as e:
        raise http_error(e)
    return application_to_response(application)
