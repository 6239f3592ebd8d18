"""
Member endpoints
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import CooperativeSystem, get_system, http_error, parse_date
from .schemas import (
    CreateMemberRequest, UpdateMemberRequest, BalanceUpdateRequest, AllocateSavingsRequest,
    SweepRequest, money_out
)
from ..currency import Money
from ..members import Member, MemberStatus, BalanceOperation
from ..errors import CooperativeError


router = APIRouter()


def member_to_response(member: Member) -> Dict[str, Any]:
    return {
        "id": member.id,
        "membership_id": member.membership_id,
        "name": member.name,
        "phone": member.phone,
        "email": member.email,
        "address": member.address,
        "occupation": member.occupation,
        "status": member.status.value,
        "join_date": member.join_date.isoformat() if member.join_date else None,
        "last_activity_date": member.last_activity_date.isoformat() if member.last_activity_date else None,
        "balance": money_out(member.balance),
        "savings": money_out(member.savings),
        "loan_balance": money_out(member.loan_balance),
        "investment_balance": money_out(member.investment_balance),
        "fines": money_out(member.fines),
        "guarantor_for": [
            {
                "loan_id": c.loan_id,
                "member_id": c.member_id,
                "member_name": c.member_name,
                "loan_amount": money_out(c.loan_amount),
                "remaining_amount": money_out(c.remaining_amount),
            }
            for c in member.guarantor_for
        ],
    }


def guarantor_candidate(member: Member) -> Dict[str, Any]:
    return {
        "id": member.id,
        "membership_id": member.membership_id,
        "name": member.name,
        "balance": money_out(member.balance),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_member(
    request: CreateMemberRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Register a new member"""
    try:
        opening_balance = system.money(request.opening_balance) if request.opening_balance else None
        member = system.members.add_member(
            name=request.name,
            phone=request.phone,
            email=request.email,
            address=request.address,
            occupation=request.occupation,
            membership_id=request.membership_id,
            opening_balance=opening_balance,
            admin_id=request.admin_id,
            admin_name=request.admin_name,
        )
        return member_to_response(member)
    except CooperativeError as e:
        raise http_error(e)


@router.get("")
async def list_members(
    status: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    """List members, optionally filtered by status"""
    try:
        member_status = MemberStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown member status: {status}")
    members = system.members.get_all_members(member_status)
    return {"members": [member_to_response(m) for m in members], "count": len(members)}


@router.get("/stats")
async def member_stats(system: CooperativeSystem = Depends(get_system)):
    """Totals across the membership"""
    stats = system.members.get_stats()
    return {
        key: money_out(value) if isinstance(value, Money) else value
        for key, value in stats.items()
    }


@router.get("/inactivity")
async def inactivity_report(
    as_of: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    """Members grouped by inactivity category"""
    try:
        categories = system.members.categorize_inactivity(parse_date(as_of))
    except CooperativeError as e:
        raise http_error(e)
    return {
        category: [
            {"id": m.id, "name": m.name, "inactive_days": system.members.inactivity_days(m, parse_date(as_of))}
            for m in members
        ]
        for category, members in categories.items()
    }


@router.post("/dormant-sweep")
async def dormant_sweep(
    request: SweepRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Flag long-idle active members as dormant"""
    try:
        flagged = system.members.flag_dormant_members(parse_date(request.as_of))
    except CooperativeError as e:
        raise http_error(e)
    return {"flagged": [m.id for m in flagged], "count": len(flagged)}


@router.get("/{member_id}")
async def get_member(
    member_id: str,
    system: CooperativeSystem = Depends(get_system)
):
    """Get member details"""
    member = system.members.get_member(member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member_to_response(member)


@router.patch("/{member_id}")
async def update_member(
    member_id: str,
    request: UpdateMemberRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Update member contact details"""
    updates = {k: v for k, v in request.model_dump().items() if v is not None}
    try:
        member = system.members.update_member(member_id, **updates)
        return member_to_response(member)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{member_id}/balance")
async def update_balance(
    member_id: str,
    request: BalanceUpdateRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Add to or subtract from a member's balance"""
    try:
        operation = BalanceOperation(request.operation)
    except ValueError:
        raise HTTPException(status_code=400, detail="Operation must be 'add' or 'subtract'")
    try:
        member = system.members.update_balance(member_id, system.money(request.amount), operation,
                                               request.admin_id, request.admin_name)
        return member_to_response(member)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{member_id}/savings")
async def allocate_savings(
    member_id: str,
    request: AllocateSavingsRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Allocate an amount to a member's savings"""
    try:
        member = system.members.allocate_savings(member_id, system.money(request.amount),
                                                 request.admin_id, request.admin_name)
        return member_to_response(member)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{member_id}/suspend")
async def suspend_member(member_id: str, system: CooperativeSystem = Depends(get_system)):
    try:
        return member_to_response(system.members.suspend_member(member_id))
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{member_id}/activate")
async def activate_member(member_id: str, system: CooperativeSystem = Depends(get_system)):
    try:
        return member_to_response(system.members.activate_member(member_id))
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{member_id}/fines/clear")
async def clear_fines(member_id: str, system: CooperativeSystem = Depends(get_system)):
    try:
        return member_to_response(system.members.clear_fines(member_id))
    except CooperativeError as e:
        raise http_error(e)


@router.get("/{member_id}/guarantor-search")
async def search_guarantors(
    member_id: str,
    q: str,
    limit: Optional[int] = None,
    system: CooperativeSystem = Depends(get_system)
):
    """Find guarantor candidates by name or account number"""
    candidates = system.members.search_guarantors(member_id, q, limit)
    return {"results": [guarantor_candidate(m) for m in candidates]}


@router.get("/{member_id}/guarantor-eligibility")
async def guarantor_eligibility(member_id: str, system: CooperativeSystem = Depends(get_system)):
    """Whether the member may currently act as a guarantor"""
    can_guarantee, reason = system.members.can_member_be_guarantor(member_id)
    return {"member_id": member_id, "can_guarantee": can_guarantee, "reason": reason}


@router.get("/{member_id}/eligibility")
async def loan_eligibility(
    member_id: str,
    amount: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    """Check whether the member may apply for a loan"""
    try:
        result = system.applications.check_loan_eligibility(
            member_id, system.money(amount) if amount else None
        )
    except CooperativeError as e:
        raise http_error(e)
    return {
        "eligible": result.eligible,
        "reason": result.reason,
        "max_eligible_amount": money_out(result.max_eligible_amount) if result.max_eligible_amount else None,
    }
