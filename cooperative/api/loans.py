"""
Loan endpoints
"""

import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import APPLICATION_FAILED, CooperativeSystem, get_system, http_error, parse_date
from .schemas import (
    LoanApplicationRequest, ApproveLoanRequest, RejectLoanRequest, RepaymentRequest,
    SweepRequest, money_out
)
from ..currency import Money
from ..applications import LoanApplicationDraft
from ..loans import Loan, LoanStatus
from ..errors import CooperativeError


logger = logging.getLogger("cooperative.api.loans")

router = APIRouter()


def loan_to_response(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "member_id": loan.member_id,
        "member_name": loan.member_name,
        "amount": money_out(loan.amount),
        "purpose": loan.purpose,
        "duration_months": loan.duration_months,
        "interest_rate": str(loan.interest_rate),
        "status": loan.status.value,
        "total_amount": money_out(loan.total_amount),
        "interest_amount": money_out(loan.interest_amount),
        "monthly_payment": money_out(loan.monthly_payment),
        "weekly_payment": money_out(loan.weekly_payment),
        "total_weeks": loan.total_weeks,
        "weeks_remaining": loan.weeks_remaining,
        "remaining_amount": money_out(loan.remaining_amount),
        "fines": money_out(loan.fines),
        "guarantors": [
            {
                "member_id": g.member_id,
                "member_name": g.member_name,
                "status": g.status.value,
                "responded_at": g.responded_at.isoformat() if g.responded_at else None,
            }
            for g in loan.guarantors
        ],
        "application_date": loan.application_date.isoformat() if loan.application_date else None,
        "approved_date": loan.approved_date.isoformat() if loan.approved_date else None,
        "approval_notes": loan.approval_notes,
        "rejection_reason": loan.rejection_reason,
        "next_payment_date": loan.next_payment_date.isoformat() if loan.next_payment_date else None,
        "repayment_history": [
            {
                "amount": money_out(r.amount),
                "paid_on": r.paid_on.isoformat(),
                "method": r.method,
                "weeks_covered": r.weeks_covered,
                "remaining_after": money_out(r.remaining_after),
            }
            for r in loan.repayment_history
        ],
    }


@router.get("/terms")
async def loan_terms(
    amount: str,
    duration_months: int,
    system: CooperativeSystem = Depends(get_system)
):
    """Preview repayment terms for an amount and duration"""
    try:
        terms = system.applications.calculate_loan_terms(system.money(amount), duration_months)
    except CooperativeError as e:
        raise http_error(e)
    return {
        "monthly_payment": money_out(terms.monthly_payment),
        "total_amount": money_out(terms.total_amount),
        "interest_amount": money_out(terms.interest_amount),
        "weekly_payment": money_out(terms.weekly_payment),
        "total_weeks": terms.total_weeks,
    }


@router.post("/apply", status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    request: LoanApplicationRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Submit a loan application and notify the nominated guarantors"""
    try:
        draft = LoanApplicationDraft(
            member_id=request.member_id,
            amount=system.money(request.amount),
            purpose=request.purpose,
            duration_months=request.duration_months,
            guarantor1_id=request.guarantor1_id,
            guarantor2_id=request.guarantor2_id,
        )
        loan = system.applications.submit(draft)
    except CooperativeError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Loan application failed", extra={'member_id': request.member_id,
                                                           'action': 'loan_application_failed'})
        raise HTTPException(status_code=500, detail=APPLICATION_FAILED)

    return {
        "loan": loan_to_response(loan),
        "message": "Loan application submitted; guarantors have been notified"
    }


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    member_id: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    """List loan applications, newest first"""
    try:
        loan_status = LoanStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown loan status: {status}")
    loans = system.applications.list_applications(member_id=member_id, status=loan_status)
    return {"loans": [loan_to_response(loan) for loan in loans], "count": len(loans)}


@router.get("/summary")
async def loan_summary(system: CooperativeSystem = Depends(get_system)):
    """Portfolio totals"""
    summary = system.loans.get_loan_summary(system.currency)
    return {
        key: money_out(value) if isinstance(value, Money) else value
        for key, value in summary.items()
    }


@router.post("/mark-defaults")
async def mark_defaults(
    request: SweepRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Move long-overdue approved loans to defaulted"""
    try:
        defaulted = system.loans.mark_defaults(parse_date(request.as_of))
    except CooperativeError as e:
        raise http_error(e)
    return {"defaulted": [loan.id for loan in defaulted], "count": len(defaulted)}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: CooperativeSystem = Depends(get_system)
):
    """Get loan details"""
    loan = system.loans.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan_to_response(loan)


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: ApproveLoanRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Approve a loan whose guarantors have all accepted"""
    try:
        loan = system.loans.approve_loan(loan_id, request.admin_id, request.admin_name, notes=request.notes)
        return loan_to_response(loan)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: RejectLoanRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Reject a pending loan"""
    try:
        loan = system.loans.reject_loan(loan_id, request.admin_id, request.admin_name, reason=request.reason)
        return loan_to_response(loan)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{loan_id}/repay")
async def repay_loan(
    loan_id: str,
    request: RepaymentRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Record a repayment against an approved loan"""
    try:
        loan = system.loans.record_repayment(
            loan_id, system.money(request.amount), request.method, parse_date(request.paid_on)
        )
        return loan_to_response(loan)
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{loan_id}/refresh")
async def refresh_loan(
    loan_id: str,
    request: SweepRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Apply a repaid/defaulted transition the loan now qualifies for"""
    try:
        loan = system.loans.refresh_loan_status(loan_id, parse_date(request.as_of))
        return loan_to_response(loan)
    except CooperativeError as e:
        raise http_error(e)
