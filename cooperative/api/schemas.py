"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("NGN", description="Currency code (NGN, GHS, ...)")
    display: Optional[str] = Field(None, description="Formatted amount, e.g. ₦50,000.00")

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency[self.currency])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code, display=money.to_string())


def money_out(money: Money) -> Dict[str, Any]:
    return MoneyModel.from_money(money).model_dump()


# Member schemas
class CreateMemberRequest(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    membership_id: Optional[str] = Field(None, description="Account number; generated when omitted")
    opening_balance: Optional[str] = None
    admin_id: str = "SYSTEM"
    admin_name: str = "System"


class UpdateMemberRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None


class BalanceUpdateRequest(BaseModel):
    amount: str = Field(..., description="Amount, e.g. \"5000\" or \"₦5,000\"")
    operation: str = Field(..., description="add or subtract")
    admin_id: str = "SYSTEM"
    admin_name: str = "System"


class AllocateSavingsRequest(BaseModel):
    amount: str
    admin_id: str = "SYSTEM"
    admin_name: str = "System"


# Loan schemas
class LoanApplicationRequest(BaseModel):
    member_id: str
    amount: str
    purpose: str
    duration_months: int = Field(..., description="6, 12, 18 or 24")
    guarantor1_id: Optional[str] = None
    guarantor2_id: Optional[str] = None


class ApproveLoanRequest(BaseModel):
    admin_id: str
    admin_name: str = "Admin"
    notes: Optional[str] = None


class RejectLoanRequest(BaseModel):
    admin_id: str
    admin_name: str = "Admin"
    reason: Optional[str] = None


class RepaymentRequest(BaseModel):
    amount: str
    method: str = Field("cash", description="cash, bank_transfer or mobile_money")
    paid_on: Optional[str] = None  # ISO date string


# Guarantor schemas
class GuarantorResponseRequest(BaseModel):
    member_id: str
    response: str = Field(..., description="accepted or rejected")
    agreed_to_terms: bool = False


# Notification schemas
class BroadcastRequest(BaseModel):
    subject: str
    message: str
    member_ids: Optional[List[str]] = Field(None, description="Defaults to every active member")
    admin_id: str = "SYSTEM"
    admin_name: str = "System"


# Admin schemas
class FineRunRequest(BaseModel):
    admin_id: str = "SYSTEM"
    admin_name: str = "System"
    as_of: Optional[str] = None  # ISO date string


class FineSettingsRequest(BaseModel):
    admin_id: str
    admin_name: str = "Admin"
    percentage: Optional[str] = None
    grace_period_days: Optional[int] = None
    enabled: Optional[bool] = None


class ApprovalDecisionRequest(BaseModel):
    admin_id: str
    admin_name: str = "Admin"
    notes: Optional[str] = None


class SweepRequest(BaseModel):
    as_of: Optional[str] = None  # ISO date string


# Cooperative schemas
class CreateCooperativeRequest(BaseModel):
    name: str
    code: str
    subscription_tier: str = Field("basic", description="basic, standard or premium")
    status: str = Field("trial", description="active, suspended, trial or expired")
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class CooperativeSettingsRequest(BaseModel):
    settings: Dict[str, Any]


# Investment schemas
class CreateInvestmentRequest(BaseModel):
    product_name: str
    description: str = ""
    unit_price: str
    total_weeks: int
    total_units: int
    product_images: List[str] = Field(default_factory=list)
    admin_id: str = "SYSTEM"
    admin_name: str = "Admin"


class InvestmentApplicationRequest(BaseModel):
    member_id: str
    quantity: int


class ContributionRequest(BaseModel):
    amount: str
    paid_on: Optional[str] = None  # ISO date string
