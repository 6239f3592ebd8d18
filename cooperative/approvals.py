"""
Approval Queue Module

Pending admin decisions for loan applications, new memberships and
investment subscriptions. Deciding an approval drives the underlying record:
approving a loan approval approves the loan, approving a membership
activates the member.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from enum import Enum
import logging

from .storage import StorageInterface, StorageRecord, next_sequential_id
from .members import MemberRegistry
from .loans import LoanManager, LoanStatus
from .admin_log import AdminLog, AdminAction
from .errors import InvalidTransitionError, NotFoundError


logger = logging.getLogger("cooperative.approvals")


class ApprovalType(Enum):
    LOAN = "loan"
    MEMBER = "member"
    INVESTMENT = "investment"


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalPriority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# (approval, approved, admin_id, admin_name, notes)
DecisionHandler = Callable[['Approval', bool, str, str, Optional[str]], None]


@dataclass
class Approval(StorageRecord):
    approval_type: ApprovalType
    applicant_id: str
    applicant_name: str
    amount: Optional[Decimal] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    priority: ApprovalPriority = ApprovalPriority.MEDIUM
    details: Optional[str] = None
    related_id: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'approval_type': self.approval_type.value,
            'applicant_id': self.applicant_id,
            'applicant_name': self.applicant_name,
            'amount': str(self.amount) if self.amount is not None else None,
            'status': self.status.value,
            'priority': self.priority.value,
            'details': self.details,
            'related_id': self.related_id,
            'decided_by': self.decided_by,
            'decided_at': self.decided_at.isoformat() if self.decided_at else None,
            'decision_notes': self.decision_notes,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Approval':
        return cls(
            **cls.base_kwargs(data),
            approval_type=ApprovalType(data['approval_type']),
            applicant_id=data['applicant_id'],
            applicant_name=data['applicant_name'],
            amount=Decimal(data['amount']) if data.get('amount') is not None else None,
            status=ApprovalStatus(data['status']),
            priority=ApprovalPriority(data['priority']),
            details=data.get('details'),
            related_id=data.get('related_id'),
            decided_by=data.get('decided_by'),
            decided_at=datetime.fromisoformat(data['decided_at']) if data.get('decided_at') else None,
            decision_notes=data.get('decision_notes'),
        )


class ApprovalQueue:
    """
    Admin approval queue.

    Each approval type has a handler that carries the decision over to the
    underlying record. Records decided outside the queue settle their pending
    approval through settle_related, so the queue never disagrees with them.
    """

    TABLE = "approvals"

    def __init__(self, storage: StorageInterface, members: MemberRegistry,
                 loans: LoanManager, admin_log: AdminLog):
        self.storage = storage
        self.members = members
        self.loans = loans
        self.admin_log = admin_log
        self._handlers: Dict[ApprovalType, DecisionHandler] = {}

        self.register_handler(ApprovalType.LOAN, self._decide_loan)
        self.register_handler(ApprovalType.MEMBER, self._decide_member)
        loans.on_decision(lambda loan, admin_id, admin_name, notes: self.settle_related(
            loan.id, loan.status == LoanStatus.APPROVED, admin_id, admin_name, notes))

    def register_handler(self, approval_type: ApprovalType, handler: DecisionHandler) -> None:
        self._handlers[approval_type] = handler

    def submit(self, approval_type: ApprovalType, applicant_id: str, applicant_name: str,
               amount: Optional[Decimal] = None, details: Optional[str] = None,
               related_id: Optional[str] = None,
               priority: ApprovalPriority = ApprovalPriority.MEDIUM) -> Approval:
        now = datetime.now(timezone.utc)
        approval = Approval(
            id=next_sequential_id(self.storage, self.TABLE, "APR"),
            created_at=now,
            updated_at=now,
            approval_type=approval_type,
            applicant_id=applicant_id,
            applicant_name=applicant_name,
            amount=amount,
            priority=priority,
            details=details,
            related_id=related_id,
        )
        self._save(approval)
        logger.info("Approval %s queued for %s", approval.id, approval_type.value,
                    extra={'member_id': applicant_id, 'action': 'approval_submitted'})
        return approval

    def get(self, approval_id: str) -> Optional[Approval]:
        data = self.storage.load(self.TABLE, approval_id)
        return Approval.from_dict(data) if data else None

    def list(self, status: Optional[ApprovalStatus] = None,
             approval_type: Optional[ApprovalType] = None) -> List[Approval]:
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if approval_type:
            filters['approval_type'] = approval_type.value
        return [Approval.from_dict(d) for d in self.storage.find(self.TABLE, filters)]

    def for_related(self, related_id: str) -> Optional[Approval]:
        matches = self.storage.find(self.TABLE, {'related_id': related_id})
        return Approval.from_dict(matches[-1]) if matches else None

    def _require_pending(self, approval_id: str) -> Approval:
        approval = self.get(approval_id)
        if not approval:
            raise NotFoundError(f"Approval {approval_id} not found")
        if approval.status != ApprovalStatus.PENDING:
            raise InvalidTransitionError(f"Approval {approval_id} is already {approval.status.value}")
        return approval

    def _decide(self, approval: Approval, status: ApprovalStatus, admin_id: str,
                admin_name: str, notes: Optional[str]) -> Approval:
        approval.status = status
        approval.decided_by = admin_id
        approval.decided_at = datetime.now(timezone.utc)
        approval.decision_notes = notes
        approval.touch()
        self._save(approval)
        self.admin_log.add_admin_log(
            admin_id, admin_name, AdminAction.APPROVAL_DECIDED,
            f"{status.value.capitalize()} {approval.approval_type.value} request {approval.id} "
            f"for {approval.applicant_name}",
            target_member=approval.applicant_id, amount=approval.amount,
        )
        logger.info("Approval %s %s", approval.id, status.value,
                    extra={'member_id': approval.applicant_id, 'action': 'approval_decided'})
        return approval

    def _decide_loan(self, approval: Approval, approved: bool, admin_id: str, admin_name: str,
                     notes: Optional[str]) -> None:
        if not approval.related_id:
            return
        loan = self.loans.require_loan(approval.related_id)
        if loan.status != LoanStatus.PENDING:
            raise InvalidTransitionError(f"Loan {loan.id} is already {loan.status.value}")
        if approved:
            self.loans.approve_loan(loan.id, admin_id, admin_name, notes=notes)
        else:
            self.loans.reject_loan(loan.id, admin_id, admin_name, reason=notes)

    def _decide_member(self, approval: Approval, approved: bool, admin_id: str, admin_name: str,
                       notes: Optional[str]) -> None:
        if approved:
            self.members.activate_member(approval.applicant_id, admin_id, admin_name)

    def settle_related(self, related_id: str, approved: bool, admin_id: str, admin_name: str = "Admin",
                       notes: Optional[str] = None) -> Optional[Approval]:
        """Decide the pending approval of a record that was decided directly, if there is one"""
        approval = self.for_related(related_id)
        if approval is None or approval.status != ApprovalStatus.PENDING:
            return None
        status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        return self._decide(approval, status, admin_id, admin_name, notes)

    def _apply(self, approval_id: str, approved: bool, admin_id: str, admin_name: str,
               notes: Optional[str]) -> Approval:
        approval = self._require_pending(approval_id)
        with self.storage.atomic():
            handler = self._handlers.get(approval.approval_type)
            if handler:
                handler(approval, approved, admin_id, admin_name, notes)
            # Handlers that decide a related record settle the approval themselves
            current = self.get(approval.id)
            if current.status != ApprovalStatus.PENDING:
                return current
            status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
            return self._decide(current, status, admin_id, admin_name, notes)

    def approve(self, approval_id: str, admin_id: str, admin_name: str = "Admin",
                notes: Optional[str] = None) -> Approval:
        return self._apply(approval_id, True, admin_id, admin_name, notes)

    def reject(self, approval_id: str, admin_id: str, admin_name: str = "Admin",
               notes: Optional[str] = None) -> Approval:
        return self._apply(approval_id, False, admin_id, admin_name, notes)

    def _save(self, approval: Approval) -> None:
        self.storage.save(self.TABLE, approval.id, approval.to_dict())
