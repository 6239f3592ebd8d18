"""
Guarantor Response Workflow

A nominated guarantor answers a guarantor request notification. Accepting
requires an explicit acknowledgment of the guarantor terms and records a
commitment on the guarantor's profile; rejecting needs no acknowledgment.
Requests that cannot be resolved to a pending loan are ignored.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import logging

from .storage import StorageInterface
from .members import GuarantorCommitment, MemberRegistry
from .loans import GuarantorStatus, Loan, LoanManager, LoanStatus
from .notifications import Notification, NotificationCenter, NotificationType
from .admin_log import AdminLog, AdminAction
from .errors import GuarantorNotEligibleError, TermsNotAcceptedError


logger = logging.getLogger("cooperative.guarantors")


class GuarantorResponse(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class GuarantorWorkflow:

    def __init__(self, storage: StorageInterface, members: MemberRegistry, loans: LoanManager,
                 notifications: NotificationCenter, admin_log: AdminLog):
        self.storage = storage
        self.members = members
        self.loans = loans
        self.notifications = notifications
        self.admin_log = admin_log

    def pending_requests(self, member_id: str) -> List[Notification]:
        return self.notifications.pending_guarantor_requests(member_id)

    def _resolve(self, notification_id: str, member_id: str) -> Optional[Loan]:
        notification = self.notifications.get(notification_id)
        if notification is None or notification.notification_type != NotificationType.GUARANTOR:
            return None
        if notification.member_id != member_id or not notification.related_id:
            return None
        # Each request is answered once
        if not notification.action_required:
            return None
        loan = self.loans.get_loan(notification.related_id)
        if loan is None:
            return None
        entry = loan.guarantor(member_id)
        if entry is None or entry.status != GuarantorStatus.PENDING:
            return None
        return loan

    def respond_to_guarantor_request(self, notification_id: str, response: GuarantorResponse,
                                     member_id: str, agreed_to_terms: bool = False) -> Optional[Loan]:
        """
        Record a guarantor's answer to a request.

        Returns the updated loan, or None when the notification does not
        resolve to a loan this member was nominated for (nothing changes).

        Raises:
            TermsNotAcceptedError: Accepting without acknowledging the terms
            GuarantorNotEligibleError: Accepting member may not guarantee loans
        """
        loan = self._resolve(notification_id, member_id)
        if loan is None:
            logger.warning("Ignoring guarantor response to unknown request %s", notification_id,
                           extra={'member_id': member_id, 'action': 'guarantor_response_ignored'})
            return None

        if response == GuarantorResponse.ACCEPTED:
            if not agreed_to_terms:
                raise TermsNotAcceptedError("You must agree to the guarantor terms before accepting")
            can_guarantee, reason = self.members.can_member_be_guarantor(member_id)
            if not can_guarantee:
                raise GuarantorNotEligibleError(reason)

        entry = loan.guarantor(member_id)
        notification = self.notifications.get(notification_id)

        with self.storage.atomic():
            # Answers to loans already decided only close the request
            if loan.status == LoanStatus.PENDING:
                entry.status = GuarantorStatus(response.value)
                entry.responded_at = datetime.now(timezone.utc)
                loan.touch()
                self.loans.save(loan)

                if response == GuarantorResponse.ACCEPTED:
                    self.members.add_guarantor_commitment(member_id, GuarantorCommitment(
                        loan_id=loan.id,
                        member_id=loan.member_id,
                        member_name=loan.member_name,
                        loan_amount=loan.amount,
                        remaining_amount=loan.total_amount,
                    ))

                self.notifications.notify(
                    loan.member_id, NotificationType.GUARANTOR,
                    f"Guarantor {response.value.capitalize()}",
                    f"{entry.member_name} has {response.value} your guarantor request "
                    f"for the loan of {loan.amount.to_string()}.",
                    related_id=loan.id,
                )
                self.admin_log.add_admin_log(member_id, entry.member_name, AdminAction.GUARANTOR_RESPONSE,
                                             f"Guarantor request {response.value} for loan {loan.id}",
                                             target_member=loan.member_id)

            self.notifications.resolve(notification)

        logger.info("Guarantor %s %s loan %s", member_id, response.value, loan.id,
                    extra={'member_id': member_id, 'action': 'guarantor_response',
                           'resource': f"loan:{loan.id}"})
        return loan
