"""
Notification Center Module

Member inbox for guarantor requests, loan decisions, fines and broadcasts.
Guarantor requests carry explicit foreign keys (guarantor member_id,
borrower_id and the loan as related_id) instead of encoding them in the title.
Optionally mirrors every notification to an external webhook (SMS/e-mail
gateway).
"""

from functools import partial
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from enum import Enum
import logging
import uuid

import requests

from .storage import StorageInterface, StorageRecord


logger = logging.getLogger("cooperative.notifications")


class NotificationType(Enum):
    GUARANTOR = "guarantor"
    LOAN = "loan"
    INVESTMENT = "investment"
    FINE = "fine"
    GENERAL = "general"


@dataclass
class Notification(StorageRecord):
    """Inbox entry for one member"""
    member_id: str
    notification_type: NotificationType
    title: str
    message: str
    action_required: bool = False
    related_id: Optional[str] = None   # e.g. loan id for guarantor requests
    borrower_id: Optional[str] = None  # borrower behind a guarantor request
    read: bool = False
    read_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending_guarantor_request(self) -> bool:
        return self.notification_type == NotificationType.GUARANTOR and self.action_required

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'member_id': self.member_id,
            'notification_type': self.notification_type.value,
            'title': self.title,
            'message': self.message,
            'action_required': self.action_required,
            'related_id': self.related_id,
            'borrower_id': self.borrower_id,
            'read': self.read,
            'read_at': self.read_at.isoformat() if self.read_at else None,
            'metadata': self.metadata,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        return cls(
            **cls.base_kwargs(data),
            member_id=data['member_id'],
            notification_type=NotificationType(data['notification_type']),
            title=data['title'],
            message=data['message'],
            action_required=data.get('action_required', False),
            related_id=data.get('related_id'),
            borrower_id=data.get('borrower_id'),
            read=data.get('read', False),
            read_at=datetime.fromisoformat(data['read_at']) if data.get('read_at') else None,
            metadata=data.get('metadata') or {},
        )


class WebhookDelivery:
    """POSTs notifications to an external gateway"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def deliver(self, notification: Notification) -> bool:
        payload = {
            "notification_id": notification.id,
            "type": notification.notification_type.value,
            "member_id": notification.member_id,
            "title": notification.title,
            "message": notification.message,
            "related_id": notification.related_id,
            "timestamp": notification.created_at.isoformat(),
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            # Inbox copy is already stored; the gateway is best-effort
            logger.warning("Webhook delivery failed for %s: %s", notification.id, e,
                           extra={'member_id': notification.member_id, 'action': 'webhook_failed'})
            return False
        return True


class NotificationCenter:
    """Stores and queries member notifications"""

    TABLE = "notifications"

    def __init__(self, storage: StorageInterface, webhook: Optional[WebhookDelivery] = None):
        self.storage = storage
        self.webhook = webhook

    def notify(
        self,
        member_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        action_required: bool = False,
        related_id: Optional[str] = None,
        borrower_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            member_id=member_id,
            notification_type=notification_type,
            title=title,
            message=message,
            action_required=action_required,
            related_id=related_id,
            borrower_id=borrower_id,
            metadata=metadata or {},
        )
        self._save(notification)
        logger.info("Notification '%s' queued", title,
                    extra={'member_id': member_id, 'action': 'notify',
                           'resource': f"notification:{notification.id}"})

        if self.webhook:
            # Inside a transaction the gateway only hears about committed notifications
            self.storage.on_commit(partial(self.webhook.deliver, notification))
        return notification

    def get(self, notification_id: str) -> Optional[Notification]:
        data = self.storage.load(self.TABLE, notification_id)
        return Notification.from_dict(data) if data else None

    def list_for_member(self, member_id: str, unread_only: bool = False,
                        notification_type: Optional[NotificationType] = None) -> List[Notification]:
        filters: Dict[str, Any] = {'member_id': member_id}
        if unread_only:
            filters['read'] = False
        if notification_type:
            filters['notification_type'] = notification_type.value
        notifications = [Notification.from_dict(d) for d in self.storage.find(self.TABLE, filters)]
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    def pending_guarantor_requests(self, member_id: str) -> List[Notification]:
        return [n for n in self.list_for_member(member_id, notification_type=NotificationType.GUARANTOR)
                if n.action_required]

    def for_related(self, related_id: str) -> List[Notification]:
        return [Notification.from_dict(d)
                for d in self.storage.find(self.TABLE, {'related_id': related_id})]

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        notification = self.get(notification_id)
        if not notification:
            return None
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.now(timezone.utc)
            notification.touch()
            self._save(notification)
        return notification

    def resolve(self, notification: Notification) -> Notification:
        """Mark an actionable notification as handled"""
        notification.action_required = False
        notification.read = True
        notification.read_at = notification.read_at or datetime.now(timezone.utc)
        notification.touch()
        self._save(notification)
        return notification

    def broadcast(self, member_ids: List[str], subject: str, message: str) -> List[Notification]:
        sent = [self.notify(member_id, NotificationType.GENERAL, subject, message)
                for member_id in member_ids]
        logger.info("Broadcast '%s' sent to %d members", subject, len(sent),
                    extra={'action': 'broadcast'})
        return sent

    def _save(self, notification: Notification) -> None:
        self.storage.save(self.TABLE, notification.id, notification.to_dict())
