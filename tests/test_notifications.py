"""
Tests for the member notification center and webhook delivery
"""

import pytest
from unittest.mock import MagicMock, patch

import requests

from cooperative.storage import InMemoryStorage
from cooperative.notifications import (
    Notification, NotificationCenter, NotificationType, WebhookDelivery
)


@pytest.fixture
def center():
    return NotificationCenter(InMemoryStorage())


class TestNotificationCenter:

    def test_notify_and_get(self, center):
        sent = center.notify("MEM001", NotificationType.LOAN, "Loan Approved", "Approved",
                             related_id="LOAN001")
        loaded = center.get(sent.id)
        assert loaded.title == "Loan Approved"
        assert loaded.related_id == "LOAN001"
        assert not loaded.read

    def test_list_for_member(self, center):
        center.notify("MEM001", NotificationType.GENERAL, "First", "one")
        center.notify("MEM002", NotificationType.GENERAL, "Other", "two")
        center.notify("MEM001", NotificationType.FINE, "Second", "three")
        titles = {n.title for n in center.list_for_member("MEM001")}
        assert titles == {"First", "Second"}
        assert [n.title for n in center.list_for_member("MEM001", notification_type=NotificationType.FINE)] == \
            ["Second"]

    def test_mark_read(self, center):
        sent = center.notify("MEM001", NotificationType.GENERAL, "Hello", "World")
        read = center.mark_read(sent.id)
        assert read.read
        assert read.read_at is not None
        assert center.list_for_member("MEM001", unread_only=True) == []
        assert center.mark_read("missing") is None

    def test_guarantor_request_carries_foreign_keys(self, center):
        center.notify("MEM002", NotificationType.GUARANTOR, "Guarantor Request from Ada Obi", "Please respond",
                      action_required=True, related_id="LOAN001", borrower_id="MEM001",
                      metadata={'loan_amount': "50000.00"})
        request = center.pending_guarantor_requests("MEM002")[0]
        assert request.is_pending_guarantor_request
        assert request.borrower_id == "MEM001"
        assert request.metadata == {'loan_amount': "50000.00"}

    def test_resolve_clears_action(self, center):
        request = center.notify("MEM002", NotificationType.GUARANTOR, "Request", "Respond",
                                action_required=True, related_id="LOAN001")
        center.resolve(request)
        assert center.pending_guarantor_requests("MEM002") == []
        assert center.get(request.id).read

    def test_for_related(self, center):
        center.notify("MEM002", NotificationType.GUARANTOR, "Request", "a", related_id="LOAN001")
        center.notify("MEM003", NotificationType.GUARANTOR, "Request", "b", related_id="LOAN001")
        center.notify("MEM003", NotificationType.GUARANTOR, "Request", "c", related_id="LOAN002")
        assert len(center.for_related("LOAN001")) == 2

    def test_broadcast(self, center):
        sent = center.broadcast(["MEM001", "MEM002"], "AGM", "Meeting on Friday")
        assert len(sent) == 2
        assert all(n.notification_type == NotificationType.GENERAL for n in sent)

    def test_round_trip(self, center):
        sent = center.notify("MEM001", NotificationType.FINE, "Fine", "Charged")
        assert Notification.from_dict(sent.to_dict()) == sent


class TestWebhookDelivery:

    def test_posts_payload(self, center):
        webhook = WebhookDelivery("https://gateway.example.com/notify", timeout=2.0)
        center.webhook = webhook
        with patch("cooperative.notifications.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            sent = center.notify("MEM001", NotificationType.LOAN, "Loan Approved", "Approved")

        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == "https://gateway.example.com/notify"
        assert kwargs['json']['notification_id'] == sent.id
        assert kwargs['json']['type'] == "loan"
        assert kwargs['timeout'] == 2.0

    def test_gateway_failure_keeps_inbox_copy(self, center):
        center.webhook = WebhookDelivery("https://gateway.example.com/notify")
        with patch("cooperative.notifications.requests.post",
                   side_effect=requests.ConnectionError("gateway down")):
            sent = center.notify("MEM001", NotificationType.LOAN, "Loan Approved", "Approved")
        assert center.get(sent.id) is not None

    def test_deliver_reports_failure(self):
        webhook = WebhookDelivery("https://gateway.example.com/notify")
        notification = NotificationCenter(InMemoryStorage()).notify("MEM001", NotificationType.GENERAL, "Hi", "There")
        with patch("cooperative.notifications.requests.post") as post:
            post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
            assert webhook.deliver(notification) is False
        with patch("cooperative.notifications.requests.post") as post:
            assert webhook.deliver(notification) is True
