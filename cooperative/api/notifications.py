"""
Notification endpoints
"""

from typing import Any, Dict
from fastapi import APIRouter, HTTPException, Depends

from .system import CooperativeSystem, get_system
from .schemas import BroadcastRequest
from ..notifications import Notification
from ..members import MemberStatus
from ..admin_log import AdminAction


router = APIRouter()


def notification_to_response(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "member_id": notification.member_id,
        "type": notification.notification_type.value,
        "title": notification.title,
        "message": notification.message,
        "action_required": notification.action_required,
        "related_id": notification.related_id,
        "borrower_id": notification.borrower_id,
        "read": notification.read,
        "created_at": notification.created_at.isoformat(),
    }


@router.get("/member/{member_id}")
async def list_notifications(
    member_id: str,
    unread_only: bool = False,
    system: CooperativeSystem = Depends(get_system)
):
    """A member's inbox, newest first"""
    notifications = system.notifications.list_for_member(member_id, unread_only=unread_only)
    return {
        "notifications": [notification_to_response(n) for n in notifications],
        "unread": len([n for n in notifications if not n.read]),
    }


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, system: CooperativeSystem = Depends(get_system)):
    notification = system.notifications.mark_read(notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification_to_response(notification)


@router.post("/broadcast")
async def broadcast(request: BroadcastRequest, system: CooperativeSystem = Depends(get_system)):
    """Send a message to selected members, or every active member"""
    member_ids = request.member_ids
    if member_ids is None:
        member_ids = [m.id for m in system.members.get_all_members(MemberStatus.ACTIVE)]

    sent = system.notifications.broadcast(member_ids, request.subject, request.message)
    system.admin_log.add_admin_log(request.admin_id, request.admin_name, AdminAction.BROADCAST_SENT,
                                   f"Broadcast '{request.subject}' to {len(sent)} members")
    return {"sent": len(sent)}
