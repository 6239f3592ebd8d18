"""
Super-admin endpoints for cooperative tenants
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import CooperativeSystem, get_system, http_error
from .schemas import CreateCooperativeRequest, CooperativeSettingsRequest
from ..tenancy import Cooperative, CooperativeStatus, SubscriptionTier
from ..errors import CooperativeError


router = APIRouter()


def cooperative_to_response(cooperative: Cooperative) -> Dict[str, Any]:
    return cooperative.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_cooperative(
    request: CreateCooperativeRequest,
    system: CooperativeSystem = Depends(get_system)
):
    """Register a cooperative society"""
    try:
        tier = SubscriptionTier(request.subscription_tier)
        coop_status = CooperativeStatus(request.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        cooperative = system.cooperatives.create_cooperative(
            name=request.name,
            code=request.code,
            subscription_tier=tier,
            status=coop_status,
            contact_email=request.contact_email,
            contact_phone=request.contact_phone,
            address=request.address,
            settings=request.settings,
        )
    except CooperativeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return cooperative_to_response(cooperative)


@router.get("")
async def list_cooperatives(
    status: Optional[str] = None,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        coop_status = CooperativeStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    cooperatives = system.cooperatives.list_cooperatives(coop_status)
    return {"cooperatives": [cooperative_to_response(c) for c in cooperatives]}


@router.get("/{cooperative_id}")
async def get_cooperative(cooperative_id: str, system: CooperativeSystem = Depends(get_system)):
    cooperative = system.cooperatives.get_cooperative(cooperative_id)
    if not cooperative:
        raise HTTPException(status_code=404, detail="Cooperative not found")
    return cooperative_to_response(cooperative)


@router.post("/{cooperative_id}/activate")
async def activate_cooperative(cooperative_id: str, system: CooperativeSystem = Depends(get_system)):
    try:
        return cooperative_to_response(system.cooperatives.activate(cooperative_id))
    except CooperativeError as e:
        raise http_error(e)


@router.post("/{cooperative_id}/suspend")
async def suspend_cooperative(cooperative_id: str, system: CooperativeSystem = Depends(get_system)):
    try:
        return cooperative_to_response(system.cooperatives.suspend(cooperative_id))
    except CooperativeError as e:
        raise http_error(e)


@router.put("/{cooperative_id}/settings")
async def update_settings(
    cooperative_id: str,
    request: CooperativeSettingsRequest,
    system: CooperativeSystem = Depends(get_system)
):
    try:
        return cooperative_to_response(system.cooperatives.update_settings(cooperative_id, request.settings))
    except CooperativeError as e:
        raise http_error(e)
