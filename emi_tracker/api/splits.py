"""
Split endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .deps import EmiSystem, get_emi_system, http_error
from .schemas import SetSplitsRequest, split_response, participant_view_response, money_dict


router = APIRouter()


@router.put("/{emi_id}/splits")
async def set_splits(
    emi_id: str,
    request: SetSplitsRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Replace every split of an EMI"""
    try:
        splits = system.emi_manager.set_splits(
            emi_id,
            [split.to_split_input() for split in request.splits],
            actor_id=request.actor_id
        )
    except ValueError as e:
        raise http_error(e)

    return {
        "splits": [split_response(split) for split in splits],
        "message": "Splits saved successfully"
    }


@router.get("/{emi_id}/splits")
async def get_splits(
    emi_id: str,
    system: EmiSystem = Depends(get_emi_system)
):
    """List an EMI's splits"""
    if not system.emi_manager.get_emi(emi_id):
        raise HTTPException(status_code=404, detail="EMI not found")

    return {"splits": [split_response(split) for split in system.emi_manager.get_splits(emi_id)]}


@router.delete("/{emi_id}/splits")
async def remove_splits(
    emi_id: str,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    actor_id: Optional[str] = None,
    system: EmiSystem = Depends(get_emi_system)
):
    """Remove one participant's split, or every split when none is named"""
    try:
        if user_id or email:
            removed = system.emi_manager.remove_split(
                emi_id, user_id=user_id, email=email, actor_id=actor_id
            )
        else:
            removed = system.emi_manager.remove_all_splits(emi_id, actor_id=actor_id)
    except ValueError as e:
        raise http_error(e)

    return {"removed": removed}


@router.get("/{emi_id}/splits/allocation")
async def get_split_allocation(
    emi_id: str,
    system: EmiSystem = Depends(get_emi_system)
):
    """Each participant's share of the installment currently due"""
    try:
        allocation = system.emi_manager.split_allocation(emi_id)
    except ValueError as e:
        raise http_error(e)

    return {
        "emi_id": emi_id,
        "allocation": {key: money_dict(share) for key, share in allocation.items()}
    }


@router.get("/{emi_id}/splits/view")
async def get_participant_view(
    emi_id: str,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    system: EmiSystem = Depends(get_emi_system)
):
    """One participant's proportional view of an EMI"""
    try:
        view = system.emi_manager.participant_view(emi_id, user_id=user_id, email=email)
    except ValueError as e:
        raise http_error(e)

    if view is None:
        raise HTTPException(status_code=404, detail="Participant has no split on this EMI")
    return participant_view_response(view)
