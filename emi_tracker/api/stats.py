"""
Portfolio statistics and participant directory endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from .deps import EmiSystem, get_emi_system
from .schemas import stats_response
from ..config import get_config
from ..currency import Currency
from ..stats import StatusFilter, ALL_TAGS, compute_stats, tag_statistics


router = APIRouter()


class RegisterParticipantRequest(BaseModel):
    user_id: str
    email: str


@router.get("/stats")
async def get_stats(
    owner_id: Optional[str] = None,
    status_filter: str = Query("active", alias="status"),
    tag: str = ALL_TAGS,
    system: EmiSystem = Depends(get_emi_system)
):
    """Counts, monthly outflow and outstanding balance"""
    try:
        scope = StatusFilter(status_filter)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status_filter}")

    currency = Currency[get_config().default_currency.upper()]
    loans = [
        loan for loan in system.emi_manager.list_emis(owner_id=owner_id)
        if loan.currency == currency
    ]
    response = stats_response(compute_stats(loans, currency, status=scope, tag=tag))
    response["by_tag"] = {
        name: stats_response(tag_stats)
        for name, tag_stats in tag_statistics(loans, currency, status=scope).items()
    }
    return response


@router.post("/participants", status_code=status.HTTP_201_CREATED)
async def register_participant(
    request: RegisterParticipantRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Register a participant so splits can resolve their email"""
    try:
        system.directory.register(request.user_id, request.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"user_id": request.user_id, "message": "Participant registered successfully"}
