"""
EMI endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .deps import EmiSystem, get_emi_system, http_error
from .schemas import (
    CreateEmiRequest, UpdateEmiRequest, BulkArchiveRequest, RecalculateRequest,
    loan_response, entry_response, money_dict
)
from ..config import get_config
from ..stats import StatusFilter, SortBy, ALL_TAGS, filter_loans


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_emi(
    request: CreateEmiRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Create a new EMI and its amortization schedule"""
    try:
        loan = system.emi_manager.create_emi(
            owner_id=request.owner_id,
            item_name=request.item_name,
            terms=request.terms.to_loan_terms(get_config().default_currency),
            tag=request.tag
        )
    except ValueError as e:
        raise http_error(e)

    return {
        "emi_id": loan.id,
        "emi": loan_response(loan),
        "message": "EMI created successfully"
    }


@router.get("")
async def list_emis(
    owner_id: Optional[str] = None,
    include_archived: bool = True,
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    tag: str = ALL_TAGS,
    sort_by: Optional[str] = None,
    descending: bool = False,
    system: EmiSystem = Depends(get_emi_system)
):
    """List EMIs, newest first unless a sort key is given"""
    try:
        scope = StatusFilter(status_filter)
        sort_key = SortBy(sort_by) if sort_by else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    loans = system.emi_manager.list_emis(owner_id=owner_id, include_archived=include_archived)
    loans = filter_loans(loans, search=search, status=scope, tag=tag,
                         sort_by=sort_key, descending=descending)
    return {"emis": [loan_response(loan) for loan in loans]}


@router.post("/recalculate")
async def recalculate_emis(
    request: RecalculateRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Run the daily recalculation, or force it on demand"""
    try:
        as_of = date.fromisoformat(request.as_of) if request.as_of else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = system.emi_manager.recalculate_all(
        owner_id=request.owner_id,
        today=as_of,
        force=request.force
    )
    return {
        "ran": result.ran,
        "as_of": result.as_of.isoformat(),
        "checked": result.checked,
        "updated": result.updated
    }


@router.post("/bulk-archive")
async def bulk_archive_emis(
    request: BulkArchiveRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Archive several EMIs at once"""
    try:
        loans = system.emi_manager.bulk_archive(request.emi_ids, actor_id=request.actor_id)
    except ValueError as e:
        raise http_error(e)

    return {
        "archived": [loan.id for loan in loans],
        "message": f"{len(loans)} EMIs archived successfully"
    }


@router.get("/{emi_id}")
async def get_emi(
    emi_id: str,
    system: EmiSystem = Depends(get_emi_system)
):
    """Get EMI details with the installment currently due"""
    manager = system.emi_manager
    loan = manager.get_emi(emi_id)
    if not loan:
        raise HTTPException(status_code=404, detail="EMI not found")

    next_bill = manager.next_bill_date(emi_id)
    response = loan_response(loan)
    response["current_emi_with_gst"] = money_dict(manager.current_emi_with_gst(emi_id))
    response["next_bill_date"] = next_bill.isoformat() if next_bill else None
    return response


@router.put("/{emi_id}")
async def update_emi(
    emi_id: str,
    request: UpdateEmiRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Edit an EMI; new terms rebuild its schedule"""
    try:
        terms = None
        if request.terms is not None:
            terms = request.terms.to_loan_terms(get_config().default_currency)
        loan = system.emi_manager.update_emi(
            emi_id,
            terms=terms,
            item_name=request.item_name,
            tag=request.tag,
            actor_id=request.actor_id
        )
    except ValueError as e:
        raise http_error(e)

    return {
        "emi": loan_response(loan),
        "message": "EMI updated successfully"
    }


@router.delete("/{emi_id}")
async def delete_emi(
    emi_id: str,
    actor_id: Optional[str] = None,
    system: EmiSystem = Depends(get_emi_system)
):
    """Delete an EMI with its schedule and splits"""
    try:
        system.emi_manager.delete_emi(emi_id, actor_id=actor_id)
    except ValueError as e:
        raise http_error(e)

    return {"message": "EMI deleted successfully"}


@router.post("/{emi_id}/archive")
async def archive_emi(
    emi_id: str,
    actor_id: Optional[str] = None,
    system: EmiSystem = Depends(get_emi_system)
):
    """Archive an EMI"""
    try:
        loan = system.emi_manager.archive_emi(emi_id, actor_id=actor_id)
    except ValueError as e:
        raise http_error(e)

    return {"emi": loan_response(loan), "message": "EMI archived successfully"}


@router.post("/{emi_id}/unarchive")
async def unarchive_emi(
    emi_id: str,
    actor_id: Optional[str] = None,
    system: EmiSystem = Depends(get_emi_system)
):
    """Unarchive an EMI"""
    try:
        loan = system.emi_manager.unarchive_emi(emi_id, actor_id=actor_id)
    except ValueError as e:
        raise http_error(e)

    return {"emi": loan_response(loan), "message": "EMI unarchived successfully"}


@router.get("/{emi_id}/schedule")
async def get_emi_schedule(
    emi_id: str,
    system: EmiSystem = Depends(get_emi_system)
):
    """Get the amortization schedule"""
    if not system.emi_manager.get_emi(emi_id):
        raise HTTPException(status_code=404, detail="EMI not found")

    schedule = system.emi_manager.get_schedule(emi_id)
    return {
        "emi_id": emi_id,
        "schedule": [entry_response(entry) for entry in schedule]
    }
