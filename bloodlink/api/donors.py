"""
Donor directory endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from bloodlink.database.schemas import (
    AvailabilityUpdate,
    DonationRecordInput,
    DonorPage,
    DonorSummary,
    UserIdentity,
)
from bloodlink.services.donors import DonorService
from bloodlink.api.utils import get_current_user, get_donor_service

router = APIRouter()


@router.get("/donors", response_model=DonorPage)
async def list_donors(
    blood_type: Optional[str] = Query(None, alias="bloodType"),
    city: Optional[str] = None,
    available: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: DonorService = Depends(get_donor_service),
):
    """
    Active donors, most donations first
    """
    donors, pages, total = service.list_donors(
        blood_type=blood_type, city=city, available_only=bool(available), page=page, limit=limit,
    )
    return DonorPage(donors=donors, page=page, pages=pages, total=total)


@router.get("/donors/emergency/{blood_type}", response_model=List[DonorSummary])
async def emergency_donors(
    blood_type: str,
    city: Optional[str] = None,
    urgency: Optional[str] = None,
    service: DonorService = Depends(get_donor_service),
):
    """
    Available donors of exactly this blood type (larger list for critical urgency)
    """
    return service.emergency_donors(blood_type, city=city, urgency=urgency)


@router.get("/donors/{donor_id}", response_model=DonorSummary)
async def get_donor(donor_id: str, service: DonorService = Depends(get_donor_service)):
    return service.get_donor(donor_id)


@router.patch("/donors/{donor_id}/availability", response_model=DonorSummary)
async def update_availability(
    donor_id: str,
    body: AvailabilityUpdate,
    user: UserIdentity = Depends(get_current_user),
    service: DonorService = Depends(get_donor_service),
):
    return service.set_availability(user, donor_id, body.is_available)


@router.post("/donors/{donor_id}/donation", response_model=DonorSummary)
async def record_donation(
    donor_id: str,
    body: Optional[DonationRecordInput] = None,
    user: UserIdentity = Depends(get_current_user),
    service: DonorService = Depends(get_donor_service),
):
    """
    Record a completed donation (increments the donor's total)
    """
    return service.record_donation(user, donor_id, body.donation_date if body else None)
