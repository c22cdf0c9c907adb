"""
Blood request endpoints

- Create, list and inspect requests
- Donor responses and owner status changes
- Donor-side views: matching requests and response history
- Expiry sweep trigger for schedulers (admin only)
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from bloodlink.database.schemas import (
    BloodRequest,
    BloodRequestInput,
    CreateRequestResult,
    DonorResponse,
    DonorSummary,
    RequestPage,
    RespondInput,
    ResponseWithRequest,
    StatusUpdateInput,
    UserIdentity,
)
from bloodlink.services.compatibility import BloodType, can_donate_to, sorted_types
from bloodlink.services.lifecycle import LifecycleController
from bloodlink.api.utils import get_controller, get_current_user, require_admin

router = APIRouter()


class MatchingRequests(BaseModel):
    requests: List[BloodRequest]
    donor_blood_type: BloodType
    compatible_types: List[BloodType]


class ExpirySweepResult(BaseModel):
    expired: int
    request_ids: List[str]


class ExpirySweepInput(BaseModel):
    now: Optional[datetime] = None


@router.post("/requests", response_model=CreateRequestResult, status_code=201)
async def create_request(
    payload: BloodRequestInput,
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Create a blood request

    Returns the request and how many compatible donors are currently available.
    Invalid payloads return 422 with every failing field listed.
    """
    request, matching_donors = controller.create(user, payload.model_dump(exclude_unset=True))
    return CreateRequestResult(request=request, matching_donors=matching_donors)


@router.get("/requests", response_model=RequestPage)
async def list_requests(
    blood_type: Optional[str] = Query(None, alias="bloodType"),
    urgency: Optional[str] = None,
    status: Optional[str] = "active",
    city: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Public request feed, newest first (defaults to active requests)
    """
    requests, pages, total = controller.list_requests(
        blood_type=blood_type, urgency=urgency, status=status, city=city, page=page, limit=limit,
    )
    return RequestPage(requests=requests, page=page, pages=pages, total=total)


@router.get("/requests/user/my-requests", response_model=List[BloodRequest])
async def list_my_requests(
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    return controller.list_my_requests(user)


@router.get("/requests/donor/matching", response_model=MatchingRequests)
async def list_matching_requests(
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Active requests the calling donor can give to and has not responded to yet
    """
    requests = controller.list_matching_requests_for_donor(user)
    return MatchingRequests(
        requests=requests,
        donor_blood_type=user.blood_type,
        compatible_types=sorted_types(can_donate_to(user.blood_type)),
    )


@router.get("/requests/donor/my-responses", response_model=List[ResponseWithRequest])
async def list_my_responses(
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    return controller.list_my_responses(user)


@router.post("/requests/expire", response_model=ExpirySweepResult)
async def expire_requests(
    body: Optional[ExpirySweepInput] = None,
    admin: UserIdentity = Depends(require_admin),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Run the expiry sweep (for cron or an external scheduler)
    """
    expired = controller.expire(body.now if body else None)
    return ExpirySweepResult(expired=len(expired), request_ids=[r.id for r in expired])


@router.get("/requests/{request_id}", response_model=BloodRequest)
async def get_request(request_id: str, controller: LifecycleController = Depends(get_controller)):
    return controller.get(request_id)


@router.get("/requests/{request_id}/compatible-donors", response_model=List[DonorSummary])
async def list_compatible_donors(
    request_id: str,
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Available donors whose blood type the request's patient can receive
    """
    return controller.list_compatible_donors(request_id)


@router.post("/requests/{request_id}/respond", response_model=DonorResponse)
async def respond_to_request(
    request_id: str,
    body: Optional[RespondInput] = None,
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Declare interest in donating for a request

    Fails with 409 if already responded or the request is no longer active,
    and 422 if the donor's blood type is not compatible.
    """
    notes = body.notes if body else None
    return controller.respond(request_id, user, notes)


@router.patch("/requests/{request_id}/status", response_model=BloodRequest)
async def update_request_status(
    request_id: str,
    body: StatusUpdateInput,
    user: UserIdentity = Depends(get_current_user),
    controller: LifecycleController = Depends(get_controller),
):
    """
    Fulfil (with a responding donor) or cancel a request

    Only the request owner or an admin may change status.
    """
    return controller.update_status(request_id, user, body.status, body.fulfilled_by)
