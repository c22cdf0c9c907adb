"""
Blood request lifecycle

Creates requests, records donor responses, and moves requests through
    active -> fulfilled | cancelled | expired
Terminal states are absorbing. Every write goes through RequestStore.update,
so the state checks below run under the store lock immediately before commit.

Expiry is lazy-safe: respond/accept/cancel compare against the clock, not
only the stored status, so a lagging sweep never lets a stale request through.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from bloodlink.database.schemas import (
    BloodRequest,
    BloodRequestDraft,
    DonorResponse,
    DonorSummary,
    RequestStatus,
    RequestSummary,
    ResponseWithRequest,
    Urgency,
    UserIdentity,
    URGENCY_HOURS,
)
from bloodlink.database.storage import RequestStore, UserDirectory
from bloodlink.services.compatibility import is_compatible, parse_blood_type
from bloodlink.services.errors import (
    AuthorizationError,
    DuplicateResponseError,
    IncompatibleBloodTypeError,
    InvalidStateError,
    NotAResponderError,
    NotFoundError,
    ValidationError,
)
from bloodlink.services.matching import Matcher
from bloodlink.services.request_details import canonicalize_request_input, describe_fields, validation_fields
from bloodlink.services.utils import as_utc, paginate, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_NOTE = "I am available to donate blood"

# Returned from inside a store update when the request turned out to be past expiry
_LAPSED = object()


def compute_expiry(created_at: datetime, urgency: Urgency) -> datetime:
    return created_at + timedelta(hours=URGENCY_HOURS[Urgency(urgency)])


def effective_request(request: BloodRequest, now: datetime) -> BloodRequest:
    """
    The request as readers should see it: active but past expiry reads as expired
    """
    if request.status == RequestStatus.ACTIVE and now >= request.expires_at:
        return request.model_copy(update={"status": RequestStatus.EXPIRED})
    return request


class LifecycleController:
    def __init__(
        self,
        store: RequestStore,
        directory: UserDirectory,
        matcher: Optional[Matcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.directory = directory
        self.matcher = matcher or Matcher(directory)
        self._clock = clock

    def now(self) -> datetime:
        return as_utc(self._clock())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, requester: UserIdentity, payload: dict) -> Tuple[BloodRequest, int]:
        """
        Validate and persist a new active request

        Returns the request and the number of compatible donors currently
        available. Notifying those donors is left to the caller.

        Raises:
            ValidationError: listing every missing or invalid field
        """
        data = canonicalize_request_input(payload)
        try:
            draft = BloodRequestDraft.model_validate(data)
        except PydanticValidationError as exc:
            fields = validation_fields(exc)
            raise ValidationError(f"Validation failed: {describe_fields(fields)}", fields)

        now = self.now()
        request = BloodRequest(
            **draft.model_dump(),
            id=str(uuid.uuid4()),
            requested_by=requester.id,
            status=RequestStatus.ACTIVE,
            responses=[],
            created_at=now,
            updated_at=now,
            expires_at=compute_expiry(now, draft.urgency),
        )
        self.store.add(request)
        logger.info(
            "[Lifecycle] created request=%s blood_type=%s urgency=%s by=%s expires_at=%s",
            request.id, request.blood_type.value, request.urgency.value, requester.id, request.expires_at.isoformat(),
        )

        matching_donors = self.matcher.find_candidates(request)
        return request, len(matching_donors)

    def respond(self, request_id: str, donor: UserIdentity, notes: Optional[str] = None) -> DonorResponse:
        """
        Record a donor's interest in a request

        Raises:
            NotFoundError, InvalidStateError, DuplicateResponseError,
            IncompatibleBloodTypeError
        """
        def action(request: BloodRequest, now: datetime) -> DonorResponse:
            if request.response_from(donor.id) is not None:
                raise DuplicateResponseError("You have already responded to this request")
            if not is_compatible(donor.blood_type, request.blood_type):
                raise IncompatibleBloodTypeError(
                    f"Your blood type ({donor.blood_type.value}) is not compatible "
                    f"with the required type ({request.blood_type.value})"
                )
            response = DonorResponse(
                id=str(uuid.uuid4()),
                donor_id=donor.id,
                response_date=now,
                notes=(notes or "").strip() or DEFAULT_RESPONSE_NOTE,
            )
            request.responses.append(response)
            request.updated_at = now
            return response

        response = self._apply(request_id, action)
        logger.info("[Lifecycle] donor=%s responded to request=%s", donor.id, request_id)
        return response

    def accept_donor(self, request_id: str, actor: UserIdentity, donor_id: str) -> BloodRequest:
        """
        Fulfil a request with one of its responders (owner or admin only)

        Raises:
            NotFoundError, AuthorizationError, InvalidStateError, NotAResponderError
        """
        def action(request: BloodRequest, now: datetime) -> BloodRequest:
            if request.response_from(donor_id) is None:
                raise NotAResponderError("Selected donor has not responded to this request")
            request.status = RequestStatus.FULFILLED
            request.fulfilled_by = donor_id
            request.fulfilled_at = now
            request.updated_at = now
            return request

        request = self._apply(request_id, action, authorize=lambda r: self._authorize_owner(r, actor))
        logger.info("[Lifecycle] request=%s fulfilled by donor=%s (actor=%s)", request_id, donor_id, actor.id)
        return request

    def cancel(self, request_id: str, actor: UserIdentity) -> BloodRequest:
        """
        Cancel an active request (owner or admin only)
        """
        def action(request: BloodRequest, now: datetime) -> BloodRequest:
            request.status = RequestStatus.CANCELLED
            request.updated_at = now
            return request

        request = self._apply(request_id, action, authorize=lambda r: self._authorize_owner(r, actor))
        logger.info("[Lifecycle] request=%s cancelled (actor=%s)", request_id, actor.id)
        return request

    def update_status(
        self,
        request_id: str,
        actor: UserIdentity,
        new_status,
        fulfilled_by: Optional[str] = None,
    ) -> BloodRequest:
        """
        Owner-facing status change: fulfilled (with a responder) or cancelled
        """
        try:
            status = RequestStatus(new_status)
        except ValueError:
            status = None

        if status == RequestStatus.FULFILLED:
            if not fulfilled_by:
                raise ValidationError(
                    "fulfilled_by is required to fulfil a request",
                    [{"field": "fulfilled_by", "message": "Field required"}],
                )
            return self.accept_donor(request_id, actor, fulfilled_by)

        if status == RequestStatus.CANCELLED:
            return self.cancel(request_id, actor)

        raise ValidationError(
            f"Cannot change status to '{new_status}'",
            [{"field": "status", "message": "Status can only be changed to 'fulfilled' or 'cancelled'"}],
        )

    def expire(self, now: Optional[datetime] = None) -> List[BloodRequest]:
        """
        Sweep: transition every active request with expires_at <= now to expired

        Idempotent; returns only the requests newly expired by this call.
        """
        now = as_utc(now) if now is not None else self.now()
        expired = self.store.expire_due(now)
        if expired:
            logger.info("[Lifecycle] expiry sweep at %s expired %d requests", now.isoformat(), len(expired))
        else:
            logger.debug("[Lifecycle] expiry sweep at %s found nothing to expire", now.isoformat())
        return expired

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> BloodRequest:
        request = self.store.get(request_id)
        if request is None:
            raise NotFoundError("Blood request not found")
        return effective_request(request, self.now())

    def list_requests(
        self,
        blood_type: Optional[str] = None,
        urgency: Optional[str] = None,
        status: Optional[str] = RequestStatus.ACTIVE.value,
        city: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[BloodRequest], int, int]:
        """
        Filtered request feed, newest first

        "all" (or None) disables a filter. City matches the hospital address.
        """
        now = self.now()
        wanted_type = parse_blood_type(blood_type) if blood_type and blood_type != "all" else None
        if blood_type and blood_type != "all" and wanted_type is None:
            raise ValidationError("Invalid blood type filter", [{"field": "blood_type", "message": "Unknown blood type"}])
        city = (city or "").strip().lower()

        def matches(request: BloodRequest) -> bool:
            if status and status != "all" and request.status.value != status:
                return False
            if wanted_type is not None and request.blood_type != wanted_type:
                return False
            if urgency and urgency != "all" and request.urgency.value != urgency:
                return False
            if city and city not in request.hospital.address.lower():
                return False
            return True

        requests = [effective_request(r, now) for r in self.store.list()]
        requests = [r for r in requests if matches(r)]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return paginate(requests, page, limit)

    def list_compatible_donors(self, request_id: str) -> List[DonorSummary]:
        request = self.get(request_id)
        return [DonorSummary.from_identity(donor) for donor in self.matcher.find_candidates(request)]

    def list_matching_requests_for_donor(self, donor: UserIdentity) -> List[BloodRequest]:
        self._require_donor(donor, "Only donors can access matching requests")
        return Matcher.requests_for_donor(donor, self.store.list(), self.now())

    def list_my_requests(self, requester: UserIdentity) -> List[BloodRequest]:
        now = self.now()
        requests = self.store.list(lambda r: r.requested_by == requester.id)
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return [effective_request(r, now) for r in requests]

    def list_my_responses(self, donor: UserIdentity) -> List[ResponseWithRequest]:
        self._require_donor(donor, "Only donors can access response history")
        now = self.now()
        history = []
        requests = self.store.list(lambda r: r.response_from(donor.id) is not None)
        requests.sort(key=lambda r: r.created_at, reverse=True)
        for request in requests:
            request = effective_request(request, now)
            response = request.response_from(donor.id)
            history.append(ResponseWithRequest(
                id=response.id,
                response_date=response.response_date,
                status=response.status,
                notes=response.notes,
                request=RequestSummary(
                    id=request.id,
                    patient_name=request.patient_name,
                    blood_type=request.blood_type,
                    units_needed=request.units_needed,
                    urgency=request.urgency,
                    hospital=request.hospital,
                    contact_phone=request.contact_phone,
                    status=request.status,
                    fulfilled_by=request.fulfilled_by,
                    requested_by=request.requested_by,
                    created_at=request.created_at,
                ),
            ))
        return history

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply(self, request_id: str, action, authorize=None):
        """
        Run action on a live request inside the store's atomic update

        A request that is still stored as active but already past expiry is
        persisted as expired and the caller gets InvalidStateError. The clock is
        read under the store lock, so commit order and timestamps agree.
        """
        def mutate(request: BloodRequest):
            now = self.now()
            if authorize is not None:
                authorize(request)
            if request.status != RequestStatus.ACTIVE:
                raise InvalidStateError(f"This request is no longer active (status: {request.status.value})")
            if now >= request.expires_at:
                request.status = RequestStatus.EXPIRED
                request.updated_at = now
                return _LAPSED
            return action(request, now)

        result = self.store.update(request_id, mutate)
        if result is _LAPSED:
            logger.info("[Lifecycle] request=%s lapsed before the sweep, marked expired", request_id)
            raise InvalidStateError("This request has expired")
        return result

    @staticmethod
    def _authorize_owner(request: BloodRequest, actor: UserIdentity):
        if actor.id != request.requested_by and not actor.is_admin:
            raise AuthorizationError("Not authorized to update this request")

    @staticmethod
    def _require_donor(user: UserIdentity, message: str):
        if not user.is_donor:
            raise AuthorizationError(message)
