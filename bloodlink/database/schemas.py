"""
Data models

- Pydantic provides automatic validation
- Canonical models are what the stores persist
- Input models are loose at the API boundary and get canonicalized by services
"""
from typing import Optional, Any, List, Union
from datetime import datetime
from enum import Enum
import re

from pydantic import BaseModel, Field, field_validator, ConfigDict

from bloodlink.services.compatibility import BloodType

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")


class Urgency(str, Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    MODERATE = "moderate"
    ROUTINE = "routine"


# Time to live of a request, in hours, by urgency
URGENCY_HOURS = {
    Urgency.CRITICAL: 2,
    Urgency.URGENT: 6,
    Urgency.MODERATE: 24,
    Urgency.ROUTINE: 72,
}

# Sort rank, most urgent first
URGENCY_RANK = {
    Urgency.CRITICAL: 0,
    Urgency.URGENT: 1,
    Urgency.MODERATE: 2,
    Urgency.ROUTINE: 3,
}


class RequestStatus(str, Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({RequestStatus.FULFILLED, RequestStatus.CANCELLED, RequestStatus.EXPIRED})


class ResponseStatus(str, Enum):
    INTERESTED = "interested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"


class UserType(str, Enum):
    DONOR = "donor"
    RECIPIENT = "recipient"
    ADMIN = "admin"


class DonorInfo(BaseModel):
    """
    Donor specific fields of an identity
    """
    is_available: bool                     = Field(default=True, description="Whether the donor currently accepts requests")
    total_donations: int                   = Field(default=0, ge=0, description="Number of recorded donations")
    last_donation_date: Optional[datetime] = Field(None, description="Timestamp of the most recent donation")


class UserIdentity(BaseModel):
    """
    Authenticated identity as provided by the identity subsystem

    The matching engine only reads blood type, role, activity and availability.
    """
    model_config = ConfigDict(extra="ignore")
    id: str                        = Field(...,  description="User unique identifier")
    first_name: str                = Field(...,  description="First name")
    last_name: str                 = Field("",   description="Last name")
    email: Optional[str]           = Field(None, description="Email address")
    phone: Optional[str]           = Field(None, description="Phone number")
    blood_type: BloodType          = Field(...,  description="Blood type, immutable once assigned")
    user_type: UserType            = Field(default=UserType.DONOR, description="Role: donor, recipient or admin")
    is_active: bool                = Field(default=True, description="False once the account is deactivated")
    city: Optional[str]            = Field(None, description="City of residence")
    donor_info: DonorInfo          = Field(default_factory=DonorInfo, description="Donor specific data")
    created_at: Optional[datetime] = Field(None, description="Timestamp when the identity was registered")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

    @property
    def is_donor(self) -> bool:
        return self.user_type == UserType.DONOR


class DonorSummary(BaseModel):
    """
    Public view of a donor returned by matching queries
    """
    id: str
    name: str
    blood_type: BloodType
    city: Optional[str]                    = None
    phone: Optional[str]                   = None
    email: Optional[str]                   = None
    is_available: bool                     = True
    total_donations: int                   = 0
    last_donation_date: Optional[datetime] = None

    @classmethod
    def from_identity(cls, user: UserIdentity) -> "DonorSummary":
        return cls(
            id=user.id,
            name=user.full_name,
            blood_type=user.blood_type,
            city=user.city,
            phone=user.phone,
            email=user.email,
            is_available=user.donor_info.is_available,
            total_donations=user.donor_info.total_donations,
            last_donation_date=user.donor_info.last_donation_date,
        )


class Hospital(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)
    name: str           = Field(..., min_length=1, description="Hospital name")
    address: str        = Field(..., min_length=1, description="Hospital address")
    contact_number: str = Field(..., min_length=1, description="Hospital contact number")


class Physician(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)
    name: str    = Field(..., min_length=1, description="Attending physician name")
    contact: str = Field(..., min_length=1, description="Attending physician contact")


class DonorResponse(BaseModel):
    """
    A donor's declaration of interest in a request

    At most one per (request, donor) pair; never deleted.
    """
    id: str                 = Field(..., description="Response unique identifier")
    donor_id: str           = Field(..., description="Responding donor identity")
    response_date: datetime = Field(..., description="Timestamp when the response was accepted")
    status: ResponseStatus  = Field(default=ResponseStatus.INTERESTED, description="Per-response workflow status")
    notes: Optional[str]    = Field(None, description="Free text note from the donor")


class BloodRequestDraft(BaseModel):
    """
    Validated clinical data of a new request

    Validation errors are collected for every field, not just the first.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")
    patient_name: str             = Field(..., min_length=1, max_length=100, description="Patient name")
    blood_type: BloodType         = Field(..., description="Required blood type")
    units_needed: int             = Field(..., ge=1, le=10, description="Units needed (1-10)")
    urgency: Urgency              = Field(..., description="critical, urgent, moderate or routine")
    hospital: Hospital            = Field(..., description="Hospital descriptor")
    attending_physician: Physician = Field(..., description="Attending physician descriptor")
    contact_phone: str            = Field(..., min_length=1, description="Contact phone number")
    medical_reason: str           = Field(..., min_length=1, max_length=500, description="Medical reason")

    @field_validator("contact_phone")
    @classmethod
    def validate_contact_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Please enter a valid phone number")
        return value


class BloodRequest(BloodRequestDraft):
    """
    Blood request with lifecycle state (persisted)
    """
    id: str                          = Field(...,  description="Request unique identifier")
    requested_by: str                = Field(...,  description="Identity that created the request")
    status: RequestStatus            = Field(default=RequestStatus.ACTIVE, description="active, fulfilled, cancelled or expired")
    responses: List[DonorResponse]   = Field(default_factory=list, description="Donor responses in acceptance order")
    created_at: datetime             = Field(...,  description="Timestamp when the request was created")
    updated_at: Optional[datetime]   = Field(None, description="Timestamp of the last state change")
    expires_at: datetime             = Field(...,  description="created_at plus the urgency time to live")
    fulfilled_by: Optional[str]      = Field(None, description="Accepted donor, set on fulfillment")
    fulfilled_at: Optional[datetime] = Field(None, description="Timestamp of fulfillment")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_live(self, now: datetime) -> bool:
        """Active in storage and not past its expiry"""
        return self.status == RequestStatus.ACTIVE and now < self.expires_at

    def response_from(self, donor_id: str) -> Optional[DonorResponse]:
        for response in self.responses:
            if response.donor_id == donor_id:
                return response
        return None


class BloodRequestInput(BaseModel):
    """
    Blood request input model (accepts loose shapes at API boundary)

    hospital and attending_physician may be given as a plain name string.
    camelCase keys from the web client are kept as extras and canonicalized later.
    """
    model_config = ConfigDict(extra="allow")
    patient_name: Optional[str]                   = Field(None, description="Patient name")
    blood_type: Optional[str]                     = Field(None, description="Required blood type")
    units_needed: Optional[Any]                   = Field(None, description="Units needed (1-10)")
    urgency: Optional[str]                        = Field(None, description="Urgency level")
    hospital: Optional[Union[str, dict]]          = Field(None, description="Hospital name or descriptor")
    attending_physician: Optional[Union[str, dict]] = Field(None, description="Physician name or descriptor")
    contact_phone: Optional[str]                  = Field(None, description="Contact phone number")
    medical_reason: Optional[str]                 = Field(None, description="Medical reason")


class RespondInput(BaseModel):
    notes: Optional[str] = Field(None, max_length=500, description="Optional note for the requester")


class StatusUpdateInput(BaseModel):
    status: RequestStatus        = Field(..., description="Target status: fulfilled or cancelled")
    fulfilled_by: Optional[str]  = Field(None, description="Donor to accept, required for fulfilled")


class CreateRequestResult(BaseModel):
    request: BloodRequest
    matching_donors: int = Field(..., description="Number of compatible, available donors at creation time")


class RequestSummary(BaseModel):
    """
    Request context attached to a donor's response history entry
    """
    id: str
    patient_name: str
    blood_type: BloodType
    units_needed: int
    urgency: Urgency
    hospital: Hospital
    contact_phone: str
    status: RequestStatus
    fulfilled_by: Optional[str] = None
    requested_by: str
    created_at: datetime


class ResponseWithRequest(BaseModel):
    id: str
    response_date: datetime
    status: ResponseStatus
    notes: Optional[str] = None
    request: RequestSummary


class RequestPage(BaseModel):
    requests: List[BloodRequest]
    page: int
    pages: int
    total: int


class DonorPage(BaseModel):
    donors: List[DonorSummary]
    page: int
    pages: int
    total: int


class AvailabilityUpdate(BaseModel):
    is_available: bool = Field(..., description="New availability flag")


class DonationRecordInput(BaseModel):
    donation_date: Optional[datetime] = Field(None, description="Donation timestamp, defaults to now")
