"""
Database module

Contains both data models (schemas) and storage repositories.
"""

# Export schemas
from bloodlink.database.schemas import (
    BloodRequest,
    BloodRequestDraft,
    BloodRequestInput,
    DonorResponse,
    DonorSummary,
    DonorInfo,
    Hospital,
    Physician,
    RequestStatus,
    ResponseStatus,
    Urgency,
    UserIdentity,
    UserType,
    URGENCY_HOURS,
)

# Export storage classes for convenience
from bloodlink.database.storage import (
    read_json,
    write_json,
    RequestStore,
    UserDirectory,
    InMemoryRequestStore,
    InMemoryUserDirectory,
    JsonRequestStore,
    JsonUserDirectory,
    create_request_store,
    create_user_directory,
)

__all__ = [
    # Schemas
    "BloodRequest",
    "BloodRequestDraft",
    "BloodRequestInput",
    "DonorResponse",
    "DonorSummary",
    "DonorInfo",
    "Hospital",
    "Physician",
    "RequestStatus",
    "ResponseStatus",
    "Urgency",
    "UserIdentity",
    "UserType",
    "URGENCY_HOURS",
    # Storage
    "read_json",
    "write_json",
    "RequestStore",
    "UserDirectory",
    "InMemoryRequestStore",
    "InMemoryUserDirectory",
    "JsonRequestStore",
    "JsonUserDirectory",
    "create_request_store",
    "create_user_directory",
]
