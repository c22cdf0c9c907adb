"""
Error taxonomy for the matching and request lifecycle engine

Every domain error is recoverable and carries a stable ``code`` so callers
can tell "already responded" apart from "not compatible".
StorageError is infrastructural and kept outside the domain taxonomy.
"""
from typing import List, Optional


class BloodLinkError(Exception):
    """Base class for caller-facing domain errors"""
    code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BloodLinkError):
    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, fields: Optional[List[dict]] = None):
        super().__init__(message)
        # [{"field": "units_needed", "message": "..."}]
        self.fields = fields or []


class NotFoundError(BloodLinkError):
    code = "not_found"
    status_code = 404


class InvalidStateError(BloodLinkError):
    code = "invalid_state"
    status_code = 409


class DuplicateResponseError(BloodLinkError):
    code = "duplicate_response"
    status_code = 409


class IncompatibleBloodTypeError(BloodLinkError):
    code = "incompatible_blood_type"
    status_code = 422


class AuthorizationError(BloodLinkError):
    code = "not_authorized"
    status_code = 403


class NotAResponderError(BloodLinkError):
    code = "not_a_responder"
    status_code = 409


class StorageError(Exception):
    """Persistence layer unreachable or unreadable"""
