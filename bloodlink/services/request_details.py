"""
Blood request payload normalization
"""
from typing import Dict, Any, List

from pydantic import ValidationError as PydanticValidationError

from bloodlink.services.compatibility import parse_blood_type


# camelCase keys sent by the web client -> canonical keys
REQUEST_ALIASES = {
    "patientName": "patient_name",
    "bloodType": "blood_type",
    "unitsNeeded": "units_needed",
    "contactPhone": "contact_phone",
    "medicalReason": "medical_reason",
    "attendingPhysician": "attending_physician",
}

DEFAULT_HOSPITAL_ADDRESS = "Address not provided"


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, "")}


def _to_int(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


def canonicalize_request_input(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize request payload to canonical keys only.

    - camelCase aliases are mapped to snake_case
    - hospital / attending_physician given as a plain name are expanded,
      falling back to the contact phone for their contact numbers
    - blood type is case and whitespace tolerant ("ab +" -> "AB+")
    - empty strings count as missing
    """
    data = {}
    for key, value in (payload or {}).items():
        canonical_key = REQUEST_ALIASES.get(key, key)
        if canonical_key in data and value is None:
            continue
        data[canonical_key] = value

    data = {k: _strip(v) for k, v in data.items()}
    data = _compact(data)

    contact_phone = data.get("contact_phone")

    if "blood_type" in data:
        parsed = parse_blood_type(data["blood_type"])
        if parsed is not None:
            data["blood_type"] = parsed.value

    if isinstance(data.get("urgency"), str):
        data["urgency"] = data["urgency"].lower()

    if "units_needed" in data:
        data["units_needed"] = _to_int(data["units_needed"])

    hospital = data.get("hospital")
    if isinstance(hospital, str):
        data["hospital"] = _compact({
            "name": hospital,
            "address": DEFAULT_HOSPITAL_ADDRESS,
            "contact_number": contact_phone,
        })
    elif isinstance(hospital, dict):
        data["hospital"] = _compact({
            "name": _strip(hospital.get("name")),
            "address": _strip(hospital.get("address")) or DEFAULT_HOSPITAL_ADDRESS,
            "contact_number": _strip(hospital.get("contact_number") or hospital.get("contactNumber")) or contact_phone,
        })

    physician = data.get("attending_physician")
    if isinstance(physician, str):
        data["attending_physician"] = _compact({"name": physician, "contact": contact_phone})
    elif isinstance(physician, dict):
        data["attending_physician"] = _compact({
            "name": _strip(physician.get("name")),
            "contact": _strip(physician.get("contact")) or contact_phone,
        })

    return data


def validation_fields(exc: PydanticValidationError) -> List[Dict[str, str]]:
    """
    Flatten pydantic errors into [{"field": "hospital.name", "message": ...}]

    Every failing field is reported, in declaration order.
    """
    fields = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        if error.get("type") == "missing":
            message = "Field required"
        fields.append({"field": location, "message": message})
    return fields


def describe_fields(fields: List[Dict[str, str]]) -> str:
    return ", ".join(f["field"] for f in fields)
