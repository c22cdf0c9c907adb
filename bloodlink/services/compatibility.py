"""
Blood type compatibility

Single source of truth for ABO/Rh red cell compatibility.
Only the "can donate to" table is written out; the "can receive from"
direction is derived from it when the module loads.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional


class BloodType(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

    def __str__(self) -> str:
        return self.value


ALL_BLOOD_TYPES = tuple(BloodType)

# Donor type -> recipient types it may be transfused into
CAN_DONATE_TO: Dict[BloodType, FrozenSet[BloodType]] = {
    BloodType.O_NEG: frozenset(BloodType),  # Universal donor
    BloodType.O_POS: frozenset({BloodType.O_POS, BloodType.A_POS, BloodType.B_POS, BloodType.AB_POS}),
    BloodType.A_NEG: frozenset({BloodType.A_NEG, BloodType.A_POS, BloodType.AB_NEG, BloodType.AB_POS}),
    BloodType.A_POS: frozenset({BloodType.A_POS, BloodType.AB_POS}),
    BloodType.B_NEG: frozenset({BloodType.B_NEG, BloodType.B_POS, BloodType.AB_NEG, BloodType.AB_POS}),
    BloodType.B_POS: frozenset({BloodType.B_POS, BloodType.AB_POS}),
    BloodType.AB_NEG: frozenset({BloodType.AB_NEG, BloodType.AB_POS}),
    BloodType.AB_POS: frozenset({BloodType.AB_POS}),
}


def _invert(table: Dict[BloodType, FrozenSet[BloodType]]) -> Dict[BloodType, FrozenSet[BloodType]]:
    inverted = {blood_type: set() for blood_type in BloodType}
    for donor, recipients in table.items():
        for recipient in recipients:
            inverted[recipient].add(donor)
    return {recipient: frozenset(donors) for recipient, donors in inverted.items()}


# Recipient type -> donor types it may receive from
CAN_RECEIVE_FROM: Dict[BloodType, FrozenSet[BloodType]] = _invert(CAN_DONATE_TO)


def parse_blood_type(value) -> Optional[BloodType]:
    """
    Normalize user input such as "ab+", " O- " or "A +" to a BloodType

    Returns None when the value is not one of the eight types.
    """
    if isinstance(value, BloodType):
        return value
    if not isinstance(value, str):
        return None
    normalized = "".join(value.split()).upper()
    try:
        return BloodType(normalized)
    except ValueError:
        return None


def can_donate_to(donor_type: BloodType) -> FrozenSet[BloodType]:
    """Recipient types a donor of ``donor_type`` can give to"""
    return CAN_DONATE_TO[BloodType(donor_type)]


def compatible_donor_types(required_type: BloodType) -> FrozenSet[BloodType]:
    """Donor types whose blood a recipient of ``required_type`` can receive"""
    return CAN_RECEIVE_FROM[BloodType(required_type)]


def is_compatible(donor_type, recipient_type) -> bool:
    donor = parse_blood_type(donor_type)
    recipient = parse_blood_type(recipient_type)
    if donor is None or recipient is None:
        return False
    return recipient in CAN_DONATE_TO[donor]


def sorted_types(types) -> list:
    """Blood types in canonical display order (O-, O+, A-, A+, ...)"""
    order = ["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"]
    return sorted((BloodType(t) for t in types), key=lambda t: order.index(t.value))
