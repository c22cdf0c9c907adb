"""
Donor directory queries and donor-owned updates
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from bloodlink.database.schemas import DonorSummary, Urgency, UserIdentity
from bloodlink.database.storage import UserDirectory
from bloodlink.services.compatibility import parse_blood_type
from bloodlink.services.errors import AuthorizationError, NotFoundError, ValidationError
from bloodlink.services.matching import is_usable
from bloodlink.services.utils import as_utc, paginate, utc_now

logger = logging.getLogger(__name__)

EMERGENCY_LIMIT_CRITICAL = 50
EMERGENCY_LIMIT_DEFAULT = 20


def _by_donations(donor: UserIdentity):
    created = donor.created_at.timestamp() if donor.created_at else float("-inf")
    return (-donor.donor_info.total_donations, -created)


def _parse_filter_type(blood_type: Optional[str]):
    if not blood_type or blood_type == "all":
        return None
    parsed = parse_blood_type(blood_type)
    if parsed is None:
        raise ValidationError("Invalid blood type filter", [{"field": "blood_type", "message": "Unknown blood type"}])
    return parsed


def _city_matches(donor: UserIdentity, city: str) -> bool:
    return bool(donor.city) and city in donor.city.lower()


class DonorService:
    def __init__(self, directory: UserDirectory):
        self.directory = directory

    def list_donors(
        self,
        blood_type: Optional[str] = None,
        city: Optional[str] = None,
        available_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[DonorSummary], int, int]:
        """
        Active donors, most donations first
        """
        wanted_type = _parse_filter_type(blood_type)
        city = "" if not city or city == "all" else city.strip().lower()

        donors = [d for d in self.directory.list_donors() if d.is_active]
        if wanted_type is not None:
            donors = [d for d in donors if d.blood_type == wanted_type]
        if city:
            donors = [d for d in donors if _city_matches(d, city)]
        if available_only:
            donors = [d for d in donors if d.donor_info.is_available]
        donors.sort(key=_by_donations)

        items, pages, total = paginate(donors, page, limit)
        return [DonorSummary.from_identity(d) for d in items], pages, total

    def get_donor(self, donor_id: str) -> DonorSummary:
        donor = self.directory.get(donor_id)
        if donor is None or not donor.is_donor or not donor.is_active:
            raise NotFoundError("Donor not found")
        return DonorSummary.from_identity(donor)

    def emergency_donors(self, blood_type: str, city: Optional[str] = None, urgency: Optional[str] = None) -> List[DonorSummary]:
        """
        Usable donors of exactly the given type, for direct outreach
        """
        wanted_type = _parse_filter_type(blood_type)
        if wanted_type is None:
            raise ValidationError("Blood type is required", [{"field": "blood_type", "message": "Unknown blood type"}])
        city = (city or "").strip().lower()

        donors = [d for d in self.directory.list_donors() if is_usable(d) and d.blood_type == wanted_type]
        if city:
            donors = [d for d in donors if _city_matches(d, city)]
        donors.sort(key=_by_donations)
        limit = EMERGENCY_LIMIT_CRITICAL if urgency == Urgency.CRITICAL.value else EMERGENCY_LIMIT_DEFAULT
        return [DonorSummary.from_identity(d) for d in donors[:limit]]

    def set_availability(self, actor: UserIdentity, donor_id: str, is_available: bool) -> DonorSummary:
        self._authorize_self(actor, donor_id)

        def mutate(donor: UserIdentity) -> UserIdentity:
            if not donor.is_donor:
                raise NotFoundError("Donor not found")
            donor.donor_info.is_available = is_available
            return donor

        donor = self.directory.update(donor_id, mutate)
        logger.info("[Donors] donor=%s availability=%s (actor=%s)", donor_id, is_available, actor.id)
        return DonorSummary.from_identity(donor)

    def record_donation(self, actor: UserIdentity, donor_id: str, donation_date: Optional[datetime] = None) -> DonorSummary:
        self._authorize_self(actor, donor_id)
        when = as_utc(donation_date) if donation_date else utc_now()

        def mutate(donor: UserIdentity) -> UserIdentity:
            if not donor.is_donor:
                raise NotFoundError("Donor not found")
            donor.donor_info.total_donations += 1
            donor.donor_info.last_donation_date = when
            return donor

        donor = self.directory.update(donor_id, mutate)
        logger.info("[Donors] donor=%s recorded donation #%d", donor_id, donor.donor_info.total_donations)
        return DonorSummary.from_identity(donor)

    @staticmethod
    def _authorize_self(actor: UserIdentity, donor_id: str):
        if actor.id != donor_id and not actor.is_admin:
            raise AuthorizationError("Not authorized to update this donor")
