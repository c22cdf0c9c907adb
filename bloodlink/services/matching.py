"""
Donor matching

Read-side queries layered on the current snapshot of the donor pool and
the request store. No ranking beyond a donation-history tiebreak.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from bloodlink.core import config
from bloodlink.database.schemas import BloodRequest, UserIdentity, URGENCY_RANK
from bloodlink.database.storage import UserDirectory
from bloodlink.services.compatibility import BloodType, can_donate_to, compatible_donor_types, sorted_types

logger = logging.getLogger(__name__)


def is_usable(donor: UserIdentity) -> bool:
    """Active account that is currently marked available"""
    return donor.is_active and donor.donor_info.is_available


def _donor_rank(donor: UserIdentity):
    info = donor.donor_info
    last = info.last_donation_date.timestamp() if info.last_donation_date else float("-inf")
    return (-info.total_donations, -last)


class Matcher:
    def __init__(self, directory: UserDirectory, limit: int = config.MATCHING_DONOR_LIMIT):
        self.directory = directory
        self.limit = limit

    def find_candidates(self, request: BloodRequest, limit: Optional[int] = None) -> List[UserIdentity]:
        """
        Usable donors whose blood type can be given to the request's patient

        An empty list is a normal outcome, not an error.
        """
        donors = self.find_for_blood_type(request.blood_type, limit)
        logger.info("[Matcher] request=%s matched %d donors", request.id, len(donors))
        return donors

    def find_for_blood_type(self, required_type: BloodType, limit: Optional[int] = None) -> List[UserIdentity]:
        donor_types = compatible_donor_types(required_type)
        logger.debug(
            "[Matcher] %s can receive from %s",
            BloodType(required_type).value, ", ".join(t.value for t in sorted_types(donor_types)),
        )
        donors = [
            donor for donor in self.directory.list_donors()
            if is_usable(donor) and donor.blood_type in donor_types
        ]
        donors.sort(key=_donor_rank)
        limit = self.limit if limit is None else limit
        if limit:
            donors = donors[:limit]
        return donors

    @staticmethod
    def requests_for_donor(donor: UserIdentity, requests: Iterable[BloodRequest], now: datetime) -> List[BloodRequest]:
        """
        Live requests this donor could give to and has not yet responded to

        Most urgent first, newest first within the same urgency.
        """
        recipient_types = can_donate_to(donor.blood_type)
        matching = [
            request for request in requests
            if request.is_live(now)
            and request.blood_type in recipient_types
            and request.response_from(donor.id) is None
        ]
        matching.sort(key=lambda r: -r.created_at.timestamp())
        matching.sort(key=lambda r: URGENCY_RANK[r.urgency])
        return matching
