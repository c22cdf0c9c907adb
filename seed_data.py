#!/usr/bin/env python3
"""
Seed the user directory with demo donors, a recipient and an admin

Writes to the JSON store under DATA_DIR (default: data/).
Existing identities with the same id are overwritten.
"""
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

from bloodlink.database.schemas import DonorInfo, UserIdentity, UserType
from bloodlink.database.storage import JsonUserDirectory

logger = logging.getLogger("seed_data")


def _donor(user_id, first, last, blood_type, city, total, last_donation, available=True):
    return UserIdentity(
        id=user_id,
        first_name=first,
        last_name=last,
        email=f"{first.lower()}.{last.lower()}@email.com",
        phone="+1-555-01" + user_id[-2:],
        blood_type=blood_type,
        user_type=UserType.DONOR,
        city=city,
        donor_info=DonorInfo(
            is_available=available,
            total_donations=total,
            last_donation_date=datetime.fromisoformat(last_donation).replace(tzinfo=timezone.utc),
        ),
        created_at=datetime.now(timezone.utc),
    )


SEED_USERS = [
    _donor("donor-01", "John", "Smith", "O-", "Downtown", 15, "2024-04-15"),
    _donor("donor-02", "Sarah", "Johnson", "A+", "Midtown", 8, "2024-05-20"),
    _donor("donor-03", "Mike", "Davis", "B+", "Uptown", 22, "2024-03-10", available=False),
    _donor("donor-04", "Emily", "Brown", "AB-", "Downtown", 5, "2024-06-01"),
    _donor("donor-05", "David", "Wilson", "O+", "Midtown", 12, "2024-02-28"),
    UserIdentity(
        id="recipient-01",
        first_name="Lisa",
        last_name="Garcia",
        email="lisa.garcia@email.com",
        phone="+1-555-0200",
        blood_type="A-",
        user_type=UserType.RECIPIENT,
        city="Downtown",
        created_at=datetime.now(timezone.utc),
    ),
    UserIdentity(
        id="admin-01",
        first_name="Admin",
        last_name="User",
        email="admin@bloodlink.local",
        blood_type="O+",
        user_type=UserType.ADMIN,
        created_at=datetime.now(timezone.utc),
    ),
]


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    directory = JsonUserDirectory()
    for user in SEED_USERS:
        directory.save(user)
        logger.info("Seeded %s %s (%s, %s)", user.user_type.value, user.full_name, user.blood_type.value, user.id)
    logger.info("Seeded %d users into %s", len(SEED_USERS), directory.filepath)


if __name__ == "__main__":
    sys.exit(main())
