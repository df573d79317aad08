"""Create ledger tables and normalise legacy profile memberships.

Older profiles were written with the membership "free", which the plan
catalog no longer knows. They are moved to the baseline tier so their usage
records get the baseline allowance.

USAGE:
    python migrate.py
"""

from sqlalchemy.orm import Session

from models import Base, Profile, engine
from db_session import get_db
from period_utils import utc_now

LEGACY_MEMBERSHIPS = {"free": "starter"}


def migrate_legacy_memberships(db: Session) -> int:
    """Rewrite legacy membership names. Returns the number of profiles changed."""
    migrated = 0
    for legacy, current in LEGACY_MEMBERSHIPS.items():
        migrated += (
            db.query(Profile)
            .filter(Profile.membership == legacy)
            .update(
                {Profile.membership: current, Profile.updated_at: utc_now()},
                synchronize_session=False,
            )
        )
    db.commit()
    return migrated


def main() -> None:
    print("--- Migration started ---")

    print("1. Creating tables...")
    Base.metadata.create_all(bind=engine)
    print("   ...tables created (or already present).")

    print("2. Normalising legacy memberships...")
    with get_db() as db:
        migrated = migrate_legacy_memberships(db)
    print(f"   ...{migrated} profiles moved to current tiers.")

    print("\n--- Migration finished ---")


if __name__ == "__main__":
    main()
